"""JSON-file mirror of the freshness cache with atomic writes.

Each feed is persisted to ``<directory>/<identifier>.json`` as::

    {"value": ..., "lastUpdated": "<ISO-8601>", "cachedAt": <epoch ms>}

so a restarted board can show its last-known data before the network answers.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import re
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_SAFE_IDENTIFIER = re.compile(r"^[A-Za-z0-9_.-]+$")


class JsonCacheStore:
    """Durable key -> JSON document store backing the freshness cache."""

    def __init__(self, directory: str | Path) -> None:
        """Create a store rooted at ``directory``.

        Args:
            directory: Directory holding one JSON file per feed identifier.
        """
        self._dir = Path(directory)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            # Writes will fail and be logged; reads fall through to cache misses.
            logger.warning("Could not create cache directory %s", self._dir)

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, identifier: str) -> Path:
        """Return the file path used for ``identifier``.

        Raises:
            ValueError: if the identifier is not a plain file-name token.
        """
        if not _SAFE_IDENTIFIER.match(identifier):
            raise ValueError(f"invalid cache identifier: {identifier!r}")
        return self._dir / f"{identifier}.json"

    def save(self, identifier: str, value: Any, last_updated: datetime) -> bool:
        """Persist ``value`` atomically.

        Writes to a temporary file in the same directory then replaces the
        target. Failures are logged and reported through the return value.

        Args:
            identifier: Feed store identifier
            value: JSON-serializable payload
            last_updated: Fetch time of the payload

        Returns:
            True when the entry reached disk.
        """
        payload = {
            "value": value,
            "lastUpdated": last_updated.isoformat(),
            "cachedAt": int(time.time() * 1000),
        }
        target = self.path_for(identifier)

        tmp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self._dir, prefix=f".{identifier}.", suffix=".tmp", delete=False, encoding="utf-8"
            ) as tf:
                tmp_path = Path(tf.name)
                json.dump(payload, tf, ensure_ascii=False)
                tf.flush()
                with contextlib.suppress(OSError):
                    os.fsync(tf.fileno())
            tmp_path.replace(target)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to persist cache entry %s to %s: %s", identifier, target, exc)
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            return False

        logger.debug("Persisted cache entry %s (%s)", identifier, target)
        return True

    def load(self, identifier: str) -> dict[str, Any] | None:
        """Load a persisted entry.

        Returns:
            The stored document, or None when it is missing, unreadable, or not
            shaped like a cache entry. Corruption is never raised to the caller.
        """
        path = self.path_for(identifier)
        if not path.exists():
            logger.debug("No persisted cache entry for %s", identifier)
            return None

        try:
            with path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.debug("Ignoring unreadable cache entry %s: %s", path, exc)
            return None

        if not isinstance(data, dict) or "value" not in data or not isinstance(data.get("lastUpdated"), str):
            logger.debug("Ignoring malformed cache entry %s", path)
            return None

        return data

    def clear(self, identifier: str) -> None:
        """Remove a persisted entry if present."""
        with contextlib.suppress(FileNotFoundError):
            self.path_for(identifier).unlink()
