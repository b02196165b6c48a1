"""Time-boxed last-known-good cache shared by every board feed.

Each feed key owns exactly one ``CachedValue`` that is replaced, never mutated:
a successful refresh swaps in a new value and fetch time, a failed refresh
swaps in a copy flagged stale. Snapshots handed to callers therefore never
change underneath them.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Generic, Optional, TypeVar

from pydantic import TypeAdapter

from glanceboard.cache.store import JsonCacheStore
from glanceboard.core.timezone_utils import parse_iso

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CachedValue(Generic[T]):
    """Snapshot of one feed's cache entry.

    Attributes:
        value: Last successfully fetched payload, or the feed placeholder
        fetched_at: Time of last successful fetch; None before the first one
        is_stale: True only when a refresh was attempted and failed
    """

    value: T
    fetched_at: Optional[datetime] = None
    is_stale: bool = False

    @property
    def has_value(self) -> bool:
        return self.fetched_at is not None


@dataclass(frozen=True)
class FeedDefinition(Generic[T]):
    """Static description of a cached feed.

    Attributes:
        key: Feed key used by the cache and orchestrator
        cache_duration: Freshness window
        placeholder: Value served before any successful fetch
        value_adapter: pydantic adapter used to persist and rehydrate values
        store_identifier: Durable store file identifier
    """

    key: str
    cache_duration: timedelta
    placeholder: T
    value_adapter: TypeAdapter[Any]
    store_identifier: str


class FreshnessCache:
    """Per-feed last-known-good cache with optional durable mirror."""

    def __init__(self, feeds: list[FeedDefinition[Any]], store: Optional[JsonCacheStore] = None) -> None:
        """Create a cache for ``feeds``, each starting at its placeholder.

        Args:
            feeds: Feed definitions to register
            store: Optional durable store; every write is mirrored to it
        """
        self._feeds: dict[str, FeedDefinition[Any]] = {}
        self._entries: dict[str, CachedValue[Any]] = {}
        self._store = store
        for feed in feeds:
            self.register(feed)

    def register(self, feed: FeedDefinition[Any]) -> None:
        """Register a feed and seed it with its placeholder.

        Raises:
            ValueError: if the key is already registered
        """
        if feed.key in self._feeds:
            raise ValueError(f"feed {feed.key!r} already registered")
        self._feeds[feed.key] = feed
        self._entries[feed.key] = CachedValue(value=feed.placeholder)

    @property
    def feed_keys(self) -> list[str]:
        return list(self._feeds)

    def definition(self, feed_key: str) -> FeedDefinition[Any]:
        """Return the definition registered for ``feed_key``.

        Raises:
            KeyError: for unknown feed keys
        """
        return self._feeds[feed_key]

    def cache_duration(self, feed_key: str) -> timedelta:
        return self._feeds[feed_key].cache_duration

    def read(self, feed_key: str) -> CachedValue[Any]:
        """Return the current snapshot for ``feed_key`` (placeholder if never fetched)."""
        return self._entries[feed_key]

    def has_value(self, feed_key: str) -> bool:
        return self._entries[feed_key].fetched_at is not None

    def is_expired(self, feed_key: str, now: datetime) -> bool:
        """True iff the feed was never fetched or its freshness window has elapsed."""
        fetched_at = self._entries[feed_key].fetched_at
        if fetched_at is None:
            return True
        return now - fetched_at >= self._feeds[feed_key].cache_duration

    def write(self, feed_key: str, value: Any, now: datetime) -> CachedValue[Any]:
        """Replace value and fetch time, clear the stale flag, and persist.

        Args:
            feed_key: Feed key
            value: Freshly fetched payload
            now: Fetch time to record

        Returns:
            The new snapshot
        """
        feed = self._feeds[feed_key]
        entry: CachedValue[Any] = CachedValue(value=value, fetched_at=now, is_stale=False)
        self._entries[feed_key] = entry

        if self._store is not None:
            try:
                serialized = feed.value_adapter.dump_python(value, mode="json")
            except ValueError:
                logger.warning("Could not serialize %s value for persistence", feed_key, exc_info=True)
            else:
                self._store.save(feed.store_identifier, serialized, now)

        return entry

    def mark_stale(self, feed_key: str) -> CachedValue[Any]:
        """Flag the current value as stale without touching value or fetch time."""
        entry = dataclasses.replace(self._entries[feed_key], is_stale=True)
        self._entries[feed_key] = entry
        return entry

    def rehydrate(self) -> list[str]:
        """Load every registered feed from the durable store.

        Entries that are missing, corrupt or fail validation are treated as a
        cache miss: the feed keeps its placeholder and will refresh immediately.

        Returns:
            Keys of feeds that were restored
        """
        if self._store is None:
            return []

        restored: list[str] = []
        for key, feed in self._feeds.items():
            data = self._store.load(feed.store_identifier)
            if data is None:
                continue
            try:
                value = feed.value_adapter.validate_python(data["value"])
                fetched_at = parse_iso(data["lastUpdated"])
            except (ValueError, TypeError) as exc:
                logger.debug("Discarding persisted %s cache entry: %s", key, exc)
                continue

            self._entries[key] = CachedValue(value=value, fetched_at=fetched_at, is_stale=False)
            restored.append(key)
            logger.info("Restored cached %s feed from %s", key, fetched_at.isoformat())

        return restored
