"""glanceboard.core.config_loader

Typed configuration for glanceboard.

- Exposes a dataclass `Config` built from a plain mapping with coercion and bounds.
- `load_config()` merges an optional YAML file with environment variables
  (environment wins).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from glanceboard.core.config_manager import ConfigManager

logger = logging.getLogger(__name__)

DEFAULT_LATITUDE = 43.1566
DEFAULT_LONGITUDE = -77.6088
DEFAULT_LOCATION_NAME = "Rochester, NY"
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "glanceboard"


@dataclass
class Config:
    """Typed configuration for glanceboard.

    Fields:
        ical_url: iCalendar feed URL; None leaves the calendar permanently empty
        server_bind: host to bind the HTTP server to
        server_port: port for the HTTP server
        latitude: weather coordinates (degrees)
        longitude: weather coordinates (degrees)
        location_name: label shown next to the weather
        cache_dir: directory for the durable feed cache
        timezone: IANA timezone for the display, None for host local time
        request_timeout: upstream HTTP read timeout in seconds (1..300)
        max_retries: retry attempts for upstream fetches
        retry_backoff_factor: base for exponential retry backoff
        log_level: logging level name
    """

    ical_url: Optional[str] = None
    server_bind: str = "0.0.0.0"  # nosec: B104 - kiosk board is served on the LAN
    server_port: int = 3000
    latitude: float = DEFAULT_LATITUDE
    longitude: float = DEFAULT_LONGITUDE
    location_name: str = DEFAULT_LOCATION_NAME
    cache_dir: Path = DEFAULT_CACHE_DIR
    timezone: Optional[str] = None
    request_timeout: int = 30
    max_retries: int = 2
    retry_backoff_factor: float = 1.5
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Numeric-like values are coerced; values that fail coercion or fall out of
        range are replaced by defaults or clamped, with a warning.
        """
        if data is None:
            data = {}

        def _coerce(key: str, default: Any, kind: type) -> Any:
            raw = data.get(key, default)
            if raw is None:
                return default
            try:
                return kind(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not a %s; using default %r", key, raw, kind.__name__, default)
                return default

        server_port = _coerce("server_port", 3000, int)
        if not 1 <= server_port <= 65535:
            logger.warning("server_port %d out of range; using 3000", server_port)
            server_port = 3000

        request_timeout = _coerce("request_timeout", 30, int)
        if request_timeout < 1:
            logger.warning("request_timeout %d below minimum; coercing to 1", request_timeout)
            request_timeout = 1
        elif request_timeout > 300:
            logger.warning("request_timeout %d above maximum; coercing to 300", request_timeout)
            request_timeout = 300

        max_retries = max(0, _coerce("max_retries", 2, int))

        ical_url = str(data.get("ical_url") or "").strip() or None

        timezone = data.get("timezone")
        timezone = str(timezone) if timezone else None

        cache_dir = data.get("cache_dir")
        cache_path = Path(str(cache_dir)).expanduser() if cache_dir else DEFAULT_CACHE_DIR

        return cls(
            ical_url=ical_url,
            server_bind=str(data.get("server_bind") or "0.0.0.0"),  # nosec: B104
            server_port=server_port,
            latitude=_coerce("latitude", DEFAULT_LATITUDE, float),
            longitude=_coerce("longitude", DEFAULT_LONGITUDE, float),
            location_name=str(data.get("location_name") or DEFAULT_LOCATION_NAME),
            cache_dir=cache_path,
            timezone=timezone,
            request_timeout=request_timeout,
            max_retries=max_retries,
            retry_backoff_factor=_coerce("retry_backoff_factor", 1.5, float),
            log_level=str(data.get("log_level") or "INFO").upper(),
        )


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load a mapping from a YAML file.

    Raises:
        ValueError: if the top level of the file is not a mapping
    """
    loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    # safe_load returns None for empty files
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        logger.warning("Config file %s parsed but top-level is not a mapping: %r", path, loaded)
        raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
    return loaded


def load_config(path: str | None = None, env_file: Path | None = None) -> Config:
    """Load configuration from an optional YAML file plus environment variables.

    Args:
        path: Optional path to a YAML config file. Missing files are ignored.
        env_file: Optional .env path (defaults to ./.env)

    Returns:
        Config dataclass instance
    """
    data: dict[str, Any] = {}
    if path:
        p = Path(path)
        if p.exists():
            data.update(_load_yaml(p))
            logger.info("Loaded configuration from %s", p)
        else:
            logger.info("Config file %s not found; using environment and defaults", p)

    data.update(ConfigManager(env_file).load_full_config())
    cfg = Config.from_dict(data)
    logger.debug("Configuration values: %s", cfg)
    return cfg
