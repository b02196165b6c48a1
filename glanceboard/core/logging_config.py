"""
Central logging configuration for glanceboard.

Sets up a colorized console handler and keeps third-party libraries quiet so
the board's own refresh/fallback messages stay readable on a small device.
"""

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

DEBUG_ENV = "GLANCEBOARD_DEBUG"
LOG_LEVEL_ENV = "GLANCEBOARD_LOG_LEVEL"

_LOG_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s [%(request_id)s] %(name)s: %(message)s"
_LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

# Third-party libraries that generate excessive debug logs
_NOISY_LOGGERS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "icalendar": logging.INFO,
}


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation ID to log record.

        Args:
            record: Log record to enhance

        Returns:
            True to allow record to be logged
        """
        # Imported here to keep glanceboard.core free of a hard aiohttp import cycle
        from glanceboard.api.middleware import get_request_id

        record.request_id = get_request_id()
        return True


def _env_debug() -> bool:
    return os.getenv(DEBUG_ENV, "").strip().lower() in ("1", "true", "yes", "on")


def init_logging(level_name: Optional[str] = None) -> None:
    """Initialize root logging to stream colorized output to stderr.

    GLANCEBOARD_DEBUG (truthy: "1", "true", "yes", "on") forces DEBUG.

    Args:
        level_name: Logging level name (case-insensitive); INFO when unknown
    """
    if _env_debug():
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none are present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(ColoredFormatter(_LOG_FORMAT, datefmt="%H:%M:%S", log_colors=_LOG_COLORS))
        handler.addFilter(CorrelationIdFilter())
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)
    logging.getLogger(__name__).debug("Logging initialized at level %s", logging.getLevelName(level))


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure glanceboard and third-party logger levels.

    Args:
        debug_mode: Whether to enable debug logging for glanceboard modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        GLANCEBOARD_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        GLANCEBOARD_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    if force_debug is not None:
        final_debug = force_debug
    elif _env_debug():
        final_debug = True
    else:
        final_debug = debug_mode

    env_log_level = os.getenv(LOG_LEVEL_ENV, "").upper()
    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    correlation_filter = CorrelationIdFilter()
    for existing_handler in root_logger.handlers:
        if not any(isinstance(f, CorrelationIdFilter) for f in existing_handler.filters):
            existing_handler.addFilter(correlation_filter)

    for logger_name, level in _NOISY_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(level)

    logging.getLogger("glanceboard").setLevel(logging.DEBUG if final_debug else logging.INFO)

    if final_debug:
        root_logger.info("Debug logging enabled for glanceboard modules")
    else:
        root_logger.debug("Production logging configuration applied")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ("glanceboard", "aiohttp.access", "httpx", "asyncio"):
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
