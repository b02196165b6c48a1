"""Configuration management for the glanceboard server."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs from the .env file.
        Empty dict if file doesn't exist or cannot be read.

    Note:
        - Skips empty lines and comments (lines starting with #)
        - Strips quotes (both single and double) from values
        - Handles KEY=VALUE format with optional whitespace
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}

    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return result

    for raw_line in content.splitlines():
        line = raw_line.strip()

        # Skip empty lines and comments
        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")

        if key:
            result[key] = val

    return result


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment to avoid
        surprising overrides of user's environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        parsed = parse_env_file(self.env_file_path)

        set_keys = []
        for key, val in parsed.items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        Recognizes:
        - GLANCEBOARD_ICAL_URL (or GOOGLE_ICAL_URL) -> 'ical_url'
        - GLANCEBOARD_WEB_HOST -> 'server_bind'
        - GLANCEBOARD_WEB_PORT (or PORT) -> 'server_port'
        - GLANCEBOARD_LATITUDE / GLANCEBOARD_LONGITUDE -> 'latitude' / 'longitude'
        - GLANCEBOARD_LOCATION_NAME -> 'location_name'
        - GLANCEBOARD_CACHE_DIR -> 'cache_dir'
        - GLANCEBOARD_TIMEZONE -> 'timezone'
        - GLANCEBOARD_REQUEST_TIMEOUT -> 'request_timeout'
        - GLANCEBOARD_LOG_LEVEL -> 'log_level'

        Values are passed through as strings; coercion happens in Config.from_dict.

        Returns:
            Configuration dictionary
        """
        cfg: dict[str, Any] = {}

        ical_url = os.environ.get("GLANCEBOARD_ICAL_URL") or os.environ.get("GOOGLE_ICAL_URL")
        if ical_url:
            cfg["ical_url"] = ical_url

        port = os.environ.get("GLANCEBOARD_WEB_PORT") or os.environ.get("PORT")
        if port:
            cfg["server_port"] = port

        env_keys = {
            "GLANCEBOARD_WEB_HOST": "server_bind",
            "GLANCEBOARD_LATITUDE": "latitude",
            "GLANCEBOARD_LONGITUDE": "longitude",
            "GLANCEBOARD_LOCATION_NAME": "location_name",
            "GLANCEBOARD_CACHE_DIR": "cache_dir",
            "GLANCEBOARD_TIMEZONE": "timezone",
            "GLANCEBOARD_REQUEST_TIMEOUT": "request_timeout",
            "GLANCEBOARD_LOG_LEVEL": "log_level",
        }
        for env_name, key in env_keys.items():
            value = os.environ.get(env_name)
            if value:
                cfg[key] = value

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        Returns:
            Configuration dictionary
        """
        self.load_env_file()
        return self.build_config_from_env()
