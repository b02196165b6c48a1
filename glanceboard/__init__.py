"""glanceboard - a single-display board of time, weather and upcoming events.

Imports stay light here; the server and its dependencies load in
``run_server``.
"""

from __future__ import annotations

__version__ = "1.0.0"

from typing import Optional


def run_server(args: Optional[object] = None) -> None:
    """Load configuration and run the glanceboard server.

    Args:
        args: Optional parsed command line namespace with ``port`` and ``config``

    Behavior:
    - Initialize console logging early from GLANCEBOARD_LOG_LEVEL.
    - Load configuration (YAML file if given, then .env and environment).
    - Re-apply the log level from configuration and apply ``--port``.
    - Delegate to ``glanceboard.api.server.start_server``.
    """
    import dataclasses
    import logging
    import os

    from glanceboard.core.logging_config import init_logging

    init_logging(os.environ.get("GLANCEBOARD_LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    from glanceboard.api.server import start_server
    from glanceboard.core.config_loader import load_config

    config = load_config(getattr(args, "config", None))
    init_logging(config.log_level)

    port = getattr(args, "port", None)
    if port is not None:
        config = dataclasses.replace(config, server_port=int(port))
        logger.debug("Server port overridden from command line: %d", config.server_port)

    start_server(config)
