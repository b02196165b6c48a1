"""aiohttp server hosting the glanceboard feed API.

Runs the HTTP API plus one background refresh loop per feed on a single
asyncio event loop until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Optional

from aiohttp import web

from glanceboard.api.middleware import correlation_id_middleware
from glanceboard.api.routes import register_api_routes
from glanceboard.board import Board, build_board
from glanceboard.core.config_loader import Config
from glanceboard.core.http_client import close_all_clients, redact_url
from glanceboard.core.logging_config import configure_logging

logger = logging.getLogger(__name__)

MAX_PORT_ATTEMPTS = 10


def _make_app(board: Board) -> web.Application:
    """Create the aiohttp application with routes wired to ``board``."""
    app = web.Application(middlewares=[correlation_id_middleware])
    register_api_routes(app, board)

    async def _shutdown(_app: web.Application) -> None:
        logger.info("Application shutdown requested")

    app.on_shutdown.append(_shutdown)
    return app


async def _start_site(runner: web.AppRunner, host: str, configured_port: int) -> int:
    """Bind the first free port starting at ``configured_port``.

    Returns:
        Port actually bound

    Raises:
        OSError: binding failed for a reason other than the port being taken
        RuntimeError: no free port within ``MAX_PORT_ATTEMPTS``
    """
    for port_offset in range(MAX_PORT_ATTEMPTS):
        port = configured_port + port_offset
        site = web.TCPSite(runner, host=host, port=port)
        try:
            await site.start()
        except OSError as e:
            if "address already in use" not in str(e).lower():
                logger.exception("Failed to start server on %s:%d", host, port)
                raise
            logger.debug("Port %d in use, trying next port", port)
            continue

        if port != configured_port:
            logger.warning("Configured port %d was in use, using port %d instead", configured_port, port)
        return port

    raise RuntimeError(
        f"No available port found in range {configured_port}-{configured_port + MAX_PORT_ATTEMPTS - 1}"
    )


async def _serve(config: Config, external_stop_event: Optional[asyncio.Event] = None) -> None:
    """Run server and refresh loops until signalled to stop.

    Args:
        config: Server configuration
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers are not registered (caller owns signal handling).
    """
    stop_event = external_stop_event or asyncio.Event()

    logger.debug(
        "Starting with calendar=%s weather=%.4f,%.4f cache_dir=%s",
        redact_url(config.ical_url) if config.ical_url else None,
        config.latitude,
        config.longitude,
        config.cache_dir,
    )
    board = build_board(config)
    app = _make_app(board)

    runner = web.AppRunner(app)
    await runner.setup()
    port = await _start_site(runner, config.server_bind, config.server_port)
    logger.info("Glance Board running at http://%s:%d", config.server_bind, port)

    board.start()

    if external_stop_event is None:
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)
    else:
        logger.debug("Using external stop event - skipping signal handler registration")

    await stop_event.wait()
    logger.info("Stop event received, shutting down")

    await board.aclose()
    await runner.cleanup()

    try:
        await close_all_clients()
        logger.debug("Shared HTTP clients cleaned up")
    except Exception as e:
        logger.warning("Error cleaning up shared HTTP clients: %s", e)

    logger.info("Server shutdown complete")


def start_server(config: Config) -> None:
    """Run the server, blocking until SIGINT/SIGTERM.

    Args:
        config: Server configuration
    """
    configure_logging(debug_mode=config.log_level.upper() == "DEBUG")

    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Server terminated unexpectedly")
        raise
