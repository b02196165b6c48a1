"""Feed API routes for the glanceboard server."""

from __future__ import annotations

import datetime
import logging
from typing import TYPE_CHECKING, Any

from aiohttp import web

from glanceboard.cache.freshness import CachedValue
from glanceboard.calendar.normalizer import within_display_window
from glanceboard.core.timezone_utils import serialize_datetime_utc
from glanceboard.feeds import CALENDAR_FEED_KEY, WEATHER_FEED_KEY

if TYPE_CHECKING:
    from glanceboard.board import Board

logger = logging.getLogger(__name__)


def _is_forced(request: web.Request) -> bool:
    return request.query.get("force", "").strip().lower() == "true"


def _last_updated(entry: CachedValue[Any], now: datetime.datetime) -> str:
    """Fetch time of the entry, or the request time before any success."""
    return serialize_datetime_utc(entry.fetched_at or now)


def _events_payload(entry: CachedValue[Any], events: Any, now: datetime.datetime) -> dict[str, Any]:
    return {
        "events": [event.to_api_dict() for event in events],
        "lastUpdated": _last_updated(entry, now),
        "isStale": entry.is_stale,
    }


def _weather_payload(entry: CachedValue[Any], now: datetime.datetime, location: str) -> dict[str, Any]:
    payload = entry.value.to_api_dict()
    payload["location"] = location
    payload["lastUpdated"] = _last_updated(entry, now)
    payload["isStale"] = entry.is_stale
    return payload


def register_api_routes(app: web.Application, board: "Board") -> None:
    """Register feed API routes.

    Args:
        app: aiohttp web application
        board: Assembled board whose orchestrator answers the requests
    """
    orchestrator = board.orchestrator
    health_tracker = board.health_tracker
    time_provider = board.time_provider

    async def events(request: web.Request) -> web.Response:
        """Upcoming calendar events within the feed horizon."""
        try:
            now = time_provider()
            entry = await orchestrator.get_feed(CALENDAR_FEED_KEY, force_refresh=_is_forced(request), now=now)
            return web.json_response(_events_payload(entry, entry.value, now))
        except Exception:
            logger.exception("Events endpoint failed")
            return web.json_response(
                {"error": "Failed to fetch events", "events": [], "isStale": True},
                status=500,
            )

    async def weather(request: web.Request) -> web.Response:
        """Current weather reading."""
        try:
            now = time_provider()
            entry = await orchestrator.get_feed(WEATHER_FEED_KEY, force_refresh=_is_forced(request), now=now)
            payload = _weather_payload(entry, now, board.location_name)
            payload["isLoading"] = orchestrator.is_loading(WEATHER_FEED_KEY)
            return web.json_response(payload)
        except Exception:
            logger.exception("Weather endpoint failed")
            return web.json_response({"error": "Failed to fetch weather", "isStale": True}, status=500)

    async def board_snapshot(_request: web.Request) -> web.Response:
        """Everything a display needs in one non-blocking poll.

        Expired feeds are refreshed in the background; the snapshot always
        carries the currently cached values.
        """
        try:
            now = time_provider()
            for key in (CALENDAR_FEED_KEY, WEATHER_FEED_KEY):
                orchestrator.request_refresh(key, now=now)

            calendar_entry = board.cache.read(CALENDAR_FEED_KEY)
            weather_entry = board.cache.read(WEATHER_FEED_KEY)

            calendar_payload = _events_payload(
                calendar_entry,
                within_display_window(calendar_entry.value, now, tz=board.tz),
                now,
            )
            calendar_payload["isLoading"] = orchestrator.is_loading(CALENDAR_FEED_KEY)

            weather_payload = _weather_payload(weather_entry, now, board.location_name)
            weather_payload["isLoading"] = orchestrator.is_loading(WEATHER_FEED_KEY)

            return web.json_response(
                {
                    "clock": board.clock.sample(now).to_api_dict(),
                    "weather": weather_payload,
                    "calendar": calendar_payload,
                }
            )
        except Exception:
            logger.exception("Board endpoint failed")
            return web.json_response({"error": "Failed to build board snapshot", "isStale": True}, status=500)

    async def health_check(_request: web.Request) -> web.Response:
        """Per-feed refresh health for monitoring."""
        now_iso = serialize_datetime_utc(time_provider())
        health_status = health_tracker.get_health_status(now_iso)

        health_data = {
            "status": health_status.status,
            "server_time_iso": health_status.server_time_iso,
            "server_status": {
                "uptime_s": health_status.uptime_seconds,
                "pid": health_status.pid,
            },
            "feeds": health_status.feeds,
        }

        http_status = 200 if health_status.status == "ok" else 503
        return web.json_response(health_data, status=http_status)

    app.router.add_get("/api/events", events)
    app.router.add_get("/api/weather", weather)
    app.router.add_get("/api/board", board_snapshot)
    app.router.add_get("/api/health", health_check)

    logger.debug("API routes registered")
