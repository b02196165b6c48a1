"""
Integration tests for the glanceboard HTTP API.

Runs the real aiohttp application, board wiring, freshness cache and JSON
store against fake feed fetchers with a fixed clock.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

import pytest
from aiohttp import test_utils

from glanceboard.api.server import _make_app
from glanceboard.board import Board, build_board
from glanceboard.cache.store import JsonCacheStore
from glanceboard.calendar.models import EventRecord
from glanceboard.core.config_loader import Config
from glanceboard.core.exceptions import FeedNetworkError
from glanceboard.feeds import CALENDAR_FEED_KEY, WEATHER_FEED_KEY
from glanceboard.weather.models import WeatherReading

pytestmark = [pytest.mark.integration]

SUNNY = WeatherReading(temperature=75, description="Clear sky", weather_code=0, high=82, low=63)


class FakeFeed:
    """Feed fetcher answering with queued results; optionally gated."""

    def __init__(self, *results: Any, gated: bool = False) -> None:
        self.results = list(results)
        self.calls = 0
        self.gate: Optional[asyncio.Event] = asyncio.Event() if gated else None

    async def __call__(self, now: datetime) -> Any:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        result = self.results[min(self.calls, len(self.results)) - 1]
        if isinstance(result, BaseException):
            raise result
        return result


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _event(event_id: str, start: datetime, title: str = "Event") -> EventRecord:
    return EventRecord(id=event_id, title=title, start=start, end=start + timedelta(hours=1))


@pytest.fixture
def clock(fixed_now: datetime) -> Clock:
    return Clock(fixed_now)


@pytest.fixture
def upcoming(fixed_now: datetime, board_tz) -> tuple[EventRecord, ...]:
    local = fixed_now.astimezone(board_tz)
    return (
        _event("soon", local + timedelta(days=1), "Dentist"),
        _event("later", local + timedelta(days=20), "Conference"),
    )


@pytest.fixture
async def make_board(tmp_path: Path, clock: Clock) -> AsyncIterator[Callable[..., Board]]:
    boards: list[Board] = []

    def _make(calendar: Any, weather: Any) -> Board:
        config = Config(timezone="America/New_York", cache_dir=tmp_path, location_name="Lake House")
        board = build_board(
            config,
            calendar_fetcher=calendar,
            weather_fetcher=weather,
            store=JsonCacheStore(tmp_path),
            time_provider=clock,
        )
        boards.append(board)
        return board

    yield _make

    for board in boards:
        await board.aclose()


def _client(board: Board) -> test_utils.TestClient:
    return test_utils.TestClient(test_utils.TestServer(_make_app(board)))


class TestEventsEndpoint:
    async def test_events_when_fetched_then_utc_times_and_fresh_flags(self, make_board, upcoming) -> None:
        board = make_board(FakeFeed(upcoming), FakeFeed(SUNNY))

        async with _client(board) as client:
            resp = await client.get("/api/events", headers={"X-Request-ID": "kiosk-1"})
            body = await resp.json()

        assert resp.status == 200
        assert resp.headers["X-Request-ID"] == "kiosk-1"
        assert body["isStale"] is False
        assert body["lastUpdated"] == "2025-06-10T14:00:00Z"
        assert [e["id"] for e in body["events"]] == ["soon", "later"]
        assert body["events"][0] == {
            "id": "soon",
            "title": "Dentist",
            "start": "2025-06-11T14:00:00Z",
            "end": "2025-06-11T15:00:00Z",
            "allDay": False,
        }

    async def test_events_when_fresh_then_not_refetched_unless_forced(self, make_board, upcoming, clock) -> None:
        calendar = FakeFeed(upcoming)
        board = make_board(calendar, FakeFeed(SUNNY))

        async with _client(board) as client:
            await client.get("/api/events")
            clock.now += timedelta(minutes=30)
            await client.get("/api/events")
            assert calendar.calls == 1

            resp = await client.get("/api/events", params={"force": "true"})
            body = await resp.json()

        assert calendar.calls == 2
        assert body["lastUpdated"] == "2025-06-10T14:30:00Z"

    async def test_events_when_fetch_fails_then_stale_empty_list(self, make_board) -> None:
        board = make_board(FakeFeed(FeedNetworkError("offline")), FakeFeed(SUNNY))

        async with _client(board) as client:
            resp = await client.get("/api/events")
            body = await resp.json()

        assert resp.status == 200
        assert body == {"events": [], "lastUpdated": "2025-06-10T14:00:00Z", "isStale": True}

    async def test_events_when_refresh_fails_after_success_then_last_events_stale(
        self, make_board, upcoming, clock
    ) -> None:
        board = make_board(FakeFeed(upcoming, FeedNetworkError("offline")), FakeFeed(SUNNY))

        async with _client(board) as client:
            await client.get("/api/events")
            clock.now += timedelta(hours=2)
            body = await (await client.get("/api/events")).json()

        assert body["isStale"] is True
        assert body["lastUpdated"] == "2025-06-10T14:00:00Z"
        assert len(body["events"]) == 2

    async def test_events_when_handler_breaks_then_error_payload(self, make_board, monkeypatch) -> None:
        board = make_board(FakeFeed(()), FakeFeed(SUNNY))

        async def broken_get_feed(*args: Any, **kwargs: Any) -> Any:
            raise RuntimeError("unexpected")

        monkeypatch.setattr(board.orchestrator, "get_feed", broken_get_feed)

        async with _client(board) as client:
            resp = await client.get("/api/events")
            body = await resp.json()

        assert resp.status == 500
        assert body == {"error": "Failed to fetch events", "events": [], "isStale": True}


class TestWeatherEndpoint:
    async def test_weather_when_fetched_then_reading_fields(self, make_board) -> None:
        board = make_board(FakeFeed(()), FakeFeed(SUNNY))

        async with _client(board) as client:
            body = await (await client.get("/api/weather")).json()

        assert body == {
            "temp": 75,
            "description": "Clear sky",
            "weatherCode": 0,
            "high": 82,
            "low": 63,
            "location": "Lake House",
            "lastUpdated": "2025-06-10T14:00:00Z",
            "isStale": False,
            "isLoading": False,
        }

    async def test_weather_when_fetch_fails_then_placeholder_flagged_stale(self, make_board) -> None:
        board = make_board(FakeFeed(()), FakeFeed(FeedNetworkError("offline")))

        async with _client(board) as client:
            body = await (await client.get("/api/weather")).json()

        assert body["temp"] == 28
        assert body["description"] == "Partly cloudy"
        assert body["isStale"] is True


class TestBoardEndpoint:
    async def test_board_when_first_poll_then_loading_placeholders_then_refreshed_values(
        self, make_board, upcoming
    ) -> None:
        calendar = FakeFeed(upcoming, gated=True)
        weather = FakeFeed(SUNNY, gated=True)
        board = make_board(calendar, weather)

        async with _client(board) as client:
            first = await (await client.get("/api/board")).json()

            assert first["calendar"]["isLoading"] is True
            assert first["calendar"]["events"] == []
            assert first["weather"]["isLoading"] is True
            assert first["weather"]["temp"] == 28
            assert first["clock"] == {"time": "10:00", "date": "Tuesday, June 10", "at": "2025-06-10T14:00:00Z"}

            calendar.gate.set()
            weather.gate.set()
            await board.orchestrator.get_feed(CALENDAR_FEED_KEY)
            await board.orchestrator.get_feed(WEATHER_FEED_KEY)

            second = await (await client.get("/api/board")).json()

        assert calendar.calls == 1
        assert weather.calls == 1
        assert second["calendar"]["isLoading"] is False
        assert [e["id"] for e in second["calendar"]["events"]] == ["soon"]
        assert second["weather"]["temp"] == 75
        assert second["weather"]["isStale"] is False
        assert second["weather"]["location"] == "Lake House"


class TestHealthEndpoint:
    async def test_health_when_feeds_never_refreshed_then_degraded_503(self, make_board) -> None:
        board = make_board(FakeFeed(()), FakeFeed(SUNNY))

        async with _client(board) as client:
            resp = await client.get("/api/health")
            body = await resp.json()

        assert resp.status == 503
        assert body["status"] == "degraded"
        assert set(body["feeds"]) == {"calendar", "weather"}
        assert body["server_time_iso"] == "2025-06-10T14:00:00Z"

    async def test_health_when_all_feeds_refreshed_then_ok_200(self, make_board, upcoming) -> None:
        board = make_board(FakeFeed(upcoming), FakeFeed(SUNNY))

        async with _client(board) as client:
            await client.get("/api/events")
            await client.get("/api/weather")
            resp = await client.get("/api/health")
            body = await resp.json()

        assert resp.status == 200
        assert body["status"] == "ok"
        assert body["feeds"]["calendar"]["healthy"] is True
        assert body["server_status"]["pid"] > 0


class TestBoardLifecycle:
    async def test_start_when_running_then_clock_heartbeat_logged_until_closed(self, make_board, caplog) -> None:
        board = make_board(FakeFeed(()), FakeFeed(SUNNY))

        with caplog.at_level(logging.DEBUG, logger="glanceboard.board"):
            board.start()
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            assert board.scheduler.running is True
            await board.aclose()

        assert "Clock 10:00, Tuesday, June 10" in caplog.text
        assert board.scheduler.running is False
        assert not [task for task in asyncio.all_tasks() if task.get_name() == "clock-heartbeat"]

    async def test_aclose_when_closed_immediately_after_start_then_returns(self, make_board) -> None:
        board = make_board(FakeFeed(()), FakeFeed(SUNNY))

        board.start()
        await asyncio.wait_for(board.aclose(), timeout=2)

        assert not [task for task in asyncio.all_tasks() if task.get_name() == "clock-heartbeat"]


class TestRestart:
    async def test_events_when_restarted_within_window_then_persisted_events_without_fetch(
        self, make_board, upcoming, clock
    ) -> None:
        first_board = make_board(FakeFeed(upcoming), FakeFeed(SUNNY))
        async with _client(first_board) as client:
            await client.get("/api/events")

        clock.now += timedelta(minutes=20)
        calendar = FakeFeed(FeedNetworkError("should not be called"))
        second_board = make_board(calendar, FakeFeed(SUNNY))

        async with _client(second_board) as client:
            body = await (await client.get("/api/events")).json()

        assert calendar.calls == 0
        assert body["isStale"] is False
        assert body["lastUpdated"] == "2025-06-10T14:00:00Z"
        assert [e["id"] for e in body["events"]] == ["soon", "later"]
