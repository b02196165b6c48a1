"""Shared fixtures for glanceboard tests."""

from collections.abc import AsyncIterator, Generator
from datetime import UTC, date, datetime, timedelta
from typing import Any, Optional
from zoneinfo import ZoneInfo

import pytest

from glanceboard.core.http_client import close_all_clients

BOARD_TIMEZONE = "America/New_York"

_ENV_VARS = (
    "GLANCEBOARD_TEST_TIME",
    "GLANCEBOARD_TIMEZONE",
    "GLANCEBOARD_DEBUG",
    "GLANCEBOARD_LOG_LEVEL",
    "GLANCEBOARD_ICAL_URL",
    "GOOGLE_ICAL_URL",
    "GLANCEBOARD_WEB_PORT",
    "GLANCEBOARD_WEB_HOST",
    "PORT",
    "GLANCEBOARD_LATITUDE",
    "GLANCEBOARD_LONGITUDE",
    "GLANCEBOARD_LOCATION_NAME",
    "GLANCEBOARD_CACHE_DIR",
    "GLANCEBOARD_REQUEST_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, Any, None]:
    """Clear glanceboard environment variables before and after each test."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close shared httpx clients after every test."""
    yield
    await close_all_clients()


@pytest.fixture
def board_tz() -> ZoneInfo:
    """Deterministic display timezone (no DST change in the month after ``fixed_now``)."""
    return ZoneInfo(BOARD_TIMEZONE)


@pytest.fixture
def fixed_now() -> datetime:
    """2025-06-10 10:00 in New York."""
    return datetime(2025, 6, 10, 14, 0, tzinfo=UTC)


@pytest.fixture
def today(fixed_now: datetime, board_tz: ZoneInfo) -> date:
    """Local calendar date of ``fixed_now``."""
    return fixed_now.astimezone(board_tz).date()


class IcsBuilder:
    """Small helpers for writing iCalendar test documents."""

    @staticmethod
    def floating(day: date, hour: int = 12, minute: int = 0) -> str:
        """Floating (local wall-clock) DATE-TIME value."""
        return f"{day:%Y%m%d}T{hour:02d}{minute:02d}00"

    @staticmethod
    def date(day: date) -> str:
        return f"{day:%Y%m%d}"

    @staticmethod
    def shift(day: date, n: int) -> date:
        return day + timedelta(days=n)

    @staticmethod
    def event(
        uid: Optional[str] = None,
        summary: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
        *extra: str,
    ) -> str:
        """One VEVENT block. ``start``/``end`` are DTSTART/DTEND values or full property lines."""
        lines = ["BEGIN:VEVENT"]
        if uid is not None:
            lines.append(f"UID:{uid}")
        if summary is not None:
            lines.append(f"SUMMARY:{summary}")
        if start is not None:
            lines.append(start if start.startswith("DTSTART") else f"DTSTART:{start}")
        if end is not None:
            lines.append(end if end.startswith("DTEND") else f"DTEND:{end}")
        lines.extend(extra)
        lines.append("END:VEVENT")
        return "\r\n".join(lines)

    @staticmethod
    def calendar(*components: str) -> str:
        parts = [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            "PRODID:-//Glance Board Test//EN",
            "CALSCALE:GREGORIAN",
            *components,
            "END:VCALENDAR",
        ]
        return "\r\n".join(parts) + "\r\n"


@pytest.fixture
def ics() -> IcsBuilder:
    """iCalendar document builder."""
    return IcsBuilder()
