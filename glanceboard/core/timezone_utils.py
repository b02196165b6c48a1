"""Time and timezone helpers for glanceboard."""

from __future__ import annotations

import datetime
import logging
import os
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

TEST_TIME_ENV = "GLANCEBOARD_TEST_TIME"
TIMEZONE_ENV = "GLANCEBOARD_TIMEZONE"


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for diagnostics via the GLANCEBOARD_TEST_TIME environment
    variable (ISO 8601, e.g. "2025-10-27T08:20:00-04:00"). Naive values are
    assumed to be UTC.

    Returns:
        Current time in UTC with timezone info
    """
    test_time = os.environ.get(TEST_TIME_ENV)
    if test_time:
        try:
            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is not None:
                return dt.astimezone(datetime.UTC)
            return dt.replace(tzinfo=datetime.UTC)
        except (ValueError, OverflowError) as e:
            logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV, test_time, e)

    return datetime.datetime.now(datetime.UTC)


def get_local_timezone(name: Optional[str] = None) -> datetime.tzinfo:
    """Resolve the board's local timezone.

    Priority: explicit name, then GLANCEBOARD_TIMEZONE, then the host's local zone.

    Args:
        name: Optional IANA timezone identifier

    Returns:
        tzinfo for the display's local time
    """
    tz_name = name or os.environ.get(TIMEZONE_ENV)
    if tz_name:
        try:
            return ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r; falling back to host local time", tz_name)

    local = datetime.datetime.now().astimezone().tzinfo
    return local if local is not None else datetime.UTC


def start_of_day(moment: datetime.datetime, tz: datetime.tzinfo) -> datetime.datetime:
    """Return local midnight of the day containing ``moment``."""
    local = moment.astimezone(tz)
    midnight = datetime.datetime.combine(local.date(), datetime.time.min)
    return localize(midnight, tz)


def localize(naive: datetime.datetime, tz: datetime.tzinfo) -> datetime.datetime:
    """Attach ``tz`` to a naive wall-clock datetime.

    Round-trips through UTC so that the resulting offset is normalized for
    nonexistent (DST gap) wall-clock times.
    """
    return naive.replace(tzinfo=tz).astimezone(datetime.UTC).astimezone(tz)


def serialize_datetime_utc(dt: datetime.datetime) -> str:
    """Serialize datetime to ISO 8601 UTC string with Z suffix.

    Args:
        dt: Datetime to serialize (timezone-aware, or naive assumed UTC)

    Returns:
        ISO 8601 string with Z suffix (e.g., "2024-11-04T16:30:00Z")

    Examples:
        >>> serialize_datetime_utc(datetime.datetime(2024, 11, 4, 16, 30, tzinfo=datetime.UTC))
        '2024-11-04T16:30:00Z'
    """
    dt_utc = dt.astimezone(datetime.UTC) if dt.tzinfo is not None else dt.replace(tzinfo=datetime.UTC)
    return dt_utc.isoformat().replace("+00:00", "Z")


def parse_iso(value: str) -> datetime.datetime:
    """Parse an ISO-8601 string into an aware datetime (``Z`` accepted, naive -> UTC)."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.UTC)
    return dt
