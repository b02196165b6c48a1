"""Clock feed: formatted local time sampled once per second."""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Callable, Optional

from glanceboard.core.timezone_utils import get_local_timezone, now_utc, serialize_datetime_utc

logger = logging.getLogger(__name__)

TICK_SECONDS = 1.0


@dataclass(frozen=True)
class ClockReading:
    """One clock sample.

    Attributes:
        time_text: 12-hour time without AM/PM, e.g. "9:05"
        date_text: e.g. "Thursday, March 6"
        at: Sample time in the display timezone
    """

    time_text: str
    date_text: str
    at: datetime.datetime

    def to_api_dict(self) -> dict[str, Any]:
        return {"time": self.time_text, "date": self.date_text, "at": serialize_datetime_utc(self.at)}


def format_time(moment: datetime.datetime) -> str:
    hour = moment.hour % 12 or 12
    return f"{hour}:{moment.minute:02d}"


def format_date(moment: datetime.datetime) -> str:
    return f"{moment:%A, %B} {moment.day}"


class ClockFeed:
    """Samples the display's local time; never fetches, never goes stale."""

    def __init__(
        self,
        tz: Optional[datetime.tzinfo] = None,
        time_provider: Callable[[], datetime.datetime] = now_utc,
        interval: float = TICK_SECONDS,
    ) -> None:
        self.tz = tz or get_local_timezone()
        self._time_provider = time_provider
        self.interval = interval
        self._stopped = asyncio.Event()

    def sample(self, now: Optional[datetime.datetime] = None) -> ClockReading:
        """Format ``now`` (or the current time) in the display timezone."""
        local = (now or self._time_provider()).astimezone(self.tz)
        return ClockReading(time_text=format_time(local), date_text=format_date(local), at=local)

    def stop(self) -> None:
        """Wake and end every running ``ticks()`` iteration."""
        self._stopped.set()

    async def ticks(self) -> AsyncIterator[ClockReading]:
        """Yield a reading every ``interval`` seconds until ``stop()`` is called."""
        self._stopped.clear()
        while not self._stopped.is_set():
            yield self.sample()
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue
        logger.debug("Clock ticks stopped")
