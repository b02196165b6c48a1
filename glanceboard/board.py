"""Assembly of the board's cache, orchestrator, scheduler and clock."""

from __future__ import annotations

import asyncio
import contextlib
import datetime
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from glanceboard.cache.freshness import FreshnessCache
from glanceboard.cache.store import JsonCacheStore
from glanceboard.calendar.fetcher import CalendarSource
from glanceboard.clock import ClockFeed
from glanceboard.core.config_loader import Config
from glanceboard.core.health_tracker import HealthTracker
from glanceboard.core.timezone_utils import get_local_timezone, now_utc
from glanceboard.feeds import BOARD_FEEDS, CALENDAR_FEED_KEY, WEATHER_FEED_KEY
from glanceboard.refresh.orchestrator import FeedFetcher, RefreshOrchestrator
from glanceboard.refresh.scheduler import RefreshScheduler
from glanceboard.weather.fetcher import WeatherFetcher

logger = logging.getLogger(__name__)


@dataclass
class Board:
    """Everything the HTTP layer needs to answer feed requests."""

    cache: FreshnessCache
    orchestrator: RefreshOrchestrator
    scheduler: RefreshScheduler
    clock: ClockFeed
    health_tracker: HealthTracker
    tz: datetime.tzinfo
    time_provider: Callable[[], datetime.datetime]
    location_name: str = ""
    _clock_task: Optional[asyncio.Task[None]] = field(default=None, init=False, repr=False)

    def start(self) -> None:
        """Start the refresh scheduler and the clock heartbeat. Requires a running loop."""
        self.scheduler.start()
        if self._clock_task is None or self._clock_task.done():
            self._clock_task = asyncio.create_task(self._clock_heartbeat(), name="clock-heartbeat")

    async def _clock_heartbeat(self) -> None:
        """Log the displayed time once per minute change."""
        shown = None
        async for reading in self.clock.ticks():
            if reading.time_text != shown:
                shown = reading.time_text
                logger.debug("Clock %s, %s", reading.time_text, reading.date_text)

    async def aclose(self) -> None:
        """Stop background loops and cancel outstanding refreshes."""
        self.clock.stop()
        if self._clock_task is not None:
            self._clock_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._clock_task
            self._clock_task = None
        await self.scheduler.stop()
        await self.orchestrator.aclose()


def build_board(
    config: Config,
    *,
    calendar_fetcher: Optional[FeedFetcher] = None,
    weather_fetcher: Optional[FeedFetcher] = None,
    store: Optional[JsonCacheStore] = None,
    time_provider: Callable[[], datetime.datetime] = now_utc,
    rehydrate: bool = True,
) -> Board:
    """Wire up a board from configuration.

    Args:
        config: Application configuration
        calendar_fetcher: Override for the calendar refresh callable
        weather_fetcher: Override for the weather refresh callable
        store: Override for the durable store; built from ``config.cache_dir`` when omitted
        time_provider: Clock for the orchestrator and display
        rehydrate: Restore persisted feed values before the first refresh

    Returns:
        Assembled board; call ``board.start()`` inside a running loop
    """
    tz = get_local_timezone(config.timezone)
    if store is None:
        store = JsonCacheStore(config.cache_dir)

    cache = FreshnessCache(BOARD_FEEDS, store=store)
    if rehydrate:
        restored = cache.rehydrate()
        logger.debug("Rehydrated feeds: %s", ", ".join(restored) or "none")

    fetchers: dict[str, FeedFetcher] = {
        CALENDAR_FEED_KEY: calendar_fetcher or CalendarSource.from_config(config, tz=tz),
        WEATHER_FEED_KEY: weather_fetcher or WeatherFetcher.from_config(config),
    }

    health_tracker = HealthTracker()
    orchestrator = RefreshOrchestrator(cache, fetchers, time_provider=time_provider, health_tracker=health_tracker)
    return Board(
        cache=cache,
        orchestrator=orchestrator,
        scheduler=RefreshScheduler(orchestrator),
        clock=ClockFeed(tz=tz, time_provider=time_provider),
        health_tracker=health_tracker,
        tz=tz,
        time_provider=time_provider,
        location_name=config.location_name,
    )
