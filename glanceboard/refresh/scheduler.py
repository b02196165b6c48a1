"""Independent periodic refresh loops, one per feed."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Mapping
from typing import Optional

from glanceboard.refresh.orchestrator import RefreshOrchestrator

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Runs an immediate refresh then a fixed-interval refresh for each feed.

    Each feed gets its own asyncio task; a slow or failing feed never delays
    another feed's timer.
    """

    def __init__(
        self,
        orchestrator: RefreshOrchestrator,
        intervals: Optional[Mapping[str, float]] = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            orchestrator: Orchestrator whose feeds are refreshed
            intervals: Optional per-feed interval in seconds; defaults to the
                feed's cache duration
        """
        self.orchestrator = orchestrator
        self._intervals: dict[str, float] = {}
        for key in orchestrator.feed_keys:
            default = orchestrator.cache.cache_duration(key).total_seconds()
            self._intervals[key] = float((intervals or {}).get(key, default))
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    def interval_for(self, feed_key: str) -> float:
        return self._intervals[feed_key]

    def start(self) -> None:
        """Start one loop per feed; calling twice is a no-op."""
        for key in self._intervals:
            task = self._tasks.get(key)
            if task is not None and not task.done():
                continue
            self._tasks[key] = asyncio.create_task(self._run(key), name=f"refresh-loop-{key}")
        logger.debug("Refresh loops started: %s", ", ".join(sorted(self._tasks)))

    async def stop(self) -> None:
        """Cancel every loop and wait for it to finish."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        logger.debug("Refresh loops stopped")

    async def _run(self, feed_key: str) -> None:
        interval = self._intervals[feed_key]
        logger.debug("Refresh loop for %s starting with interval %.0f seconds", feed_key, interval)

        try:
            await self.orchestrator.get_feed(feed_key)
        except Exception:
            logger.exception("Initial %s refresh failed", feed_key)

        while True:
            await asyncio.sleep(interval)
            try:
                await self.orchestrator.get_feed(feed_key)
            except Exception:
                logger.exception("Periodic %s refresh failed", feed_key)
