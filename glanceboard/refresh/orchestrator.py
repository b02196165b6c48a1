"""Stale-while-revalidate refresh orchestration for board feeds.

``RefreshOrchestrator.get_feed`` is the single entry point callers use to get
a feed value. It serves the cache while fresh, refreshes when expired or
forced, coalesces concurrent refreshes of the same feed into one fetch, and
falls back to the last known value (or placeholder) flagged stale when a
fetch fails. It never raises for feed failures.
"""

from __future__ import annotations

import asyncio
import contextlib
import datetime
import logging
from collections.abc import Awaitable, Mapping
from typing import Any, Callable, Optional

from glanceboard.cache.freshness import CachedValue, FreshnessCache
from glanceboard.core.health_tracker import HealthTracker
from glanceboard.core.timezone_utils import now_utc

logger = logging.getLogger(__name__)

FeedFetcher = Callable[[datetime.datetime], Awaitable[Any]]


class RefreshOrchestrator:
    """Per-feed serve/refresh decisions on top of a ``FreshnessCache``."""

    def __init__(
        self,
        cache: FreshnessCache,
        fetchers: Mapping[str, FeedFetcher],
        time_provider: Callable[[], datetime.datetime] = now_utc,
        health_tracker: Optional[HealthTracker] = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            cache: Cache holding every feed in ``fetchers``
            fetchers: Feed key -> async callable producing a fresh value for ``now``
            time_provider: Clock used when callers do not pass ``now``
            health_tracker: Optional tracker receiving refresh outcomes
        """
        for key in fetchers:
            cache.definition(key)

        self.cache = cache
        self._fetchers = dict(fetchers)
        self._time_provider = time_provider
        self.health_tracker = health_tracker
        self._in_flight: dict[str, asyncio.Task[CachedValue[Any]]] = {}

        if health_tracker is not None:
            for key in self._fetchers:
                health_tracker.register_feed(key, cache.cache_duration(key).total_seconds())

    @property
    def feed_keys(self) -> list[str]:
        return list(self._fetchers)

    def _current_refresh(self, feed_key: str) -> Optional[asyncio.Task[CachedValue[Any]]]:
        task = self._in_flight.get(feed_key)
        if task is None or task.done():
            return None
        return task

    def is_refreshing(self, feed_key: str) -> bool:
        """True while any refresh of ``feed_key`` is in flight."""
        return self._current_refresh(feed_key) is not None

    def is_loading(self, feed_key: str) -> bool:
        """True only for a foreground refresh: in flight with nothing ever fetched."""
        return self.is_refreshing(feed_key) and not self.cache.has_value(feed_key)

    async def get_feed(
        self,
        feed_key: str,
        force_refresh: bool = False,
        now: Optional[datetime.datetime] = None,
    ) -> CachedValue[Any]:
        """Return the feed value, refreshing it when expired or forced.

        Concurrent callers share one in-flight refresh and receive the same
        ``CachedValue``. Cancelling a caller does not cancel the shared fetch.

        Args:
            feed_key: Registered feed key
            force_refresh: Bypass the freshness window
            now: Reference time; the orchestrator clock when omitted

        Returns:
            Cached, freshly written, or stale-flagged value

        Raises:
            KeyError: unknown feed key
        """
        if now is None:
            now = self._time_provider()

        task = self._ensure_refresh(feed_key, force_refresh, now)
        if task is None:
            return self.cache.read(feed_key)
        return await asyncio.shield(task)

    def request_refresh(
        self,
        feed_key: str,
        force_refresh: bool = False,
        now: Optional[datetime.datetime] = None,
    ) -> bool:
        """Start a refresh when one is due, without waiting for it.

        Used by display snapshots that render the cached value immediately
        and pick up the refreshed value on a later poll.

        Returns:
            True when a refresh is in flight after the call
        """
        if now is None:
            now = self._time_provider()
        self._ensure_refresh(feed_key, force_refresh, now)
        return self.is_refreshing(feed_key)

    def _ensure_refresh(
        self,
        feed_key: str,
        force_refresh: bool,
        now: datetime.datetime,
    ) -> Optional[asyncio.Task[CachedValue[Any]]]:
        """Return the in-flight refresh for ``feed_key``, starting one if due.

        Returns None when the cache is fresh and the refresh is not forced.
        """
        fetcher = self._fetchers[feed_key]
        if not force_refresh and not self.cache.is_expired(feed_key, now):
            return None

        task = self._current_refresh(feed_key)
        if task is not None:
            logger.debug("Joining in-flight %s refresh", feed_key)
            return task

        task = asyncio.create_task(self._refresh(feed_key, fetcher, now), name=f"refresh-{feed_key}")
        self._in_flight[feed_key] = task
        return task

    async def _refresh(self, feed_key: str, fetcher: FeedFetcher, now: datetime.datetime) -> CachedValue[Any]:
        had_value = self.cache.has_value(feed_key)
        logger.debug("Starting %s refresh (%s)", feed_key, "background" if had_value else "foreground")
        if self.health_tracker is not None:
            self.health_tracker.record_refresh_attempt(feed_key)

        try:
            try:
                value = await fetcher(now)
            except Exception as e:
                logger.warning(
                    "Refresh of %s feed failed, serving %s: %s",
                    feed_key,
                    "stale cache" if had_value else "placeholder",
                    e,
                )
                if self.health_tracker is not None:
                    self.health_tracker.record_refresh_failure(feed_key, str(e) or type(e).__name__)
                return self.cache.mark_stale(feed_key)

            entry = self.cache.write(feed_key, value, now)
            if self.health_tracker is not None:
                self.health_tracker.record_refresh_success(feed_key)
            logger.debug("Refreshed %s feed", feed_key)
            return entry
        finally:
            if self._in_flight.get(feed_key) is asyncio.current_task():
                del self._in_flight[feed_key]

    async def aclose(self) -> None:
        """Cancel and await every in-flight refresh."""
        tasks = [task for task in self._in_flight.values() if not task.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._in_flight.clear()
