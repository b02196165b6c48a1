"""Health tracking and monitoring for the glanceboard server."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class FeedHealth:
    """Refresh bookkeeping for a single feed."""

    expected_interval_seconds: float
    last_attempt: Optional[float] = None
    last_success: Optional[float] = None
    last_failure: Optional[float] = None
    last_error: Optional[str] = None
    consecutive_failures: int = 0


@dataclass
class HealthStatus:
    """Health status information for the server."""

    status: str  # "ok" or "degraded"
    server_time_iso: str
    uptime_seconds: int
    pid: int
    feeds: dict[str, dict[str, Any]] = field(default_factory=dict)


class HealthTracker:
    """In-memory per-feed health tracking for server monitoring."""

    def __init__(self) -> None:
        """Initialize health tracker with no registered feeds."""
        self._start_time: float = time.time()
        self._feeds: dict[str, FeedHealth] = {}

    def register_feed(self, feed_key: str, expected_interval_seconds: float) -> None:
        """Register a feed and the interval it is expected to refresh at.

        Args:
            feed_key: Feed identifier
            expected_interval_seconds: Normal refresh cadence for the feed
        """
        self._feeds.setdefault(feed_key, FeedHealth(expected_interval_seconds=expected_interval_seconds))

    def _feed(self, feed_key: str) -> FeedHealth:
        return self._feeds.setdefault(feed_key, FeedHealth(expected_interval_seconds=3600))

    def record_refresh_attempt(self, feed_key: str) -> None:
        """Record that a refresh attempt was made."""
        self._feed(feed_key).last_attempt = time.time()

    def record_refresh_success(self, feed_key: str) -> None:
        """Record a successful refresh."""
        health = self._feed(feed_key)
        health.last_success = time.time()
        health.consecutive_failures = 0
        health.last_error = None

    def record_refresh_failure(self, feed_key: str, error: str) -> None:
        """Record a failed refresh.

        Args:
            feed_key: Feed identifier
            error: Short description of the failure
        """
        health = self._feed(feed_key)
        health.last_failure = time.time()
        health.last_error = error
        health.consecutive_failures += 1

    def get_uptime_seconds(self) -> int:
        """Get server uptime in seconds."""
        return int(time.time() - self._start_time)

    def get_last_success_age_seconds(self, feed_key: str) -> Optional[int]:
        """Get age of last successful refresh in seconds, None if never refreshed."""
        health = self._feeds.get(feed_key)
        if health is None or health.last_success is None:
            return None
        return int(time.time() - health.last_success)

    def is_feed_healthy(self, feed_key: str) -> bool:
        """A feed is healthy when it succeeded within twice its refresh interval."""
        health = self._feeds.get(feed_key)
        age = self.get_last_success_age_seconds(feed_key)
        if health is None or age is None:
            return False
        return age <= 2 * health.expected_interval_seconds

    def determine_overall_status(self) -> str:
        """Determine overall health status.

        Returns:
            "ok" when every registered feed is healthy, otherwise "degraded"
        """
        if not self._feeds:
            return "degraded"
        return "ok" if all(self.is_feed_healthy(key) for key in self._feeds) else "degraded"

    def get_health_status(self, current_time_iso: str) -> HealthStatus:
        """Get comprehensive health status.

        Args:
            current_time_iso: Current time in ISO format

        Returns:
            HealthStatus object with all health information
        """
        feeds: dict[str, dict[str, Any]] = {}
        for key, health in self._feeds.items():
            feeds[key] = {
                "healthy": self.is_feed_healthy(key),
                "last_success_age_s": self.get_last_success_age_seconds(key),
                "consecutive_failures": health.consecutive_failures,
                "last_error": health.last_error,
            }

        return HealthStatus(
            status=self.determine_overall_status(),
            server_time_iso=current_time_iso,
            uptime_seconds=self.get_uptime_seconds(),
            pid=os.getpid(),
            feeds=feeds,
        )
