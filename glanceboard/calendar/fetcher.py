"""Calendar feed adapter: download the ICS feed and hand it to the normalizer."""

from __future__ import annotations

import asyncio
import datetime
import functools
import logging
from typing import TYPE_CHECKING, Optional

import httpx

from glanceboard.calendar.models import EventRecord
from glanceboard.calendar.normalizer import FEED_HORIZON_DAYS, normalize
from glanceboard.core.exceptions import FeedParseError
from glanceboard.core.http_client import get_shared_client, get_with_retry, redact_url

if TYPE_CHECKING:
    from glanceboard.core.config_loader import Config

logger = logging.getLogger(__name__)

CLIENT_ID = "calendar"


class CalendarFetcher:
    """Async downloader for a single iCalendar feed URL."""

    def __init__(
        self,
        url: str,
        *,
        request_timeout: float = 30,
        max_retries: int = 2,
        backoff_factor: float = 1.5,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            url: Secret iCalendar feed URL
            request_timeout: Per-request timeout in seconds
            max_retries: Retries for timeouts and network errors
            backoff_factor: Exponential backoff base
            client: Optional client to use instead of the shared pool
        """
        self.url = url
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await get_shared_client(CLIENT_ID)

    async def fetch_feed_text(self) -> str:
        """Download the raw feed.

        Returns:
            ICS document text

        Raises:
            FeedFetchError: transport failure or non-success status
            FeedParseError: empty body or a body that is not an iCalendar document
        """
        client = await self._get_client()
        logger.debug("Fetching calendar feed %s", redact_url(self.url))
        response = await get_with_retry(
            client,
            self.url,
            timeout=self.request_timeout,
            max_retries=self.max_retries,
            backoff_factor=self.backoff_factor,
        )

        content = response.text
        content_type = response.headers.get("content-type", "").lower()
        if content_type and not any(ct in content_type for ct in ("text/calendar", "text/plain")):
            logger.warning("Unexpected calendar content type: %s", content_type)

        if not content.strip():
            raise FeedParseError("Empty calendar feed received")
        if "BEGIN:VCALENDAR" not in content:
            raise FeedParseError("Calendar feed does not look like iCalendar data")

        logger.debug("Fetched calendar feed (%d bytes)", len(content))
        return content


class CalendarSource:
    """Refresh callable for the calendar feed: fetch then normalize.

    With no URL configured the source answers with an empty event list on
    every call and warns once.
    """

    def __init__(
        self,
        fetcher: Optional[CalendarFetcher],
        *,
        tz: Optional[datetime.tzinfo] = None,
        horizon_days: int = FEED_HORIZON_DAYS,
    ) -> None:
        self.fetcher = fetcher
        self.tz = tz
        self.horizon_days = horizon_days
        self._warned_unconfigured = False

    @classmethod
    def from_config(cls, config: "Config", tz: Optional[datetime.tzinfo] = None) -> "CalendarSource":
        """Build a source from application configuration."""
        fetcher = None
        if config.ical_url:
            fetcher = CalendarFetcher(
                config.ical_url,
                request_timeout=config.request_timeout,
                max_retries=config.max_retries,
                backoff_factor=config.retry_backoff_factor,
            )
        return cls(fetcher, tz=tz)

    @property
    def is_configured(self) -> bool:
        return self.fetcher is not None

    async def __call__(self, now: datetime.datetime) -> tuple[EventRecord, ...]:
        """Fetch and normalize the feed relative to ``now``.

        Raises:
            FeedError: any fetch or parse failure
        """
        if self.fetcher is None:
            if not self._warned_unconfigured:
                logger.warning("No calendar URL configured (GLANCEBOARD_ICAL_URL) - returning empty events")
                self._warned_unconfigured = True
            return ()

        raw_feed = await self.fetcher.fetch_feed_text()
        # Normalization runs in the default executor, off the event loop
        loop = asyncio.get_running_loop()
        events = await loop.run_in_executor(
            None, functools.partial(normalize, raw_feed, now, horizon_days=self.horizon_days, tz=self.tz)
        )
        logger.info("Fetched %d calendar events", len(events))
        return tuple(events)
