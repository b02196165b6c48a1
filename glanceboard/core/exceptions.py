"""Exception hierarchy for glanceboard feed sources."""

from __future__ import annotations

from typing import Optional


class FeedError(Exception):
    """Base exception for any feed fetch or parse failure."""


class FeedFetchError(FeedError):
    """Base exception for transport-level fetch errors."""


class FeedNetworkError(FeedFetchError):
    """Network error (DNS, refused connection, TLS) during fetch."""


class FeedTimeoutError(FeedFetchError):
    """Request timed out during fetch."""


class FeedHTTPError(FeedFetchError):
    """Upstream answered with a non-success HTTP status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FeedParseError(FeedError):
    """Payload was received but could not be parsed."""
