"""Shared HTTP client manager for glanceboard feed adapters.

One pooled httpx.AsyncClient per client id is reused across refreshes so the
hourly calendar and ten-minute weather fetches do not rebuild connections.
"""

import asyncio
import logging
import random
from typing import Any, Optional

import httpx

from glanceboard.core.exceptions import (
    FeedFetchError,
    FeedHTTPError,
    FeedNetworkError,
    FeedTimeoutError,
)

logger = logging.getLogger(__name__)

# Global state for shared HTTP clients
_shared_clients: dict[str, httpx.AsyncClient] = {}
_client_lock = asyncio.Lock()

_DEFAULT_LIMITS = httpx.Limits(
    max_connections=4,
    max_keepalive_connections=2,
)

_DEFAULT_TIMEOUT = httpx.Timeout(
    connect=10.0,
    read=30.0,
    write=10.0,
    pool=30.0,
)

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": "glanceboard/1.0 (+https://github.com/glanceboard/glanceboard)",
    "Accept": "text/calendar, application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}

# Backoff calculation constants
MAX_BACKOFF_SECONDS = 30.0
JITTER_MIN_FACTOR = 0.1
JITTER_MAX_FACTOR = 0.3


async def get_shared_client(
    client_id: str = "default",
    limits: Optional[httpx.Limits] = None,
    timeout: Optional[httpx.Timeout] = None,
) -> httpx.AsyncClient:
    """Get or create a shared HTTP client with connection pooling.

    Args:
        client_id: Identifier for the client (allows multiple clients if needed)
        limits: Custom connection limits
        timeout: Custom timeout configuration

    Returns:
        Shared httpx.AsyncClient
    """
    async with _client_lock:
        client = _shared_clients.get(client_id)
        if client is None or client.is_closed:
            effective_limits = limits or _DEFAULT_LIMITS
            logger.debug(
                "Creating shared HTTP client '%s' with limits: max_connections=%s, max_keepalive=%s",
                client_id,
                effective_limits.max_connections,
                effective_limits.max_keepalive_connections,
            )
            client = httpx.AsyncClient(
                limits=effective_limits,
                timeout=timeout or _DEFAULT_TIMEOUT,
                follow_redirects=True,
                headers=DEFAULT_HEADERS,
            )
            _shared_clients[client_id] = client
            logger.info("Created shared HTTP client '%s'", client_id)

        return client


async def close_all_clients() -> None:
    """Close all shared HTTP clients.

    Called during application shutdown and between tests.
    """
    async with _client_lock:
        for client_id, client in _shared_clients.items():
            try:
                if not client.is_closed:
                    await client.aclose()
                    logger.debug("Closed shared HTTP client '%s'", client_id)
            except Exception as e:
                logger.warning("Error closing shared HTTP client '%s': %s", client_id, e)

        _shared_clients.clear()
        logger.debug("All shared HTTP clients closed")


def calculate_backoff(attempt: int, backoff_factor: float) -> float:
    """Calculate exponential backoff time with jitter.

    Args:
        attempt: Current retry attempt number (0-indexed)
        backoff_factor: Base factor for exponential backoff calculation

    Returns:
        Backoff time in seconds including jitter, capped at MAX_BACKOFF_SECONDS
    """
    base_backoff = min(backoff_factor**attempt, MAX_BACKOFF_SECONDS)
    jitter = random.uniform(JITTER_MIN_FACTOR, JITTER_MAX_FACTOR) * base_backoff  # nosec B311 - jitter not cryptographic
    return base_backoff + jitter


async def get_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: Optional[dict[str, Any]] = None,
    timeout: Optional[float] = None,
    max_retries: int = 2,
    backoff_factor: float = 1.5,
) -> httpx.Response:
    """GET ``url`` retrying timeouts and network errors with jittered backoff.

    HTTP error statuses are not retried.

    Raises:
        FeedTimeoutError: every attempt timed out
        FeedNetworkError: the last attempt failed at the network level
        FeedHTTPError: upstream answered with a non-success status
    """
    attempt = 0
    while True:
        try:
            response = await client.get(url, params=params, timeout=timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise FeedHTTPError(f"HTTP {status}: {e.response.reason_phrase}", status) from e
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            if attempt >= max_retries:
                logger.warning("All %d attempts failed for %s: %s", attempt + 1, redact_url(url), e)
                if isinstance(e, httpx.TimeoutException):
                    raise FeedTimeoutError(f"Request timeout: {e}") from e
                raise FeedNetworkError(f"Network error: {e}") from e

            backoff_time = calculate_backoff(attempt, backoff_factor)
            logger.warning(
                "Request failed (attempt %d/%d), retrying in %.1fs: %s",
                attempt + 1,
                max_retries + 1,
                backoff_time,
                e,
            )
            await asyncio.sleep(backoff_time)
            attempt += 1
        except httpx.HTTPError as e:
            raise FeedFetchError(f"Unexpected HTTP error: {e}") from e
        else:
            logger.debug("Fetched %s (attempt %d) - %d bytes", redact_url(url), attempt + 1, len(response.content))
            return response


def redact_url(url: str) -> str:
    """Shorten secret-bearing feed URLs for logs."""
    return url[:40] + ("..." if len(url) > 40 else "")
