"""
Unit tests for glanceboard.refresh.orchestrator.RefreshOrchestrator

Covers:
- serving fresh cache without fetching
- refresh on expiry and on force
- coalescing concurrent refreshes into one fetch
- stale fallback to last value or placeholder
- loading/refreshing flags and health bookkeeping
"""

import asyncio
import contextlib
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from pydantic import TypeAdapter

from glanceboard.cache.freshness import FeedDefinition, FreshnessCache
from glanceboard.core.exceptions import FeedHTTPError, FeedNetworkError
from glanceboard.core.health_tracker import HealthTracker
from glanceboard.refresh.orchestrator import RefreshOrchestrator

pytestmark = [pytest.mark.unit, pytest.mark.fast]

T0 = datetime(2025, 6, 10, 14, 0, tzinfo=UTC)
DURATION = timedelta(minutes=10)


def _definition(key: str = "demo") -> FeedDefinition[str]:
    return FeedDefinition(
        key=key,
        cache_duration=DURATION,
        placeholder="placeholder",
        value_adapter=TypeAdapter(str),
        store_identifier=f"{key}-feed",
    )


class DummyFetcher:
    """Counts calls and answers with queued values or errors."""

    def __init__(self, *results: Any) -> None:
        self.results = list(results) or ["fresh"]
        self.calls = 0
        self.seen_now: list[datetime] = []

    async def __call__(self, now: datetime) -> Any:
        self.calls += 1
        self.seen_now.append(now)
        result = self.results[min(self.calls, len(self.results)) - 1]
        if isinstance(result, BaseException):
            raise result
        return result


class GatedFetcher(DummyFetcher):
    """Blocks every call until ``gate`` is set."""

    def __init__(self, *results: Any) -> None:
        super().__init__(*results)
        self.gate = asyncio.Event()

    async def __call__(self, now: datetime) -> Any:
        self.calls += 1
        self.seen_now.append(now)
        await self.gate.wait()
        result = self.results[min(self.calls, len(self.results)) - 1]
        if isinstance(result, BaseException):
            raise result
        return result


def _orchestrator(fetcher: Any, **kwargs: Any) -> RefreshOrchestrator:
    cache = FreshnessCache([_definition()])
    return RefreshOrchestrator(cache, {"demo": fetcher}, time_provider=lambda: T0, **kwargs)


class TestServeDecision:
    """Fresh/expired/forced handling."""

    async def test_get_feed_when_fresh_then_cache_returned_without_fetch(self) -> None:
        """Within the freshness window the cached value is returned and nothing is fetched."""
        fetcher = DummyFetcher()
        orch = _orchestrator(fetcher)
        written = orch.cache.write("demo", "cached", T0)

        result = await orch.get_feed("demo", now=T0 + timedelta(minutes=9, seconds=59))

        assert result is written
        assert fetcher.calls == 0

    async def test_get_feed_when_window_elapsed_then_refetched(self) -> None:
        """The freshness boundary is inclusive: exactly one duration later is expired."""
        fetcher = DummyFetcher("new")
        orch = _orchestrator(fetcher)
        orch.cache.write("demo", "cached", T0)

        result = await orch.get_feed("demo", now=T0 + DURATION)

        assert fetcher.calls == 1
        assert result.value == "new"
        assert result.fetched_at == T0 + DURATION
        assert result.is_stale is False

    async def test_get_feed_when_forced_then_fetch_even_if_fresh(self) -> None:
        fetcher = DummyFetcher("forced")
        orch = _orchestrator(fetcher)
        orch.cache.write("demo", "cached", T0)

        result = await orch.get_feed("demo", force_refresh=True, now=T0 + timedelta(seconds=1))

        assert fetcher.calls == 1
        assert result.value == "forced"

    async def test_get_feed_when_never_fetched_then_foreground_fetch(self) -> None:
        fetcher = DummyFetcher("first")
        orch = _orchestrator(fetcher)

        result = await orch.get_feed("demo", now=T0)

        assert result.value == "first"
        assert orch.cache.read("demo") is result

    async def test_get_feed_when_now_omitted_then_time_provider_used(self) -> None:
        fetcher = DummyFetcher("value")
        orch = _orchestrator(fetcher)

        result = await orch.get_feed("demo")

        assert fetcher.seen_now == [T0]
        assert result.fetched_at == T0

    async def test_get_feed_when_fetch_slow_then_initiating_now_recorded(self) -> None:
        """The fetch time recorded is the ``now`` that started the refresh."""
        clock = {"now": T0}
        fetcher = GatedFetcher("value")
        cache = FreshnessCache([_definition()])
        orch = RefreshOrchestrator(cache, {"demo": fetcher}, time_provider=lambda: clock["now"])

        caller = asyncio.create_task(orch.get_feed("demo"))
        await asyncio.sleep(0)
        clock["now"] = T0 + timedelta(seconds=45)
        fetcher.gate.set()
        result = await caller

        assert result.fetched_at == T0

    async def test_get_feed_when_unknown_key_then_key_error(self) -> None:
        orch = _orchestrator(DummyFetcher())

        with pytest.raises(KeyError):
            await orch.get_feed("unknown", now=T0)

    def test_init_when_fetcher_key_not_registered_then_key_error(self) -> None:
        cache = FreshnessCache([_definition()])

        with pytest.raises(KeyError):
            RefreshOrchestrator(cache, {"other": DummyFetcher()})


class TestCoalescing:
    """Concurrent callers share one in-flight refresh."""

    async def test_get_feed_when_five_concurrent_callers_then_single_fetch(self) -> None:
        fetcher = GatedFetcher("shared")
        orch = _orchestrator(fetcher)

        callers = [asyncio.create_task(orch.get_feed("demo", now=T0)) for _ in range(5)]
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert orch.is_refreshing("demo") is True

        fetcher.gate.set()
        results = await asyncio.gather(*callers)

        assert fetcher.calls == 1
        assert all(result is results[0] for result in results)
        assert results[0].value == "shared"
        assert orch.is_refreshing("demo") is False

    @pytest.mark.parametrize(
        ("prior", "expected"),
        [(None, "placeholder"), ("last good", "last good")],
        ids=["no-prior-value", "prior-value"],
    )
    async def test_get_feed_when_concurrent_callers_and_fetch_fails_then_one_call_same_stale_value(
        self, prior: Any, expected: str
    ) -> None:
        fetcher = GatedFetcher(FeedNetworkError("down"))
        orch = _orchestrator(fetcher)
        if prior is not None:
            orch.cache.write("demo", prior, T0)

        callers = [asyncio.create_task(orch.get_feed("demo", now=T0 + DURATION)) for _ in range(5)]
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        fetcher.gate.set()
        results = await asyncio.gather(*callers)

        assert fetcher.calls == 1
        assert all(result is results[0] for result in results)
        assert results[0].is_stale is True
        assert results[0].value == expected
        assert orch.cache.read("demo") is results[0]

    async def test_get_feed_when_forced_during_refresh_then_joins_in_flight(self) -> None:
        """A forced call while a refresh is running does not start a second fetch."""
        fetcher = GatedFetcher("shared")
        orch = _orchestrator(fetcher)

        first = asyncio.create_task(orch.get_feed("demo", now=T0))
        await asyncio.sleep(0)
        second = asyncio.create_task(orch.get_feed("demo", force_refresh=True, now=T0))
        await asyncio.sleep(0)

        fetcher.gate.set()
        a, b = await asyncio.gather(first, second)

        assert fetcher.calls == 1
        assert a is b

    async def test_get_feed_when_refresh_completes_then_next_expiry_fetches_again(self) -> None:
        fetcher = DummyFetcher("one", "two")
        orch = _orchestrator(fetcher)

        await orch.get_feed("demo", now=T0)
        result = await orch.get_feed("demo", now=T0 + DURATION)

        assert fetcher.calls == 2
        assert result.value == "two"

    async def test_get_feed_when_caller_cancelled_then_shared_refresh_still_writes(self) -> None:
        fetcher = GatedFetcher("survived")
        orch = _orchestrator(fetcher)

        caller = asyncio.create_task(orch.get_feed("demo", now=T0))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        caller.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await caller

        assert orch.is_refreshing("demo") is True
        fetcher.gate.set()
        result = await orch.get_feed("demo", now=T0)

        assert fetcher.calls == 1
        assert result.value == "survived"
        assert orch.cache.read("demo").value == "survived"


class TestFailureFallback:
    """Failed refreshes never raise and keep the last known value."""

    async def test_get_feed_when_fetch_fails_with_prior_value_then_stale_prior_value(self) -> None:
        fetcher = DummyFetcher(FeedNetworkError("connection refused"))
        orch = _orchestrator(fetcher)
        orch.cache.write("demo", "last good", T0)

        result = await orch.get_feed("demo", now=T0 + timedelta(minutes=11))

        assert result.value == "last good"
        assert result.fetched_at == T0
        assert result.is_stale is True

    async def test_get_feed_when_fetch_fails_without_value_then_stale_placeholder(self) -> None:
        fetcher = DummyFetcher(FeedHTTPError("HTTP 500", 500))
        orch = _orchestrator(fetcher)

        result = await orch.get_feed("demo", now=T0)

        assert result.value == "placeholder"
        assert result.fetched_at is None
        assert result.is_stale is True

    async def test_get_feed_when_unexpected_exception_then_still_stale_fallback(self) -> None:
        fetcher = DummyFetcher(RuntimeError("boom"))
        orch = _orchestrator(fetcher)

        result = await orch.get_feed("demo", now=T0)

        assert result.is_stale is True

    async def test_get_feed_when_success_after_failure_then_stale_cleared(self) -> None:
        fetcher = DummyFetcher(FeedNetworkError("down"), "recovered")
        orch = _orchestrator(fetcher)

        stale = await orch.get_feed("demo", now=T0)
        fresh = await orch.get_feed("demo", now=T0 + timedelta(seconds=5))

        assert stale.is_stale is True
        assert fresh.value == "recovered"
        assert fresh.is_stale is False

    async def test_get_feed_when_stale_served_then_earlier_snapshot_unchanged(self) -> None:
        fetcher = DummyFetcher(FeedNetworkError("down"))
        orch = _orchestrator(fetcher)
        before = orch.cache.write("demo", "kept", T0)

        await orch.get_feed("demo", now=T0 + DURATION)

        assert before.is_stale is False

    async def test_get_feed_when_one_feed_fails_then_other_feed_unaffected(self) -> None:
        cache = FreshnessCache([_definition("alpha"), _definition("beta")])
        orch = RefreshOrchestrator(
            cache,
            {"alpha": DummyFetcher(FeedNetworkError("down")), "beta": DummyFetcher("ok")},
        )

        alpha = await orch.get_feed("alpha", now=T0)
        beta = await orch.get_feed("beta", now=T0)

        assert alpha.is_stale is True
        assert beta.is_stale is False
        assert beta.value == "ok"


class TestFlags:
    async def test_is_loading_when_first_fetch_in_flight_then_true(self) -> None:
        fetcher = GatedFetcher("value")
        orch = _orchestrator(fetcher)

        assert orch.request_refresh("demo", now=T0) is True
        assert orch.is_loading("demo") is True

        fetcher.gate.set()
        await orch.get_feed("demo", now=T0)

        assert orch.is_loading("demo") is False
        assert orch.is_refreshing("demo") is False

    async def test_is_loading_when_background_refresh_then_false(self) -> None:
        """Refreshing over an existing value is a background refresh, not loading."""
        fetcher = GatedFetcher("newer")
        orch = _orchestrator(fetcher)
        orch.cache.write("demo", "cached", T0)

        orch.request_refresh("demo", now=T0 + DURATION)

        assert orch.is_refreshing("demo") is True
        assert orch.is_loading("demo") is False
        fetcher.gate.set()
        await orch.get_feed("demo", now=T0 + DURATION)

    async def test_request_refresh_when_fresh_then_nothing_started(self) -> None:
        fetcher = DummyFetcher()
        orch = _orchestrator(fetcher)
        orch.cache.write("demo", "cached", T0)

        assert orch.request_refresh("demo", now=T0 + timedelta(minutes=1)) is False
        await asyncio.sleep(0)
        assert fetcher.calls == 0

    async def test_request_refresh_when_expired_then_value_available_later(self) -> None:
        fetcher = GatedFetcher("background")
        orch = _orchestrator(fetcher)

        orch.request_refresh("demo", now=T0)
        assert orch.cache.read("demo").value == "placeholder"

        fetcher.gate.set()
        result = await orch.get_feed("demo", now=T0)
        assert result.value == "background"
        assert fetcher.calls == 1


class TestHealthAndShutdown:
    async def test_get_feed_when_refreshes_run_then_health_recorded(self) -> None:
        tracker = HealthTracker()
        fetcher = DummyFetcher("ok", FeedNetworkError("offline"))
        orch = _orchestrator(fetcher, health_tracker=tracker)

        await orch.get_feed("demo", now=T0)
        assert tracker.is_feed_healthy("demo") is True

        await orch.get_feed("demo", force_refresh=True, now=T0)
        feed = tracker.get_health_status("2025-06-10T14:00:00Z").feeds["demo"]
        assert feed["consecutive_failures"] == 1
        assert feed["last_error"] == "offline"

    def test_init_when_health_tracker_given_then_feeds_registered(self) -> None:
        tracker = HealthTracker()
        _orchestrator(DummyFetcher(), health_tracker=tracker)

        status = tracker.get_health_status("2025-06-10T14:00:00Z")

        assert list(status.feeds) == ["demo"]
        assert status.status == "degraded"

    async def test_aclose_when_refresh_in_flight_then_cancelled(self) -> None:
        fetcher = GatedFetcher("never")
        orch = _orchestrator(fetcher)
        orch.request_refresh("demo", now=T0)
        await asyncio.sleep(0)

        await orch.aclose()

        assert orch.is_refreshing("demo") is False
        assert orch.cache.read("demo").value == "placeholder"
        assert orch.cache.read("demo").is_stale is False
