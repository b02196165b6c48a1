"""Refresh orchestration and periodic scheduling."""

from .orchestrator import FeedFetcher, RefreshOrchestrator
from .scheduler import RefreshScheduler

__all__ = ["FeedFetcher", "RefreshOrchestrator", "RefreshScheduler"]
