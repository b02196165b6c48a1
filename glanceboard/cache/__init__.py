"""Freshness cache and its durable JSON mirror."""

from .freshness import CachedValue, FeedDefinition, FreshnessCache
from .store import JsonCacheStore

__all__ = ["CachedValue", "FeedDefinition", "FreshnessCache", "JsonCacheStore"]
