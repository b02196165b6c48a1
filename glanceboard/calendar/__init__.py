"""Calendar feed: ICS download, normalization and event model."""

from .fetcher import CalendarFetcher, CalendarSource
from .models import EVENT_LIST_ADAPTER, EventRecord, FeedDate, FeedInstant, FeedTime
from .normalizer import normalize, within_display_window

__all__ = [
    "EVENT_LIST_ADAPTER",
    "CalendarFetcher",
    "CalendarSource",
    "EventRecord",
    "FeedDate",
    "FeedInstant",
    "FeedTime",
    "normalize",
    "within_display_window",
]
