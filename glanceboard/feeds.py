"""Definitions of the board's cached feeds."""

from __future__ import annotations

from datetime import timedelta

from glanceboard.cache.freshness import FeedDefinition
from glanceboard.calendar.models import EVENT_LIST_ADAPTER
from glanceboard.weather.models import PLACEHOLDER_WEATHER, WEATHER_ADAPTER

CALENDAR_FEED_KEY = "calendar"
WEATHER_FEED_KEY = "weather"

CALENDAR_FEED = FeedDefinition(
    key=CALENDAR_FEED_KEY,
    cache_duration=timedelta(hours=1),
    placeholder=(),
    value_adapter=EVENT_LIST_ADAPTER,
    store_identifier="glance-board-events",
)

WEATHER_FEED = FeedDefinition(
    key=WEATHER_FEED_KEY,
    cache_duration=timedelta(minutes=10),
    placeholder=PLACEHOLDER_WEATHER,
    value_adapter=WEATHER_ADAPTER,
    store_identifier="glance-board-weather",
)

BOARD_FEEDS = [CALENDAR_FEED, WEATHER_FEED]
