"""Data models for calendar feed processing."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_serializer

from glanceboard.core.timezone_utils import serialize_datetime_utc

DEFAULT_EVENT_TITLE = "Untitled Event"


@dataclass(frozen=True)
class FeedInstant:
    """A feed timestamp carrying a time of day (aware, or floating if naive)."""

    at: datetime


@dataclass(frozen=True)
class FeedDate:
    """A date-only feed value (``VALUE=DATE``)."""

    day: date


FeedTime = Union[FeedInstant, FeedDate]


class EventRecord(BaseModel):
    """One normalized calendar occurrence."""

    id: str = Field(..., description="Feed UID or deterministic fallback key")
    title: str = Field(default=DEFAULT_EVENT_TITLE, description="Event summary")
    start: datetime = Field(..., description="Timezone-aware start")
    end: datetime = Field(..., description="Timezone-aware end (equals start when unknown)")
    is_all_day: bool = Field(default=False, description="All-day event flag")
    location: Optional[str] = Field(default=None, description="Event location")
    description: Optional[str] = Field(default=None, description="Event description")

    model_config = ConfigDict(frozen=True)

    @field_serializer("start", "end")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime fields to ISO format with their offset."""
        return dt.isoformat()

    def to_api_dict(self) -> dict[str, Any]:
        """Return the wire shape used by the HTTP API.

        Times are rendered as UTC with a ``Z`` suffix; absent optional fields
        are omitted.
        """
        payload: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "start": serialize_datetime_utc(self.start),
            "end": serialize_datetime_utc(self.end),
            "allDay": self.is_all_day,
        }
        if self.location is not None:
            payload["location"] = self.location
        if self.description is not None:
            payload["description"] = self.description
        return payload


EVENT_LIST_ADAPTER: TypeAdapter[tuple[EventRecord, ...]] = TypeAdapter(tuple[EventRecord, ...])
