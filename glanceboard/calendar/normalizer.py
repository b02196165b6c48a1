"""iCalendar feed normalization for the board's event list.

Turns raw ICS text into a filtered, chronologically sorted list of
``EventRecord``. Every date/time value is resolved through ``FeedTime`` at
the parse boundary, so downstream code only ever sees aware datetimes plus
an ``is_all_day`` flag.
"""

from __future__ import annotations

import datetime
import logging
import time
from collections.abc import Iterable
from typing import Any, Optional, Union

from dateutil.rrule import rruleset, rrulestr
from icalendar import Calendar

from glanceboard.calendar.models import (
    DEFAULT_EVENT_TITLE,
    EventRecord,
    FeedDate,
    FeedInstant,
    FeedTime,
)
from glanceboard.core.exceptions import FeedParseError
from glanceboard.core.timezone_utils import (
    get_local_timezone,
    localize,
    serialize_datetime_utc,
    start_of_day,
)

logger = logging.getLogger(__name__)

FEED_HORIZON_DAYS = 30
DISPLAY_WINDOW_DAYS = 14
MAX_OCCURRENCES_PER_RULE = 250
EXPANSION_TIME_BUDGET_MS = 200


def to_feed_time(value: Union[datetime.date, datetime.datetime]) -> FeedTime:
    """Classify an icalendar ``.dt`` value as date-only or instant."""
    if isinstance(value, datetime.datetime):
        return FeedInstant(at=value)
    if isinstance(value, datetime.date):
        return FeedDate(day=value)
    raise TypeError(f"unsupported feed time value: {value!r}")


def resolve_feed_time(value: FeedTime, tz: datetime.tzinfo) -> datetime.datetime:
    """Resolve a ``FeedTime`` to an aware datetime in ``tz``.

    Date-only values become local midnight; floating (naive) instants are
    interpreted as local wall-clock time.
    """
    if isinstance(value, FeedDate):
        return localize(datetime.datetime.combine(value.day, datetime.time.min), tz)
    if value.at.tzinfo is None:
        return localize(value.at, tz)
    return value.at.astimezone(tz)


def _is_local_midnight(moment: datetime.datetime, tz: datetime.tzinfo) -> bool:
    return moment.astimezone(tz).time() == datetime.time.min


def _text(component: Any, name: str) -> Optional[str]:
    raw = component.get(name)
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def _parse_calendar(raw_feed: Union[str, bytes]) -> Calendar:
    text = raw_feed.decode("utf-8", errors="replace") if isinstance(raw_feed, bytes) else raw_feed
    if "BEGIN:VCALENDAR" not in text:
        raise FeedParseError("Feed is not an iCalendar document (missing BEGIN:VCALENDAR)")
    try:
        calendar = Calendar.from_ical(text)
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise FeedParseError(f"Malformed iCalendar feed: {e}") from e
    if getattr(calendar, "name", None) != "VCALENDAR":
        raise FeedParseError("Feed does not contain a VCALENDAR component")
    return calendar


class _EventDraft:
    """Resolved fields of one VEVENT before occurrence expansion."""

    def __init__(self, component: Any, index: int, tz: datetime.tzinfo) -> None:
        self.component = component
        self.tz = tz
        self.uid = _text(component, "UID")
        self.id = self.uid or f"event-{index}"
        self.title = _text(component, "SUMMARY") or DEFAULT_EVENT_TITLE
        self.location = _text(component, "LOCATION")
        self.description = _text(component, "DESCRIPTION")

        self.start_time = to_feed_time(component.get("DTSTART").dt)
        self.start = resolve_feed_time(self.start_time, tz)

        dtend = component.get("DTEND")
        duration = component.get("DURATION")
        if dtend is not None:
            self.end = resolve_feed_time(to_feed_time(dtend.dt), tz)
        elif duration is not None and isinstance(duration.dt, datetime.timedelta):
            self.end = self.start + duration.dt
        else:
            self.end = self.start

        self.is_all_day = isinstance(self.start_time, FeedDate) or (
            _is_local_midnight(self.start, tz) and _is_local_midnight(self.end, tz)
        )

    @property
    def recurrence_id(self) -> Optional[datetime.datetime]:
        raw = self.component.get("RECURRENCE-ID")
        if raw is None:
            return None
        return resolve_feed_time(to_feed_time(raw.dt), self.tz)

    def record(self, start: Optional[datetime.datetime] = None, record_id: Optional[str] = None) -> EventRecord:
        """Build the record for the master occurrence or a shifted one."""
        if start is None:
            start = self.start
        return EventRecord(
            id=record_id or self.id,
            title=self.title,
            start=start,
            end=start + (self.end - self.start),
            is_all_day=self.is_all_day,
            location=self.location,
            description=self.description,
        )


def _expansion_base(draft: _EventDraft) -> datetime.datetime:
    """DTSTART in the space rrule expands in: naive for dates/floating, aware otherwise."""
    value = draft.start_time
    if isinstance(value, FeedDate):
        return datetime.datetime.combine(value.day, datetime.time.min)
    return value.at


def _to_base_space(moment: datetime.datetime, base: datetime.datetime, tz: datetime.tzinfo) -> datetime.datetime:
    if base.tzinfo is None:
        return moment.astimezone(tz).replace(tzinfo=None)
    return moment


def _exdates(component: Any) -> Iterable[Union[datetime.date, datetime.datetime]]:
    raw = component.get("EXDATE")
    if raw is None:
        return []
    groups = raw if isinstance(raw, list) else [raw]
    values = []
    for group in groups:
        for item in getattr(group, "dts", []):
            values.append(item.dt)
    return values


def _expand(
    draft: _EventDraft,
    window_start: datetime.datetime,
    window_end: datetime.datetime,
    overridden: set[datetime.datetime],
) -> list[EventRecord]:
    """Expand a recurring master into the occurrences that fall in the window.

    Raises:
        ValueError: the rule cannot be expanded (caller falls back to the master)
        AttributeError: the component carries more than one RRULE
    """
    tz = draft.tz
    base = _expansion_base(draft)
    rule_text = draft.component.get("RRULE").to_ical().decode("utf-8")

    rule_set = rruleset()
    # Floating masters expand in naive wall-clock space, so a UTC UNTIL is read as wall-clock too
    rule_set.rrule(rrulestr(rule_text, dtstart=base, ignoretz=base.tzinfo is None))

    excluded = set(overridden)
    for ex in _exdates(draft.component):
        excluded.add(resolve_feed_time(to_feed_time(ex), tz))

    first = _to_base_space(window_start, base, tz)
    last = _to_base_space(window_end, base, tz)
    deadline = time.monotonic() + EXPANSION_TIME_BUDGET_MS / 1000.0

    records: list[EventRecord] = []
    # Lazy walk from DTSTART; stops at the window end or at either limit
    for occurrence in rule_set:
        if occurrence > last:
            break
        if time.monotonic() >= deadline:
            logger.warning(
                "Recurrence %s exceeded expansion time budget (%dms) after %d occurrences",
                draft.id,
                EXPANSION_TIME_BUDGET_MS,
                len(records),
            )
            break
        if occurrence < first:
            continue
        if len(records) >= MAX_OCCURRENCES_PER_RULE:
            logger.warning(
                "Recurrence %s truncated at %d occurrences before %s",
                draft.id,
                MAX_OCCURRENCES_PER_RULE,
                window_end.isoformat(),
            )
            break

        start = localize(occurrence, tz) if occurrence.tzinfo is None else occurrence.astimezone(tz)
        if start in excluded:
            continue
        record_id = draft.id if start == draft.start else f"{draft.id}/{serialize_datetime_utc(start)}"
        records.append(draft.record(start=start, record_id=record_id))

    logger.debug("Expanded %s into %d occurrences", draft.id, len(records))
    return records


def _in_window(start: datetime.datetime, window_start: datetime.datetime, window_end: datetime.datetime) -> bool:
    return window_start <= start <= window_end


def normalize(
    raw_feed: Union[str, bytes],
    now: datetime.datetime,
    horizon_days: int = FEED_HORIZON_DAYS,
    tz: Optional[datetime.tzinfo] = None,
) -> list[EventRecord]:
    """Parse an iCalendar feed into a sorted list of upcoming events.

    Only VEVENT components are considered. An event is kept when
    ``start_of_today <= start <= now + horizon_days``. Recurring masters are
    expanded within that window, minus EXDATEs and overridden instances.

    Args:
        raw_feed: Raw ICS document
        now: Reference time (aware)
        horizon_days: Forward window in days
        tz: Local timezone; host local zone when omitted

    Returns:
        Events in ascending start order, ties kept in feed order

    Raises:
        FeedParseError: the feed cannot be parsed as iCalendar
    """
    tz = tz or get_local_timezone()
    calendar = _parse_calendar(raw_feed)

    window_start = start_of_day(now, tz)
    window_end = now + datetime.timedelta(days=horizon_days)

    drafts: list[_EventDraft] = []
    for index, component in enumerate(calendar.walk("VEVENT")):
        if component.get("DTSTART") is None:
            logger.warning("Skipping event %s without DTSTART", component.get("UID", f"event-{index}"))
            continue
        try:
            drafts.append(_EventDraft(component, index, tz))
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning("Skipping unreadable event %s: %s", component.get("UID", f"event-{index}"), e)

    overrides: dict[str, set[datetime.datetime]] = {}
    for draft in drafts:
        recurrence_id = draft.recurrence_id
        if draft.uid and recurrence_id is not None:
            overrides.setdefault(draft.uid, set()).add(recurrence_id)

    events: list[EventRecord] = []
    for draft in drafts:
        recurrence_id = draft.recurrence_id
        if recurrence_id is not None:
            if _in_window(draft.start, window_start, window_end):
                events.append(draft.record(record_id=f"{draft.id}/{serialize_datetime_utc(recurrence_id)}"))
            continue

        if draft.component.get("RRULE") is not None:
            try:
                events.extend(_expand(draft, window_start, window_end, overrides.get(draft.uid or "", set())))
                continue
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning("Could not expand recurrence for %s, using master occurrence: %s", draft.id, e)

        if _in_window(draft.start, window_start, window_end):
            events.append(draft.record())

    events.sort(key=lambda event: event.start)
    logger.debug("Normalized %d events from %d VEVENT components", len(events), len(drafts))
    return events


def within_display_window(
    events: Iterable[EventRecord],
    now: datetime.datetime,
    days: int = DISPLAY_WINDOW_DAYS,
    tz: Optional[datetime.tzinfo] = None,
) -> list[EventRecord]:
    """Narrow an already-normalized event list to the display window.

    Args:
        events: Normalized events
        now: Reference time
        days: Forward window in days
        tz: Local timezone; host local zone when omitted

    Returns:
        Events with ``start_of_today <= start <= now + days``, order preserved
    """
    tz = tz or get_local_timezone()
    window_start = start_of_day(now, tz)
    window_end = now + datetime.timedelta(days=days)
    return [event for event in events if _in_window(event.start, window_start, window_end)]
