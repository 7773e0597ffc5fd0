"""Expansion of a recurring root into concrete occurrence events."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Iterable

from calemdar import config
from calemdar.recurrence import daily, monthly, parse_weekdays, weekly

FREQ_DAILY = "daily"
FREQ_WEEKLY = "weekly"
FREQ_MONTHLY = "monthly"
FREQUENCIES = (FREQ_DAILY, FREQ_WEEKLY, FREQ_MONTHLY)


class ExpandError(ValueError):
    """Raised when a root cannot be expanded or a date is malformed."""


@dataclass
class NotifyEntry:
    """One notification rule attached to an event."""

    lead: str = ""
    via: list[str] = field(default_factory=list)
    action: str = ""


@dataclass
class Root:
    """A recurring series template."""

    id: str = ""
    calendar: str = ""
    title: str = ""
    start_date: str = ""
    until: str = ""
    start_time: str = ""
    end_time: str = ""
    all_day: bool = False
    freq: str = ""
    interval: int = 0
    byday: list[str] = field(default_factory=list)
    bymonthday: list[int] = field(default_factory=list)
    exceptions: list[str] = field(default_factory=list)
    notify: list[NotifyEntry] = field(default_factory=list)
    body: str = ""
    slug: str = ""
    path: str = ""


@dataclass
class Event:
    """A single calendar event, possibly expanded from a root."""

    title: str = ""
    date: str = ""
    start_time: str = ""
    end_time: str = ""
    all_day: bool = False
    type: str = "single"
    series_id: str = ""
    series_expanded_at: str = ""
    user_owned: bool = False
    notify: list[NotifyEntry] = field(default_factory=list)
    body: str = ""
    path: str = ""


def parse_date(text: str) -> date | None:
    """Parse ``YYYY-MM-DD``; an empty string gives ``None``."""
    if not text:
        return None
    try:
        return date.fromisoformat(text.strip())
    except ValueError as exc:
        raise ExpandError(f"bad date {text!r}: want YYYY-MM-DD") from exc


def format_date(day: date) -> str:
    """Render ``day`` as ``YYYY-MM-DD``."""
    return day.isoformat()


def _rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")


def expand(
    root: Root | None,
    start: date,
    end: date,
    expanded_at: datetime,
    calendars: Iterable[str] | None = None,
) -> list[Event]:
    """Return the occurrences of ``root`` between ``start`` and ``end``, inclusive.

    ``calendars`` lists the valid calendar names and defaults to the active
    configuration's. Every event is stamped with ``expanded_at`` in UTC.
    """
    if root is None:
        raise ExpandError("expand: nil root")
    valid = list(config.active.calendars if calendars is None else calendars)
    if root.calendar not in valid:
        raise ExpandError(f"expand: unknown calendar {root.calendar!r}")
    if root.freq not in FREQUENCIES:
        raise ExpandError(f"expand: unknown freq {root.freq!r}")
    if root.interval < 1:
        raise ExpandError(f"expand: interval must be >= 1, got {root.interval}")

    try:
        start_date = parse_date(root.start_date)
    except ExpandError as exc:
        raise ExpandError(f"expand: start-date: {exc}") from exc
    if start_date is None:
        raise ExpandError("expand: missing start-date")
    try:
        until = parse_date(root.until)
    except ExpandError as exc:
        raise ExpandError(f"expand: until: {exc}") from exc

    exceptions = set()
    for text in root.exceptions:
        try:
            exceptions.add(format_date(parse_date(text)))
        except (ExpandError, AttributeError, TypeError) as exc:
            raise ExpandError(f"expand: exception: {exc}") from exc

    eff_start = max(start, start_date)
    eff_end = end if until is None else min(end, until)
    if eff_end < eff_start:
        return []

    if root.freq == FREQ_DAILY:
        dates = daily(start_date, eff_start, eff_end, root.interval)
    elif root.freq == FREQ_WEEKLY:
        if not root.byday:
            raise ExpandError("expand: weekly freq requires byday")
        try:
            days = parse_weekdays(root.byday)
        except ValueError as exc:
            raise ExpandError(f"expand: {exc}") from exc
        dates = weekly(start_date, eff_start, eff_end, root.interval, days)
    else:
        if not root.bymonthday:
            raise ExpandError("expand: monthly freq requires bymonthday")
        dates = monthly(start_date, eff_start, eff_end, root.interval, root.bymonthday)

    stamp = _rfc3339(expanded_at)
    return [
        _build_event(root, day, stamp)
        for day in dates
        if format_date(day) not in exceptions
    ]


def _build_event(root: Root, day: date, stamp: str) -> Event:
    return Event(
        title=root.title,
        date=format_date(day),
        start_time=root.start_time,
        end_time=root.end_time,
        all_day=root.all_day,
        type="single",
        series_id=root.id,
        series_expanded_at=stamp,
        user_owned=False,
        notify=copy.deepcopy(root.notify),
        body=f"[[{root.slug}]]\n\n" + root.body.lstrip("\n"),
    )