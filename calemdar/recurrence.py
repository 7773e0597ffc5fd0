"""Occurrence-date arithmetic for daily, weekly and monthly rules.

All functions work on :class:`datetime.date` values and clip their output
to an inclusive window. Weekdays use Python's numbering (Monday is 0).
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import AbstractSet, Iterable

WEEKDAY_TOKENS = {
    "mon": 0,
    "tue": 1,
    "wed": 2,
    "thu": 3,
    "fri": 4,
    "sat": 5,
    "sun": 6,
}


def daily(start_date: date, win_start: date, win_end: date, interval: int) -> list[date]:
    """Return every ``interval``-th day from ``start_date`` within ``[win_start, win_end]``."""
    days_from_start = max((win_start - start_date).days, 0)
    aligned = days_from_start + (-days_from_start % interval)
    step = timedelta(days=interval)
    out = []
    current = start_date + timedelta(days=aligned)
    while current <= win_end:
        out.append(current)
        current += step
    return out


def weekly(
    start_date: date,
    win_start: date,
    win_end: date,
    interval: int,
    byday: AbstractSet[int],
) -> list[date]:
    """Return dates on the ``byday`` weekdays of every ``interval``-th week.

    Weeks are counted from the Monday of ``start_date``'s week; nothing
    before ``start_date`` or after ``win_end`` is returned.
    """
    anchor = monday_of_week(start_date)
    current = max(win_start, start_date)
    out = []
    while current <= win_end:
        if current.weekday() in byday and ((current - anchor).days // 7) % interval == 0:
            out.append(current)
        current += timedelta(days=1)
    return out


def _month_index(day: date) -> int:
    return day.year * 12 + day.month - 1


def monthly(
    start_date: date,
    win_start: date,
    win_end: date,
    interval: int,
    bymonthday: Iterable[int],
) -> list[date]:
    """Return the listed days of every ``interval``-th month from ``start_date``.

    Days that do not exist in a month (the 31st of February) are skipped.
    """
    days = list(bymonthday)
    anchor = _month_index(start_date)
    first = max(_month_index(win_start), anchor)
    aligned = first + (-(first - anchor) % interval)
    last = _month_index(win_end)

    out = []
    for index in range(aligned, last + 1, interval):
        year, month0 = divmod(index, 12)
        for dom in days:
            try:
                candidate = date(year, month0 + 1, dom)
            except ValueError:
                continue
            if candidate < start_date or candidate < win_start or candidate > win_end:
                continue
            out.append(candidate)
    return out


def parse_weekdays(tokens: Iterable[str]) -> frozenset[int]:
    """Map tokens such as ``"mon"`` to weekday numbers; raise ValueError on unknown ones."""
    result = set()
    for token in tokens:
        if token not in WEEKDAY_TOKENS:
            raise ValueError(f"unknown weekday token {token!r}")
        result.add(WEEKDAY_TOKENS[token])
    return frozenset(result)


def monday_of_week(day: date) -> date:
    """Return the Monday of the ISO week holding ``day``."""
    return day - timedelta(days=day.weekday())