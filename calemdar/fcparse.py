"""Reading Full Calendar event frontmatter and converting recurring events.

Full Calendar stores recurring events either as ``type: recurring`` (a
``daysOfWeek`` list) or ``type: rrule`` (an RFC 5545 rule string). Both
are converted here into a :class:`~calemdar.expand.Root`.
"""

from __future__ import annotations

import os
import re
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from calemdar.expand import FREQ_MONTHLY, FREQ_WEEKLY, Root
from calemdar.rrule import parse_rrule

TYPE_SINGLE = "single"
TYPE_RECURRING = "recurring"
TYPE_RRULE = "rrule"

_FC_DAYS = {
    "U": "sun",
    "M": "mon",
    "T": "tue",
    "W": "wed",
    "R": "thu",
    "F": "fri",
    "S": "sat",
}
_RRULE_DAYS = {
    "MO": "mon",
    "TU": "tue",
    "WE": "wed",
    "TH": "thu",
    "FR": "fri",
    "SA": "sat",
    "SU": "sun",
}


class TranslateError(ValueError):
    """Raised when an event file lacks usable FC frontmatter or cannot become a root."""


@dataclass
class Recurring:
    """Frontmatter of a ``type: recurring`` event."""

    title: str = ""
    type: str = ""
    days_of_week: list[str] = field(default_factory=list)
    start_recur: str = ""
    end_recur: str = ""
    start_time: str = ""
    end_time: str = ""
    all_day: bool = False


@dataclass
class RRule:
    """Frontmatter of a ``type: rrule`` event."""

    title: str = ""
    type: str = ""
    rrule: str = ""
    start_date: str = ""
    skip_dates: list[str] = field(default_factory=list)
    start_time: str = ""
    end_time: str = ""
    all_day: bool = False


# --------------------------------------------------------------------------
# YAML: keep dates and clock times as text, YAML 1.2-style booleans.


class _Loader(yaml.SafeLoader):
    """Safe loader that leaves dates, times and yes/no words as strings."""


_DROPPED_TAGS = {
    "tag:yaml.org,2002:int",
    "tag:yaml.org,2002:float",
    "tag:yaml.org,2002:bool",
    "tag:yaml.org,2002:timestamp",
}
_Loader.yaml_implicit_resolvers = {
    first: [(tag, rx) for tag, rx in resolvers if tag not in _DROPPED_TAGS]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
_Loader.add_implicit_resolver(
    "tag:yaml.org,2002:bool",
    re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"),
    list("tTfF"),
)
_Loader.add_implicit_resolver(
    "tag:yaml.org,2002:int",
    re.compile(r"^[-+]?(?:0|[1-9][0-9]*)$"),
    list("-+0123456789"),
)
_Loader.add_implicit_resolver(
    "tag:yaml.org,2002:float",
    re.compile(
        r"^(?:[-+]?(?:\.[0-9]+|[0-9]+(?:\.[0-9]*)?)(?:[eE][-+]?[0-9]+)?"
        r"|[-+]?\.(?:inf|Inf|INF)|\.(?:nan|NaN|NAN))$"
    ),
    list("-+0123456789."),
)


def _text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise TranslateError(f"{key} must be a string")


def _text_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise TranslateError(f"{key} must be a list")
    return [_text({key: item}, key) for item in value]


def _flag(data: dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    raise TranslateError(f"{key} must be true or false")


def _load_mapping(frontmatter: str) -> dict[str, Any]:
    try:
        document = yaml.load(frontmatter, Loader=_Loader)
    except yaml.YAMLError as exc:
        raise TranslateError(str(exc)) from exc
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise TranslateError("frontmatter must be a mapping")
    return {str(k): v for k, v in document.items()}


# --------------------------------------------------------------------------
# Frontmatter splitting


def split_frontmatter(raw: bytes | str) -> tuple[str | None, str]:
    """Split a markdown document into ``(frontmatter, body)``.

    A document not opening with a ``---`` line has no frontmatter: the
    result is ``(None, whole_text)``. An empty document gives ``(None, "")``.
    An opening delimiter with no closing one raises :class:`TranslateError`.
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    if not text:
        return None, ""
    lines = text.split("\n")
    if text.endswith("\n"):
        lines.pop()
    lines = [line[:-1] if line.endswith("\r") else line for line in lines]

    if lines[0].rstrip("\r\n") != "---":
        return None, text

    rest = iter(lines[1:])
    front: list[str] = []
    for line in rest:
        if line.rstrip("\r\n") == "---":
            break
        front.append(line + "\n")
    else:
        raise TranslateError("frontmatter not closed")

    body = "".join(line + "\n" for line in rest)
    return "".join(front), body


def _read_frontmatter(path: str | os.PathLike[str], kind: str) -> dict[str, Any]:
    raw = Path(path).read_bytes()
    try:
        front, _ = split_frontmatter(raw)
    except TranslateError:
        front = None
    if front is None:
        raise TranslateError(f"read {kind} {path}: no frontmatter")
    try:
        return _load_mapping(front)
    except TranslateError as exc:
        raise TranslateError(f"read {kind} {path}: {exc}") from exc


def detect(path: str | os.PathLike[str]) -> str:
    """Return the FC ``type:`` of the file at ``path``, or ``""`` if it has none."""
    front, _ = split_frontmatter(Path(path).read_bytes())
    if front is None:
        return ""
    return _text(_load_mapping(front), "type")


def read_recurring(path: str | os.PathLike[str]) -> Recurring:
    """Read the frontmatter of a ``type: recurring`` event."""
    data = _read_frontmatter(path, "recurring")
    try:
        return Recurring(
            title=_text(data, "title"),
            type=_text(data, "type"),
            days_of_week=_text_list(data, "daysOfWeek"),
            start_recur=_text(data, "startRecur"),
            end_recur=_text(data, "endRecur"),
            start_time=_text(data, "startTime"),
            end_time=_text(data, "endTime"),
            all_day=_flag(data, "allDay"),
        )
    except TranslateError as exc:
        raise TranslateError(f"read recurring {path}: {exc}") from exc


def read_rrule(path: str | os.PathLike[str]) -> RRule:
    """Read the frontmatter of a ``type: rrule`` event."""
    data = _read_frontmatter(path, "rrule")
    try:
        return RRule(
            title=_text(data, "title"),
            type=_text(data, "type"),
            rrule=_text(data, "rrule"),
            start_date=_text(data, "startDate"),
            skip_dates=_text_list(data, "skipDates"),
            start_time=_text(data, "startTime"),
            end_time=_text(data, "endTime"),
            all_day=_flag(data, "allDay"),
        )
    except TranslateError as exc:
        raise TranslateError(f"read rrule {path}: {exc}") from exc


def read_body(path: str | os.PathLike[str]) -> str:
    """Return the content after the closing frontmatter delimiter."""
    _, body = split_frontmatter(Path(path).read_bytes())
    return body


# --------------------------------------------------------------------------
# Conversion to roots


def translate_recurring(fc: Recurring, calendar: str) -> Root:
    """Convert a ``type: recurring`` event into a weekly root on ``calendar``."""
    if not fc.title:
        raise TranslateError("translate: missing title")
    if not fc.start_recur:
        raise TranslateError("translate: missing startRecur")
    byday = []
    for day in fc.days_of_week:
        token = _FC_DAYS.get(day.strip().upper())
        if token is None:
            raise TranslateError(f"translate: unknown daysOfWeek value {day!r}")
        byday.append(token)
    if not byday:
        raise TranslateError(
            "translate: daysOfWeek empty (type: recurring requires at least one)"
        )
    return Root(
        id=new_uuid(),
        calendar=calendar,
        title=fc.title,
        start_date=fc.start_recur,
        until=fc.end_recur,
        start_time=fc.start_time,
        end_time=fc.end_time,
        all_day=fc.all_day,
        freq=FREQ_WEEKLY,
        interval=1,
        byday=byday,
    )


def translate_rrule(fc: RRule, calendar: str) -> Root:
    """Convert a ``type: rrule`` event into a root on ``calendar``.

    Rule errors propagate as :class:`~calemdar.rrule.RRuleError`.
    """
    if not fc.title:
        raise TranslateError("translate: missing title")
    if not fc.start_date:
        raise TranslateError("translate: missing startDate")
    rule = parse_rrule(fc.rrule)

    freq = rule.freq.lower()
    byday = []
    for day in rule.byday:
        token = _RRULE_DAYS.get(day)
        if token is None:
            raise TranslateError(f"translate: unknown BYDAY {day!r}")
        byday.append(token)

    if freq == FREQ_WEEKLY and not byday:
        raise TranslateError("translate: WEEKLY rrule requires BYDAY for v1")
    if freq == FREQ_MONTHLY and not rule.bymonthday:
        raise TranslateError("translate: MONTHLY rrule requires BYMONTHDAY for v1")

    return Root(
        id=new_uuid(),
        calendar=calendar,
        title=fc.title,
        start_date=fc.start_date,
        until=rule.until,
        start_time=fc.start_time,
        end_time=fc.end_time,
        all_day=fc.all_day,
        freq=freq,
        interval=rule.interval,
        byday=byday,
        bymonthday=list(rule.bymonthday),
        exceptions=list(fc.skip_dates),
    )


def new_uuid() -> str:
    """Return a fresh time-ordered (version 7) UUID as a string."""
    millis = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")
    rand_a = (rand >> 68) & 0xFFF
    rand_b = rand & ((1 << 62) - 1)
    value = (
        ((millis & ((1 << 48) - 1)) << 80)
        | (0x7 << 76)
        | (rand_a << 64)
        | (0b10 << 62)
        | rand_b
    )
    return str(uuid.UUID(int=value))