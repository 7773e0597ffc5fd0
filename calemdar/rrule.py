"""A parser for the subset of RFC 5545 RRULE that the calendar supports."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_WEEKDAYS = frozenset({"MO", "TU", "WE", "TH", "FR", "SA", "SU"})
_FREQS = frozenset({"DAILY", "WEEKLY", "MONTHLY"})
_UNSUPPORTED = frozenset(
    {"BYSETPOS", "BYMONTH", "BYWEEKNO", "BYYEARDAY", "BYHOUR", "BYMINUTE", "BYSECOND"}
)
_INT_RE = re.compile(r"[+-]?[0-9]+")


class RRuleError(ValueError):
    """Raised when an RRULE is malformed or uses an unsupported feature."""


@dataclass
class RRuleFields:
    """The supported parts of an RRULE."""

    freq: str = ""
    interval: int = 1
    byday: list[str] = field(default_factory=list)
    bymonthday: list[int] = field(default_factory=list)
    until: str = ""


def _to_int(text: str) -> int | None:
    return int(text) if _INT_RE.fullmatch(text) else None


def parse_rrule(text: str) -> RRuleFields:
    """Parse ``text``; unsupported keys raise rather than being dropped."""
    if not text:
        raise RRuleError("rrule: empty")
    out = RRuleFields()

    for part in text.split(";"):
        part = part.strip()
        if not part:
            continue
        key, sep, value = part.partition("=")
        if not sep:
            raise RRuleError(f"rrule: malformed part {part!r}")
        key = key.strip().upper()
        value = value.strip()

        if key == "FREQ":
            value = value.upper()
            if value not in _FREQS:
                raise RRuleError(
                    f"rrule: unsupported FREQ={value} (v1 supports DAILY|WEEKLY|MONTHLY)"
                )
            out.freq = value
        elif key == "INTERVAL":
            n = _to_int(value)
            if n is None or n < 1:
                raise RRuleError(f"rrule: bad INTERVAL={value!r}")
            out.interval = n
        elif key == "BYDAY":
            for day in value.split(","):
                day = day.upper().strip()
                if len(day) != 2:
                    raise RRuleError(f"rrule: positional BYDAY {day!r} not supported in v1")
                if day not in _WEEKDAYS:
                    raise RRuleError(f"rrule: unknown weekday {day!r}")
                out.byday.append(day)
        elif key == "BYMONTHDAY":
            for day in value.split(","):
                day = day.strip()
                n = _to_int(day)
                if n is None or not 1 <= n <= 31:
                    raise RRuleError(f"rrule: bad BYMONTHDAY {day!r}")
                out.bymonthday.append(n)
        elif key == "UNTIL":
            if len(value) < 8:
                raise RRuleError(f"rrule: bad UNTIL {value!r}")
            out.until = f"{value[0:4]}-{value[4:6]}-{value[6:8]}"
        elif key == "COUNT":
            raise RRuleError("rrule: COUNT not supported in v1 (use UNTIL instead)")
        elif key == "WKST":
            pass  # weeks are always anchored to Monday
        elif key in _UNSUPPORTED:
            raise RRuleError(f"rrule: {key} not supported in v1")
        else:
            raise RRuleError(f"rrule: unknown key {key}")

    if not out.freq:
        raise RRuleError("rrule: missing FREQ")
    return out