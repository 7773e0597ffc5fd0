from datetime import date, datetime, timezone

import pytest

from calemdar.expand import (
    FREQ_DAILY,
    FREQ_MONTHLY,
    FREQ_WEEKLY,
    ExpandError,
    NotifyEntry,
    Root,
    expand,
    format_date,
    parse_date,
)

CALENDARS = ["health", "tech", "work", "life", "friends-family", "special"]
FIXED_AT = datetime(2026, 4, 24, 11, 0, 0, tzinfo=timezone.utc)


def d(text):
    return parse_date(text)


def dates_of(events):
    return [e.date for e in events]


def run(root, start, end):
    return expand(root, d(start), d(end), FIXED_AT, CALENDARS)


def test_daily():
    r = Root(id="id", calendar="health", title="Meds", start_date="2026-05-01",
             freq=FREQ_DAILY, interval=1)
    got = run(r, "2026-05-01", "2026-05-05")
    assert dates_of(got) == ["2026-05-01", "2026-05-02", "2026-05-03", "2026-05-04", "2026-05-05"]


def test_daily_interval_2():
    r = Root(id="id", calendar="health", title="x", start_date="2026-05-01",
             freq=FREQ_DAILY, interval=2)
    got = run(r, "2026-05-01", "2026-05-07")
    assert dates_of(got) == ["2026-05-01", "2026-05-03", "2026-05-05", "2026-05-07"]


def test_weekly_byday():
    r = Root(id="id", calendar="health", title="x", start_date="2026-05-01",
             freq=FREQ_WEEKLY, interval=1, byday=["mon", "wed", "fri"])
    got = run(r, "2026-05-01", "2026-05-17")
    assert dates_of(got) == [
        "2026-05-01", "2026-05-04", "2026-05-06", "2026-05-08",
        "2026-05-11", "2026-05-13", "2026-05-15",
    ]


def test_weekly_interval_2():
    r = Root(id="id", calendar="health", title="x", start_date="2026-05-04",
             freq=FREQ_WEEKLY, interval=2, byday=["mon"])
    got = run(r, "2026-05-01", "2026-06-30")
    assert dates_of(got) == ["2026-05-04", "2026-05-18", "2026-06-01", "2026-06-15", "2026-06-29"]


def test_monthly_by_monthday():
    r = Root(id="id", calendar="health", title="x", start_date="2026-01-01",
             freq=FREQ_MONTHLY, interval=1, bymonthday=[1, 15])
    got = run(r, "2026-01-01", "2026-03-31")
    assert dates_of(got) == [
        "2026-01-01", "2026-01-15", "2026-02-01", "2026-02-15", "2026-03-01", "2026-03-15",
    ]


def test_monthly_invalid_day_of_month():
    r = Root(id="id", calendar="health", title="x", start_date="2026-01-31",
             freq=FREQ_MONTHLY, interval=1, bymonthday=[31])
    got = run(r, "2026-01-01", "2026-04-30")
    assert dates_of(got) == ["2026-01-31", "2026-03-31"]


def test_until():
    r = Root(id="id", calendar="health", title="x", start_date="2026-05-01",
             until="2026-05-03", freq=FREQ_DAILY, interval=1)
    got = run(r, "2026-05-01", "2026-05-31")
    assert dates_of(got) == ["2026-05-01", "2026-05-02", "2026-05-03"]


def test_exceptions():
    r = Root(id="id", calendar="health", title="x", start_date="2026-05-01",
             freq=FREQ_DAILY, interval=1, exceptions=["2026-05-02", "2026-05-04"])
    got = run(r, "2026-05-01", "2026-05-05")
    assert dates_of(got) == ["2026-05-01", "2026-05-03", "2026-05-05"]


def test_window_clips_before_start():
    r = Root(id="id", calendar="health", title="x", start_date="2026-05-10",
             freq=FREQ_DAILY, interval=1)
    got = run(r, "2026-05-01", "2026-05-12")
    assert dates_of(got) == ["2026-05-10", "2026-05-11", "2026-05-12"]


def test_builds_event_fields():
    r = Root(id="sid", calendar="health", title="Workout", start_date="2026-05-01",
             freq=FREQ_DAILY, interval=1, start_time="10:00", end_time="11:00",
             slug="workout", body="body text")
    got = run(r, "2026-05-01", "2026-05-01")
    assert len(got) == 1
    e = got[0]
    assert e.series_id == "sid"
    assert e.title == "Workout"
    assert e.type == "single"
    assert e.user_owned is False
    assert (e.start_time, e.end_time) == ("10:00", "11:00")
    assert e.series_expanded_at == "2026-04-24T11:00:00Z"
    assert e.body == "[[workout]]\n\nbody text"


def test_unknown_freq():
    r = Root(id="id", calendar="health", title="x", start_date="2026-05-01",
             freq="yearly", interval=1)
    with pytest.raises(ExpandError):
        run(r, "2026-05-01", "2026-05-31")


def test_unknown_calendar():
    r = Root(id="id", calendar="bogus", title="x", start_date="2026-05-01",
             freq=FREQ_DAILY, interval=1)
    with pytest.raises(ExpandError):
        run(r, "2026-05-01", "2026-05-31")


def test_unknown_calendar_with_default_calendars():
    r = Root(id="id", calendar="bogus", title="x", start_date="2026-05-01",
             freq=FREQ_DAILY, interval=1)
    with pytest.raises(ExpandError):
        expand(r, d("2026-05-01"), d("2026-05-31"), FIXED_AT)


def test_propagates_notify_to_each_occurrence():
    rule = NotifyEntry(lead="5m", via=["system"], action="pre-meeting")
    r = Root(id="id", calendar="work", title="Standup", start_date="2026-05-01",
             freq=FREQ_DAILY, interval=1, notify=[rule])
    got = run(r, "2026-05-01", "2026-05-03")
    assert len(got) == 3
    for e in got:
        assert e.notify == [NotifyEntry(lead="5m", via=["system"], action="pre-meeting")]
    got[0].notify[0].action = "different"
    got[0].notify[0].via.append("ntfy")
    assert r.notify[0].action == "pre-meeting"
    assert r.notify[0].via == ["system"]
    assert got[1].notify[0].action == "pre-meeting"


def test_leaves_notify_empty_when_root_has_none():
    r = Root(id="id", calendar="work", title="x", start_date="2026-05-01",
             freq=FREQ_DAILY, interval=1)
    got = run(r, "2026-05-01", "2026-05-01")
    assert len(got) == 1
    assert got[0].notify == []


@pytest.mark.parametrize(
    "root",
    [
        Root(calendar="health", start_date="2026-05-01", freq=FREQ_DAILY, interval=0),
        Root(calendar="health", start_date="", freq=FREQ_DAILY, interval=1),
        Root(calendar="health", start_date="05/01/2026", freq=FREQ_DAILY, interval=1),
        Root(calendar="health", start_date="2026-05-01", until="nope", freq=FREQ_DAILY, interval=1),
        Root(calendar="health", start_date="2026-05-01", freq=FREQ_DAILY, interval=1,
             exceptions=["bad"]),
        Root(calendar="health", start_date="2026-05-01", freq=FREQ_WEEKLY, interval=1),
        Root(calendar="health", start_date="2026-05-01", freq=FREQ_WEEKLY, interval=1,
             byday=["funday"]),
        Root(calendar="health", start_date="2026-05-01", freq=FREQ_MONTHLY, interval=1),
    ],
)
def test_invalid_roots_raise(root):
    with pytest.raises(ExpandError):
        run(root, "2026-05-01", "2026-05-31")


def test_none_root_raises():
    with pytest.raises(ExpandError):
        expand(None, d("2026-05-01"), d("2026-05-31"), FIXED_AT, CALENDARS)


def test_until_before_window_gives_nothing():
    r = Root(id="id", calendar="health", title="x", start_date="2026-05-01",
             until="2026-05-03", freq=FREQ_DAILY, interval=1)
    assert run(r, "2026-05-10", "2026-05-20") == []


def test_parse_and_format_round_trip():
    assert format_date(parse_date("2026-05-01")) == "2026-05-01"
    assert parse_date("") is None
    with pytest.raises(ExpandError):
        parse_date("2026-13-01")


def test_naive_expanded_at_treated_as_utc():
    r = Root(id="id", calendar="health", title="x", start_date="2026-05-01",
             freq=FREQ_DAILY, interval=1)
    got = expand(r, date(2026, 5, 1), date(2026, 5, 1), datetime(2026, 4, 24, 11, 0, 0), CALENDARS)
    assert got[0].series_expanded_at == "2026-04-24T11:00:00Z"