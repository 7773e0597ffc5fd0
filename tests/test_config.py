from datetime import timedelta

import pytest

from calemdar import config
from calemdar.config import (
    Config,
    ConfigError,
    config_path,
    defaults,
    format_duration,
    load,
    load_and_apply,
    parse_duration,
)


def _write_config(base, text):
    path = base / "calemdar" / "config.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


@pytest.fixture
def xdg(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    return tmp_path


def test_load_missing_file_returns_defaults(xdg):
    cfg = load()
    d = defaults()
    assert cfg.timezone == d.timezone
    assert cfg.nightly_at == d.nightly_at
    assert cfg == d


def test_load_overrides_defaults(xdg):
    _write_config(
        xdg,
        "vault: /tmp/my-vault\n"
        "timezone: UTC\n"
        'nightly_at: "04:30"\n'
        "horizon_months: 24\n"
        "archive_cutoff_months: 3\n"
        "debounce_ms: 1000\n"
        "calendars: [a, b, c]\n",
    )
    cfg = load()
    assert cfg.vault == "/tmp/my-vault"
    assert cfg.timezone == "UTC"
    assert cfg.nightly_at == "04:30"
    assert cfg.horizon_months == 24
    assert cfg.archive_cutoff_months == 3
    assert cfg.debounce_ms == 1000
    assert cfg.calendars == ["a", "b", "c"]


def test_load_partial_merge(xdg):
    _write_config(xdg, "vault: /tmp/v\n")
    cfg = load()
    assert cfg.vault == "/tmp/v"
    assert cfg.timezone == "Europe/Stockholm"
    assert cfg.nightly_at == "03:00"


def test_unquoted_clock_stays_a_string(xdg):
    _write_config(xdg, "nightly_at: 04:30\n")
    assert load().nightly_at == "04:30"


def test_notifications_defaults():
    d = defaults()
    assert d.notifications.enabled is False
    assert d.notifications.tick_interval == timedelta(minutes=1)
    assert d.notifications.max_lead == timedelta(hours=23)
    assert d.notifications.max_concurrent_spawns == 4


def test_notifications_validate_ntfy_requires_url_and_topic_when_enabled():
    c = defaults()
    c.vault = "/tmp/v"
    c.notifications.enabled = True
    c.notifications.backends.ntfy.enabled = True
    with pytest.raises(ConfigError, match="url required"):
        c.validate()
    c.notifications.backends.ntfy.url = "https://ntfy.sh"
    c.notifications.backends.ntfy.topic = "t"
    c.validate()
    assert c.notifications.backends.ntfy.topic == "t"


def test_notifications_validate_tick_interval():
    c = defaults()
    c.vault = "/tmp/v"
    c.notifications.enabled = True
    c.notifications.tick_interval = timedelta(seconds=15)
    with pytest.raises(ConfigError, match="below minimum 30s"):
        c.validate()


def test_notifications_validate_max_lead_cap():
    c = defaults()
    c.notifications.enabled = True
    c.notifications.max_lead = timedelta(hours=25)
    with pytest.raises(ConfigError, match="24h cap"):
        c.validate()


def test_notifications_validate_urgency():
    c = defaults()
    c.vault = "/tmp/v"
    c.notifications.enabled = True
    c.notifications.backends.system.urgency = "weird"
    with pytest.raises(ConfigError, match="urgency"):
        c.validate()
    c.notifications.backends.system.urgency = "low"
    c.validate()
    assert c.notifications.backends.system.urgency == "low"


def test_bad_topic_rejected_even_when_disabled():
    c = defaults()
    c.notifications.backends.ntfy.topic = "bad/topic"
    with pytest.raises(ConfigError, match="topic"):
        c.validate()


def test_notifications_merge_from_file(xdg):
    _write_config(
        xdg,
        "vault: /tmp/my-vault\n"
        "notifications:\n"
        "  enabled: true\n"
        "  tick_interval: 2m\n"
        "  max_lead: 12h\n"
        "  calendars: [work]\n"
        "  backends:\n"
        "    system:\n"
        "      enabled: true\n"
        "      urgency: low\n"
        "    ntfy:\n"
        "      enabled: true\n"
        "      url: https://ntfy.example\n"
        "      topic: topic-abc\n"
        "  actions:\n"
        "    enabled: true\n",
    )
    cfg = load()
    n = cfg.notifications
    assert n.enabled is True
    assert n.tick_interval == timedelta(minutes=2)
    assert n.max_lead == timedelta(hours=12)
    assert n.backends.system.enabled is True
    assert n.backends.system.urgency == "low"
    assert n.backends.ntfy.url == "https://ntfy.example"
    assert n.backends.ntfy.topic == "topic-abc"
    assert n.actions.enabled is True
    assert n.calendars == ["work"]
    assert n.max_concurrent_spawns == 4


def test_path_uses_xdg(monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", "/xdg")
    assert str(config_path()) == "/xdg/calemdar/config.yaml"


def test_path_falls_back_to_home(monkeypatch, tmp_path):
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    assert config_path() == tmp_path / ".config" / "calemdar" / "config.yaml"


@pytest.mark.parametrize(
    "field, value, message",
    [
        ("base_path", "../escape", "contains .."),
        ("base_path", "/abs", "no leading slash"),
        ("nightly_at", "25:00", "HH:MM"),
        ("nightly_at", "3am", "HH:MM"),
        ("horizon_months", 0, "horizon_months"),
        ("horizon_months", 121, "horizon_months"),
        ("archive_cutoff_months", -1, "archive_cutoff_months"),
        ("debounce_ms", 0, "debounce_ms"),
        ("debounce_ms", 60001, "debounce_ms"),
        ("calendars", [], "calendars list is empty"),
        ("timezone", "Nowhere/Nothing", "unknown timezone"),
    ],
)
def test_validate_rejects(field, value, message):
    c = defaults()
    setattr(c, field, value)
    with pytest.raises(ConfigError, match=message):
        c.validate()


def test_archive_cutoff_zero_allowed():
    c = defaults()
    c.archive_cutoff_months = 0
    c.validate()
    assert c.archive_cutoff_months == 0


def test_invalid_value_in_file_raises(xdg):
    _write_config(xdg, "horizon_months: 500\n")
    with pytest.raises(ConfigError, match="horizon_months"):
        load()


def test_wrong_type_in_file_raises(xdg):
    _write_config(xdg, "horizon_months: abc\n")
    with pytest.raises(ConfigError, match="parse"):
        load()


def test_malformed_yaml_raises(xdg):
    _write_config(xdg, "vault: [unclosed\n")
    with pytest.raises(ConfigError, match="parse"):
        load()


def test_bad_duration_in_file_raises(xdg):
    _write_config(xdg, "notifications:\n  tick_interval: 60\n")
    with pytest.raises(ConfigError, match="tick_interval"):
        load()


def test_load_and_apply_sets_active(xdg, monkeypatch):
    monkeypatch.setattr(config, "active", defaults())
    _write_config(xdg, "vault: /tmp/applied\n")
    result = load_and_apply()
    assert result.vault == "/tmp/applied"
    assert config.active.vault == "/tmp/applied"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1m", timedelta(minutes=1)),
        ("30s", timedelta(seconds=30)),
        ("23h", timedelta(hours=23)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("1.5s", timedelta(seconds=1.5)),
        ("500ms", timedelta(milliseconds=500)),
        ("-2m", timedelta(minutes=-2)),
        ("0", timedelta(0)),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "60", "abc", "5x", "m"])
def test_parse_duration_rejects(text):
    with pytest.raises(ValueError):
        parse_duration(text)


@pytest.mark.parametrize(
    "value, expected",
    [
        (timedelta(0), "0s"),
        (timedelta(minutes=1), "1m0s"),
        (timedelta(hours=23), "23h0m0s"),
        (timedelta(seconds=30), "30s"),
        (timedelta(seconds=90), "1m30s"),
        (timedelta(seconds=1.5), "1.5s"),
        (timedelta(milliseconds=500), "500ms"),
        (timedelta(minutes=-2), "-2m0s"),
    ],
)
def test_format_duration(value, expected):
    assert format_duration(value) == expected


def test_duration_round_trip():
    for value in (timedelta(minutes=2), timedelta(hours=12, seconds=5), timedelta(milliseconds=250)):
        assert parse_duration(format_duration(value)) == value


def test_to_dict_shape_of_defaults():
    d = defaults().to_dict()
    assert list(d)[:2] == ["vault", "base_path"]
    assert d["vault"] == ""
    assert d["timezone"] == "Europe/Stockholm"
    assert d["horizon_months"] == 12
    n = d["notifications"]
    assert n["enabled"] is False
    assert n["tick_interval"] == "1m0s"
    assert n["max_lead"] == "23h0m0s"
    assert n["backends"]["ntfy"] == {"enabled": False, "url": "", "topic": ""}
    assert n["backends"]["system"] == {"enabled": False}
    assert n["actions"] == {"enabled": False}
    assert "calendars" not in n


def test_to_dict_omits_empty_optionals():
    d = Config().to_dict()
    assert "timezone" not in d
    assert "calendars" not in d
    assert "tick_interval" not in d["notifications"]
    assert d["base_path"] == ""