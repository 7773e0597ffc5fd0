"""Optional YAML configuration, merged onto built-in defaults.

The file lives at ``$XDG_CONFIG_HOME/calemdar/config.yaml`` (falling back
to ``~/.config``). Every field is optional; missing or zero-valued fields
keep their defaults. Call :func:`load_and_apply` once at startup, then read
:data:`active`.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, replace
from datetime import timedelta
from fractions import Fraction
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

NTFY_TOPIC_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"
_NTFY_TOPIC_RE = re.compile(NTFY_TOPIC_PATTERN)
_NIGHTLY_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_URGENCIES = ("low", "normal", "critical")


class ConfigError(Exception):
    """Raised when the config file cannot be read, parsed or validated."""


# --------------------------------------------------------------------------
# Durations ("1m", "30s", "1h30m", "500ms")

_UNIT_NS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
}
_DURATION_PART_RE = re.compile(r"(\d*)(?:\.(\d*))?(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration string such as ``"1m"``, ``"2h45m"`` or ``"-1.5s"``."""
    original = text
    sign = 1
    if text[:1] in ("-", "+"):
        if text[0] == "-":
            sign = -1
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {original!r}")
    total = Fraction(0)
    pos = 0
    while pos < len(text):
        match = _DURATION_PART_RE.match(text, pos)
        if match is None or (not match.group(1) and not match.group(2)):
            if match is not None or not text[pos:].lstrip("0123456789."):
                raise ValueError(f"missing unit in duration {original!r}")
            raise ValueError(f"invalid duration {original!r}")
        whole, frac, unit = match.groups()
        number = Fraction(int(whole or "0"))
        if frac:
            number += Fraction(int(frac), 10 ** len(frac))
        total += number * _UNIT_NS[unit]
        pos = match.end()
    nanos = sign * total
    return timedelta(microseconds=float(nanos / 1000))


def _total_nanos(value: timedelta) -> int:
    return ((value.days * 86_400 + value.seconds) * 1_000_000 + value.microseconds) * 1_000


def format_duration(value: timedelta) -> str:
    """Render a duration in canonical form, e.g. ``"1m0s"`` or ``"23h0m0s"``."""
    nanos = _total_nanos(value)
    if nanos == 0:
        return "0s"
    sign = "-" if nanos < 0 else ""
    u = abs(nanos)

    def with_frac(whole: int, frac: int, width: int) -> str:
        digits = f"{frac:0{width}d}".rstrip("0")
        return f"{whole}.{digits}" if digits else str(whole)

    if u < 1_000_000_000:
        if u < 1_000:
            return f"{sign}{u}ns"
        if u < 1_000_000:
            return f"{sign}{with_frac(u // 1_000, u % 1_000, 3)}µs"
        return f"{sign}{with_frac(u // 1_000_000, u % 1_000_000, 6)}ms"

    hours, rest = divmod(u, 3_600_000_000_000)
    minutes, rest = divmod(rest, 60_000_000_000)
    seconds = with_frac(rest // 1_000_000_000, rest % 1_000_000_000, 9) + "s"
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{sign}{minutes}m{seconds}"
    return f"{sign}{seconds}"


# --------------------------------------------------------------------------
# Config shape


@dataclass
class SystemBackend:
    """Desktop notifications via notify-send."""

    enabled: bool = False
    binary_path: str = ""
    urgency: str = ""


@dataclass
class NtfyBackend:
    """Push notifications via an ntfy server."""

    enabled: bool = False
    url: str = ""
    topic: str = ""


@dataclass
class Backends:
    system: SystemBackend = field(default_factory=SystemBackend)
    ntfy: NtfyBackend = field(default_factory=NtfyBackend)


@dataclass
class ActionsConfig:
    """Script-runner wiring; ``config_path`` empty means the XDG default."""

    enabled: bool = False
    config_path: str = ""


@dataclass
class Notifications:
    """Daemon-side notification knobs."""

    enabled: bool = False
    tick_interval: timedelta = field(default_factory=timedelta)
    max_lead: timedelta = field(default_factory=timedelta)
    max_concurrent_spawns: int = 0
    calendars: list[str] = field(default_factory=list)
    backends: Backends = field(default_factory=Backends)
    actions: ActionsConfig = field(default_factory=ActionsConfig)

    def validate(self) -> None:
        """Raise :class:`ConfigError` if notification settings are unusable."""
        topic = self.backends.ntfy.topic
        if not self.enabled:
            if topic and not _NTFY_TOPIC_RE.match(topic):
                raise ConfigError(
                    f"config: notifications.backends.ntfy.topic {topic!r} invalid "
                    f"(must match {NTFY_TOPIC_PATTERN})"
                )
            return
        tick = self.tick_interval
        if tick and tick < timedelta(seconds=30):
            raise ConfigError(
                f"config: notifications.tick_interval {format_duration(tick)} below minimum 30s"
            )
        lead = self.max_lead
        if lead and lead > timedelta(hours=24):
            raise ConfigError(
                f"config: notifications.max_lead {format_duration(lead)} above 24h cap"
            )
        ntfy = self.backends.ntfy
        if ntfy.enabled:
            if not ntfy.url.strip():
                raise ConfigError(
                    "config: notifications.backends.ntfy.url required when ntfy backend enabled"
                )
            if not ntfy.topic.strip():
                raise ConfigError(
                    "config: notifications.backends.ntfy.topic required when ntfy backend enabled"
                )
        if topic and not _NTFY_TOPIC_RE.match(topic):
            raise ConfigError(
                f"config: notifications.backends.ntfy.topic {topic!r} invalid "
                f"(must match {NTFY_TOPIC_PATTERN})"
            )
        urgency = self.backends.system.urgency
        if urgency and urgency not in _URGENCIES:
            raise ConfigError(
                f"config: notifications.backends.system.urgency {urgency!r} "
                "must be low|normal|critical"
            )


def _valid_timezone(name: str) -> bool:
    if name in ("", "UTC", "Local"):
        return True
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


def _valid_clock(text: str) -> bool:
    match = _NIGHTLY_RE.match(text)
    if match is None:
        return False
    return int(match.group(1)) < 24 and int(match.group(2)) < 60


@dataclass
class Config:
    """The resolved configuration."""

    vault: str = ""
    base_path: str = ""
    timezone: str = ""
    nightly_at: str = ""
    horizon_months: int = 0
    archive_cutoff_months: int = 0
    debounce_ms: int = 0
    calendars: list[str] = field(default_factory=list)
    notifications: Notifications = field(default_factory=Notifications)

    def validate(self) -> None:
        """Raise :class:`ConfigError` on any out-of-range or malformed value."""
        if ".." in self.base_path:
            raise ConfigError(
                f"config: base_path {self.base_path!r} contains .. — must stay inside the vault"
            )
        if self.base_path.startswith("/") or self.base_path.startswith(os.sep):
            raise ConfigError(
                f"config: base_path {self.base_path!r} must be relative to the vault "
                "(no leading slash)"
            )
        if not _valid_timezone(self.timezone):
            raise ConfigError(f"config: unknown timezone {self.timezone!r}")
        if not _valid_clock(self.nightly_at):
            raise ConfigError(f"config: nightly_at {self.nightly_at!r} must be HH:MM")
        if not 1 <= self.horizon_months <= 120:
            raise ConfigError(
                f"config: horizon_months {self.horizon_months} out of range [1,120]"
            )
        if not 0 <= self.archive_cutoff_months <= 120:
            raise ConfigError(
                f"config: archive_cutoff_months {self.archive_cutoff_months} out of range [0,120]"
            )
        if not 1 <= self.debounce_ms <= 60000:
            raise ConfigError(f"config: debounce_ms {self.debounce_ms} out of range [1,60000]")
        if not self.calendars:
            raise ConfigError("config: calendars list is empty")
        self.notifications.validate()

    def to_dict(self) -> dict[str, Any]:
        """Return the on-disk YAML shape, omitting empty optional fields."""
        out: dict[str, Any] = {"vault": self.vault, "base_path": self.base_path}
        for key in ("timezone", "nightly_at", "horizon_months",
                    "archive_cutoff_months", "debounce_ms"):
            value = getattr(self, key)
            if value:
                out[key] = value
        if self.calendars:
            out["calendars"] = list(self.calendars)

        n = self.notifications
        notif: dict[str, Any] = {"enabled": n.enabled}
        if n.tick_interval:
            notif["tick_interval"] = format_duration(n.tick_interval)
        if n.max_lead:
            notif["max_lead"] = format_duration(n.max_lead)
        if n.max_concurrent_spawns:
            notif["max_concurrent_spawns"] = n.max_concurrent_spawns
        if n.calendars:
            notif["calendars"] = list(n.calendars)
        system: dict[str, Any] = {"enabled": n.backends.system.enabled}
        if n.backends.system.binary_path:
            system["binary_path"] = n.backends.system.binary_path
        if n.backends.system.urgency:
            system["urgency"] = n.backends.system.urgency
        notif["backends"] = {
            "system": system,
            "ntfy": {
                "enabled": n.backends.ntfy.enabled,
                "url": n.backends.ntfy.url,
                "topic": n.backends.ntfy.topic,
            },
        }
        actions: dict[str, Any] = {"enabled": n.actions.enabled}
        if n.actions.config_path:
            actions["config_path"] = n.actions.config_path
        notif["actions"] = actions
        out["notifications"] = notif
        return out


def defaults() -> Config:
    """Return a Config holding the built-in defaults."""
    return Config(
        timezone="Europe/Stockholm",
        nightly_at="03:00",
        horizon_months=12,
        archive_cutoff_months=6,
        debounce_ms=500,
        calendars=["health", "tech", "work", "life", "friends-family", "special"],
        notifications=Notifications(
            enabled=False,
            tick_interval=timedelta(minutes=1),
            max_lead=timedelta(hours=23),
            max_concurrent_spawns=4,
        ),
    )


def config_path() -> Path:
    """Return the expected config file path; existence is not checked."""
    base = os.environ.get("XDG_CONFIG_HOME", "")
    if base:
        base_dir = Path(base)
    else:
        try:
            base_dir = Path.home() / ".config"
        except RuntimeError as exc:
            raise ConfigError(f"config: cannot resolve home directory: {exc}") from exc
    return base_dir / "calemdar" / "config.yaml"


active: Config = defaults()


# --------------------------------------------------------------------------
# YAML decoding


class _Loader(yaml.SafeLoader):
    """Safe loader with YAML 1.2-style scalars: no sexagesimals, no yes/no."""


_DROPPED_TAGS = {
    "tag:yaml.org,2002:int",
    "tag:yaml.org,2002:float",
    "tag:yaml.org,2002:bool",
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


def _mapping(value: Any, where: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"config: {where} must be a mapping")
    return value


def _str(data: dict[str, Any], key: str, where: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ConfigError(f"config: {where}{key} must be a string")


def _int(data: dict[str, Any], key: str, where: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise ConfigError(f"config: {where}{key} must be an integer, got {value!r}")


def _bool(data: dict[str, Any], key: str, where: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    raise ConfigError(f"config: {where}{key} must be true or false, got {value!r}")


def _str_list(data: dict[str, Any], key: str, where: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"config: {where}{key} must be a list")
    return [_str({"item": item}, "item", f"{where}{key}.") for item in value]


def _duration(data: dict[str, Any], key: str, where: str) -> timedelta:
    text = _str(data, key, where)
    if not text:
        return timedelta(0)
    try:
        return parse_duration(text)
    except ValueError as exc:
        raise ConfigError(f"config: {where}{key}: duration {text!r}: {exc}") from exc


def _decode(raw: Any) -> Config:
    data = _mapping(raw, "document")
    ndata = _mapping(data.get("notifications"), "notifications")
    bdata = _mapping(ndata.get("backends"), "notifications.backends")
    sdata = _mapping(bdata.get("system"), "notifications.backends.system")
    tdata = _mapping(bdata.get("ntfy"), "notifications.backends.ntfy")
    adata = _mapping(ndata.get("actions"), "notifications.actions")
    return Config(
        vault=_str(data, "vault", ""),
        base_path=_str(data, "base_path", ""),
        timezone=_str(data, "timezone", ""),
        nightly_at=_str(data, "nightly_at", ""),
        horizon_months=_int(data, "horizon_months", ""),
        archive_cutoff_months=_int(data, "archive_cutoff_months", ""),
        debounce_ms=_int(data, "debounce_ms", ""),
        calendars=_str_list(data, "calendars", ""),
        notifications=Notifications(
            enabled=_bool(ndata, "enabled", "notifications."),
            tick_interval=_duration(ndata, "tick_interval", "notifications."),
            max_lead=_duration(ndata, "max_lead", "notifications."),
            max_concurrent_spawns=_int(ndata, "max_concurrent_spawns", "notifications."),
            calendars=_str_list(ndata, "calendars", "notifications."),
            backends=Backends(
                system=SystemBackend(
                    enabled=_bool(sdata, "enabled", "notifications.backends.system."),
                    binary_path=_str(sdata, "binary_path", "notifications.backends.system."),
                    urgency=_str(sdata, "urgency", "notifications.backends.system."),
                ),
                ntfy=NtfyBackend(
                    enabled=_bool(tdata, "enabled", "notifications.backends.ntfy."),
                    url=_str(tdata, "url", "notifications.backends.ntfy."),
                    topic=_str(tdata, "topic", "notifications.backends.ntfy."),
                ),
            ),
            actions=ActionsConfig(
                enabled=_bool(adata, "enabled", "notifications.actions."),
                config_path=_str(adata, "config_path", "notifications.actions."),
            ),
        ),
    )


# --------------------------------------------------------------------------
# Merging


def _merge_notifications(base: Notifications, file: Notifications) -> Notifications:
    system = replace(
        base.backends.system,
        enabled=base.backends.system.enabled or file.backends.system.enabled,
        binary_path=file.backends.system.binary_path or base.backends.system.binary_path,
        urgency=file.backends.system.urgency or base.backends.system.urgency,
    )
    ntfy = replace(
        base.backends.ntfy,
        enabled=base.backends.ntfy.enabled or file.backends.ntfy.enabled,
        url=file.backends.ntfy.url or base.backends.ntfy.url,
        topic=file.backends.ntfy.topic or base.backends.ntfy.topic,
    )
    actions = replace(
        base.actions,
        enabled=base.actions.enabled or file.actions.enabled,
        config_path=file.actions.config_path or base.actions.config_path,
    )
    return Notifications(
        enabled=base.enabled or file.enabled,
        tick_interval=file.tick_interval or base.tick_interval,
        max_lead=file.max_lead or base.max_lead,
        max_concurrent_spawns=file.max_concurrent_spawns or base.max_concurrent_spawns,
        calendars=list(file.calendars or base.calendars),
        backends=Backends(system=system, ntfy=ntfy),
        actions=actions,
    )


def _merge(base: Config, file: Config) -> Config:
    return Config(
        vault=file.vault or base.vault,
        base_path=file.base_path or base.base_path,
        timezone=file.timezone or base.timezone,
        nightly_at=file.nightly_at or base.nightly_at,
        horizon_months=file.horizon_months or base.horizon_months,
        archive_cutoff_months=file.archive_cutoff_months or base.archive_cutoff_months,
        debounce_ms=file.debounce_ms or base.debounce_ms,
        calendars=list(file.calendars or base.calendars),
        notifications=_merge_notifications(base.notifications, file.notifications),
    )


def load() -> Config:
    """Read the config file if present and merge it onto the defaults.

    A missing file yields the defaults. Read, parse and validation
    failures raise :class:`ConfigError`.
    """
    base = defaults()
    path = config_path()
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        return base
    except OSError as exc:
        raise ConfigError(f"config: read {path}: {exc}") from exc
    try:
        document = yaml.load(raw, Loader=_Loader)
    except yaml.YAMLError as exc:
        raise ConfigError(f"config: parse {path}: {exc}") from exc
    try:
        file_cfg = _decode(document)
    except ConfigError as exc:
        raise ConfigError(f"config: parse {path}: {exc}") from exc
    merged = _merge(base, file_cfg)
    merged.validate()
    return merged


def load_and_apply() -> Config:
    """Load the config and store it in :data:`active`; returns it."""
    global active
    cfg = load()
    active = cfg
    return cfg