"""Named actions loaded from a laptop-local ``actions.yaml`` and run on demand.

Actions are deliberately kept outside the synced vault: vault frontmatter
refers to an action by short name, and this file is what turns that name
into an executable command. Each action sets exactly one of ``cmd`` (run
directly, no shell) or ``shell`` (run through ``sh -c``).
"""

from __future__ import annotations

import os
import re
import signal
import subprocess
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping

import yaml

from calemdar.config import format_duration, parse_duration

NAME_PATTERN = r"^[a-z][a-z0-9-]{0,47}$"
_NAME_RE = re.compile(r"[a-z][a-z0-9-]{0,47}")

DEFAULT_TIMEOUT = timedelta(seconds=30)
DEFAULT_MAX_CONCURRENT = 4
_CHILD_PATH = "/usr/local/bin:/usr/bin:/bin"

# Desktop-session variables passed through so GUI-launching actions can
# reach DBus, the display server and the runtime dir.
DESKTOP_PASSTHROUGH = (
    "DBUS_SESSION_BUS_ADDRESS",
    "DISPLAY",
    "WAYLAND_DISPLAY",
    "XDG_RUNTIME_DIR",
    "XDG_SESSION_TYPE",
    "XDG_CURRENT_DESKTOP",
    "XAUTHORITY",
)


class ActionError(Exception):
    """Raised when actions.yaml is invalid or an action fails to run."""


@dataclass(frozen=True)
class Action:
    """One entry of actions.yaml."""

    name: str
    cmd: tuple[str, ...] = ()
    shell: str = ""
    timeout: timedelta = timedelta(0)


@dataclass
class ActionsFile:
    """The parsed contents of actions.yaml."""

    actions: dict[str, Action] = field(default_factory=dict)


def actions_path() -> Path:
    """Return ``$XDG_CONFIG_HOME/calemdar/actions.yaml`` (or under ``~/.config``)."""
    base = os.environ.get("XDG_CONFIG_HOME", "")
    if base:
        base_dir = Path(base)
    else:
        try:
            base_dir = Path.home() / ".config"
        except RuntimeError as exc:
            raise ActionError(f"actions: cannot resolve home directory: {exc}") from exc
    return base_dir / "calemdar" / "actions.yaml"


def _scalar_text(value: Any) -> str | None:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    return None


def _decode_cmd(value: Any, name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, list):
        argv = []
        for item in value:
            text = _scalar_text(item)
            if text is None:
                raise ActionError(f"actions: {name!r} cmd entries must be strings")
            argv.append(text)
        return tuple(argv)
    text = _scalar_text(value)
    if text is None:
        raise ActionError(f"actions: {name!r} cmd must be a string or a sequence")
    return (text,) if text else ()


def _decode_shell(value: Any, name: str) -> str:
    if value is None:
        return ""
    text = _scalar_text(value)
    if text is None:
        raise ActionError(f"actions: {name!r} shell must be a string")
    return text


def _decode_timeout(value: Any, name: str) -> timedelta:
    if value is None:
        return timedelta(0)
    if isinstance(value, int) and not isinstance(value, bool):
        return timedelta(microseconds=value / 1000)
    if isinstance(value, str):
        if not value:
            return timedelta(0)
        try:
            return parse_duration(value)
        except ValueError as exc:
            raise ActionError(f"actions: {name!r} timeout {value!r}: {exc}") from exc
    raise ActionError(f"actions: {name!r} timeout must be a duration such as '10s'")


def _decode_action(name: str, body: Any) -> Action:
    if body is None:
        body = {}
    if not isinstance(body, dict):
        raise ActionError(f"actions: {name!r} must be a mapping")
    return Action(
        name=name,
        cmd=_decode_cmd(body.get("cmd"), name),
        shell=_decode_shell(body.get("shell"), name),
        timeout=_decode_timeout(body.get("timeout"), name),
    )


def load(path: str | os.PathLike[str]) -> ActionsFile:
    """Read and validate actions.yaml; a missing file gives an empty set."""
    path = Path(path)
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        return ActionsFile()
    except OSError as exc:
        raise ActionError(f"actions: read {path}: {exc}") from exc
    try:
        document = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ActionError(f"actions: parse {path}: {exc}") from exc
    if document is None:
        return ActionsFile()
    if not isinstance(document, dict):
        raise ActionError(f"actions: parse {path}: document must be a mapping")
    entries = document.get("actions")
    if entries is None:
        return ActionsFile()
    if not isinstance(entries, dict):
        raise ActionError(f"actions: parse {path}: actions must be a mapping")

    actions: dict[str, Action] = {}
    for key, body in entries.items():
        name = str(key)
        if not _NAME_RE.fullmatch(name):
            raise ActionError(f"actions: name {name!r} must match {NAME_PATTERN}")
        action = _decode_action(name, body)
        if action.cmd and action.shell:
            raise ActionError(f"actions: {name!r} sets both cmd and shell — pick one")
        if not action.cmd and not action.shell:
            raise ActionError(f"actions: {name!r} must set cmd or shell")
        if action.timeout < timedelta(0):
            raise ActionError(f"actions: {name!r} timeout must be >= 0")
        actions[name] = action
    return ActionsFile(actions=actions)


def _curate_env(extra: Mapping[str, str]) -> dict[str, str]:
    """Build the child environment: fixed PATH, HOME/USER, desktop vars, extras."""
    env = {"PATH": _CHILD_PATH}
    for key in ("HOME", "USER", *DESKTOP_PASSTHROUGH):
        value = os.environ.get(key, "")
        if value:
            env[key] = value
    env.update({str(k): str(v) for k, v in extra.items()})
    return env


def _kill_group(proc: subprocess.Popen[bytes]) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError, OSError):
        proc.kill()


class Runner:
    """Runs actions with a curated environment, a concurrency cap and timeouts.

    Safe for use from several threads.
    """

    def __init__(self, config: ActionsFile | None, max_concurrent: int = DEFAULT_MAX_CONCURRENT):
        if max_concurrent <= 0:
            max_concurrent = DEFAULT_MAX_CONCURRENT
        self.max_concurrent = max_concurrent
        self._config = config
        self._lock = threading.Lock()
        self._slots = threading.BoundedSemaphore(max_concurrent)

    def reload(self, config: ActionsFile | None) -> None:
        """Swap in a fresh configuration, keeping the concurrency cap."""
        with self._lock:
            self._config = config

    def lookup(self, name: str) -> Action | None:
        """Return the named action, or ``None`` if it is not registered."""
        with self._lock:
            if self._config is None:
                return None
            return self._config.actions.get(name)

    def names(self) -> list[str]:
        """Return the registered action names, in no particular order."""
        with self._lock:
            if self._config is None:
                return []
            return list(self._config.actions)

    def run(self, name: str, env: Mapping[str, str] | None = None) -> None:
        """Run the named action and wait for it, within its timeout.

        Only ``env`` plus a minimal PATH, HOME, USER and desktop-session
        variables reach the child; the parent environment is not inherited.
        """
        action = self.lookup(name)
        if action is None:
            raise ActionError(f"action {name!r} not registered in actions.yaml")
        timeout = action.timeout or DEFAULT_TIMEOUT
        seconds = timeout.total_seconds()
        deadline = time.monotonic() + seconds

        if not self._slots.acquire(timeout=seconds):
            raise ActionError(
                f"action {name!r}: timed out after {format_duration(timeout)} waiting for a slot"
            )
        try:
            if action.cmd:
                argv = list(action.cmd)
            elif action.shell:
                argv = ["sh", "-c", action.shell]
            else:
                raise ActionError(f"action {name!r} has neither cmd nor shell")
            remaining = max(deadline - time.monotonic(), 0.0)
            self._spawn(name, argv, _curate_env(env or {}), remaining, timeout)
        finally:
            self._slots.release()

    @staticmethod
    def _spawn(
        name: str,
        argv: list[str],
        env: dict[str, str],
        remaining: float,
        timeout: timedelta,
    ) -> None:
        try:
            proc = subprocess.Popen(
                argv,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as exc:
            raise ActionError(f"spawn {name!r}: {exc}") from exc
        try:
            output, _ = proc.communicate(timeout=remaining)
        except subprocess.TimeoutExpired:
            _kill_group(proc)
            output, _ = proc.communicate()
            text = output.decode(errors="replace") if output else ""
            raise ActionError(
                f"spawn {name!r}: killed after {format_duration(timeout)} timeout "
                f"(output: {text})"
            ) from None
        if proc.returncode != 0:
            text = output.decode(errors="replace") if output else ""
            raise ActionError(
                f"spawn {name!r}: exit status {proc.returncode} (output: {text})"
            )