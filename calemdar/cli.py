"""Command-line entry point: configuration management and action listing."""

from __future__ import annotations

import argparse
import os
import subprocess
import sys
from functools import partial
from pathlib import Path
from typing import Any, Callable

import yaml

from calemdar import config
from calemdar.actions import ActionError, actions_path
from calemdar.actions import load as load_actions
from calemdar.config import ConfigError

ANSI_RESET = "\x1b[0m"
ANSI_BOLD = "\x1b[1m"
ANSI_DIM = "\x1b[2m"
ANSI_GRAY = "\x1b[90m"
ANSI_CYAN = "\x1b[36m"
ANSI_GREEN = "\x1b[32m"
ANSI_YELLOW = "\x1b[33m"
ANSI_MAGENTA = "\x1b[35m"

_STUB_HEADER = (
    "# calemdar config — edit freely. Validation runs on save.\n"
    "# See examples/config.yaml in the repo for key-by-key docs.\n"
    "#\n"
    "# vault is REQUIRED for the daemon. Set it to your Obsidian vault path.\n\n"
)


class _CliError(Exception):
    """A command failed; the message is shown to the user."""


def _compute_color_on() -> bool:
    if os.environ.get("NO_COLOR", ""):
        return False
    try:
        return sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False


# True iff stdout is a terminal and NO_COLOR is unset; decided once at startup.
COLOR_ON = _compute_color_on()


def colorize(codes: str, text: str) -> str:
    """Wrap ``text`` in ANSI ``codes`` when colour output is enabled."""
    if not COLOR_ON:
        return text
    return f"{codes}{text}{ANSI_RESET}"


def app_name() -> str:
    """Return the program name with "md" highlighted."""
    return "cale" + colorize(ANSI_CYAN, "md") + "ar"


def _dump_yaml(data: dict[str, Any]) -> str:
    return yaml.safe_dump(
        data, sort_keys=False, indent=2, default_flow_style=False, allow_unicode=True
    )


def build_stub() -> str:
    """Return a default config file: a comment header followed by the defaults."""
    return _STUB_HEADER + _dump_yaml(config.defaults().to_dict())


# --------------------------------------------------------------------------
# config subcommands


def _cmd_config_path(args: argparse.Namespace) -> None:
    print(config.config_path())


def _cmd_config_show(args: argparse.Namespace) -> None:
    path = config.config_path()
    if not path.exists():
        print(f"# no config file at {path} — showing defaults only")
    else:
        print(f"# active config (defaults merged with {path})")
    sys.stdout.write(_dump_yaml(config.active.to_dict()))


def _write_stub(path: Path) -> None:
    path.write_text(build_stub(), encoding="utf-8")


def _make_config_dir(path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise _CliError(f"mkdir config dir: {exc}") from exc


def _cmd_config_init(args: argparse.Namespace) -> None:
    path = config.config_path()
    if path.exists() and not args.override:
        raise _CliError(
            f"{path} already exists — edit it with `calemdar config edit`, "
            "or re-run with --override"
        )
    _make_config_dir(path)
    _write_stub(path)
    print(f"wrote {path}")
    if not os.environ.get("EDITOR", ""):
        print("next: set $EDITOR and run `calemdar config edit` to tweak")
        return
    _open_editor_and_validate(path)


def _cmd_config_edit(args: argparse.Namespace) -> None:
    path = config.config_path()
    _make_config_dir(path)
    if not path.exists():
        try:
            _write_stub(path)
        except OSError as exc:
            raise _CliError(f"write stub: {exc}") from exc
        print(f"created stub at {path}", file=sys.stderr)
    _open_editor_and_validate(path)


def _open_editor_and_validate(path: Path) -> None:
    """Run $EDITOR on ``path``, then reload and validate the config."""
    editor = os.environ.get("EDITOR", "")
    if not editor:
        raise _CliError("$EDITOR not set")
    parts = editor.split()
    if not parts:
        raise _CliError("$EDITOR empty after split")
    try:
        result = subprocess.run([*parts, str(path)], check=False)
    except OSError as exc:
        print(f"editor exited: {exc} (validating file anyway)", file=sys.stderr)
    else:
        if result.returncode != 0:
            print(
                f"editor exited: exit status {result.returncode} (validating file anyway)",
                file=sys.stderr,
            )

    try:
        fresh = config.load()
    except ConfigError as exc:
        raise _CliError(
            f"invalid after edit:\n  {exc}\n\nfix the file and re-run `calemdar config edit`"
        ) from exc
    config.active = fresh
    print("config ok.")


# --------------------------------------------------------------------------
# notify subcommands


def _cmd_notify_actions(args: argparse.Namespace) -> None:
    path = config.active.notifications.actions.config_path or str(actions_path())
    registered = load_actions(path)
    if not registered.actions:
        print(f"no actions registered (looked at {path})")
        return
    print(f"# {path}")
    for name, action in registered.actions.items():
        if action.cmd:
            print(f"{name:<24} cmd: [{' '.join(action.cmd)}]")
        elif action.shell:
            print(f"{name:<24} shell: {action.shell}")


# --------------------------------------------------------------------------
# wiring


def _print_help(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    parser.print_help()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="calemdar",
        description=(
            app_name() + " — Obsidian Full Calendar recurring-event manager.\n\n"
            "Expands recurring templates into individual per-occurrence markdown\n"
            "files so Full Calendar sees only flat single events."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version="calemdar version dev")
    parser.add_argument("--vault", default="", help="vault root path (overrides config + env)")
    parser.set_defaults(handler=partial(_print_help, parser), is_config=False)
    sub = parser.add_subparsers(metavar="command")

    cfg = sub.add_parser("config", help="Show config file path + active values")
    cfg.set_defaults(handler=partial(_print_help, cfg), is_config=True)
    cfg_sub = cfg.add_subparsers(metavar="command")

    commands: list[tuple[str, str, Callable[[argparse.Namespace], None]]] = [
        ("path", "Print the config file lookup path", _cmd_config_path),
        ("show", "Print the active (post-merge) configuration", _cmd_config_show),
        ("init", "Write a default config file (errors if one already exists)",
         _cmd_config_init),
        ("edit", "Open the config file in $EDITOR; validate on save", _cmd_config_edit),
    ]
    for name, text, handler in commands:
        p = cfg_sub.add_parser(name, help=text)
        p.set_defaults(handler=handler, is_config=True)
        if name == "init":
            p.add_argument("--override", action="store_true",
                           help="overwrite an existing config file")

    notify = sub.add_parser("notify", help="Send and manage upcoming-event notifications")
    notify.set_defaults(handler=partial(_print_help, notify), is_config=False)
    notify_sub = notify.add_subparsers(metavar="command")
    acts = notify_sub.add_parser("actions", help="List actions registered in actions.yaml")
    acts.set_defaults(handler=_cmd_notify_actions, is_config=False)
    return parser


def _load_config(tolerant: bool) -> None:
    """Load the config; config subcommands tolerate a broken file so it can be fixed."""
    try:
        config.load_and_apply()
    except ConfigError:
        if not tolerant:
            raise


def main(argv: list[str] | None = None) -> int:
    """Run the command line and return the process exit status."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        _load_config(args.is_config)
        args.handler(args)
    except (_CliError, ConfigError, ActionError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())