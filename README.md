# calemdar

Tools for managing recurring events in Obsidian Full Calendar vaults:
expanding recurring templates into individual per-occurrence events,
translating Full Calendar's own recurring formats, keeping backups of
recurring templates, running named actions, and managing the config file.

## Install

```
pip install .
```

## Configuration

The optional config file lives at `$XDG_CONFIG_HOME/calemdar/config.yaml`
(falling back to `~/.config/calemdar/config.yaml`). Every key is optional;
missing keys take built-in defaults (timezone `Europe/Stockholm`, nightly
run at `03:00`, a 12-month horizon, archiving after 6 months, 500 ms
debounce, and the calendars `health`, `tech`, `work`, `life`,
`friends-family`, `special`). The merged result is validated: ranges,
timezone, `HH:MM` times, a relative `base_path`, and the notification
settings (tick interval of at least 30s, max lead of at most 24h, ntfy
URL and topic when ntfy is enabled, urgency `low|normal|critical`).

```
calemdar config path              # where the config file is looked for
calemdar config show              # the active configuration, defaults merged in
calemdar config init [--override] # write a default config file
calemdar config edit              # open the file in $EDITOR and validate afterwards
```

`config init` opens `$EDITOR` after writing when it is set. The `config`
commands still run when the existing file is broken, so it can be fixed.

## Actions

Named actions are kept in a machine-local `actions.yaml` next to the
config file (or at `notifications.actions.config_path`):

```yaml
actions:
  open-zoom:
    cmd: ["/usr/bin/xdg-open", "zoommtg://"]
    timeout: 10s
  log-it:
    shell: "echo hi >> ~/.local/state/calemdar.log"
```

Each action sets exactly one of `cmd` (a string or a list, run without a
shell) or `shell` (run with `sh -c`). Names must match
`^[a-z][a-z0-9-]{0,47}$`; the default timeout is 30s.

```
calemdar notify actions   # list the actions registered in actions.yaml
```

`calemdar.actions.Runner` runs actions with a concurrency cap and a
per-action timeout. The child gets only a fixed `PATH`, `HOME`, `USER`, a
few desktop-session variables and the variables passed to `run`; the
parent environment is not inherited.

## Library use

- `calemdar.expand.expand(root, start, end, expanded_at, calendars)` turns
  a `Root` into its `Event` occurrences within an inclusive date window:
  daily, weekly with `byday`, monthly with `bymonthday`, intervals,
  `until` and exceptions. Notify rules are copied onto each occurrence.
- `calemdar.recurrence` holds the underlying date arithmetic.
- `calemdar.rrule.parse_rrule` reads the supported subset of RFC 5545
  RRULE (`FREQ` daily/weekly/monthly, `INTERVAL`, `BYDAY`, `BYMONTHDAY`,
  `UNTIL`); other keys raise `RRuleError`.
- `calemdar.fcparse` splits frontmatter, detects an event's `type:`, and
  translates Full Calendar `recurring` and `rrule` events into `Root`
  objects with `translate_recurring` and `translate_rrule`.
- `calemdar.slug.slugify` makes filename-safe slugs from titles.
- `calemdar.backup` writes, lists, finds the latest of, and prunes
  timestamped copies of recurring roots under
  `<vault>/.calemdar/backup/recurring/`.

## What this package does not do

It does not read or write event and series files in a vault, keep a
cache database, watch the vault, archive old events, or run as a daemon.
It has no commands for creating, listing or deleting events and series.
Notification backends can be configured and validated, but nothing here
sends notifications.