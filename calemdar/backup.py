"""Local backups of recurring root files, taken before they are deleted.

Backups live under ``<vault>/.calemdar/backup/recurring/`` next to the
local cache, which is not synced between devices. Files are named
``<slug>-<UTC stamp>.md`` with dashes instead of colons in the time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

SUB_DIR = Path(".calemdar") / "backup" / "recurring"

_STAMP_FORMAT = "%Y-%m-%dT%H-%M-%SZ"
_STAMP_LEN = len("2006-01-02T15-04-05Z")


class BackupError(Exception):
    """Raised when a backup cannot be written, read or pruned."""

    def __init__(self, message: str, removed: int = 0):
        super().__init__(message)
        self.removed = removed


@dataclass(frozen=True)
class Entry:
    """One backup file on disk."""

    slug: str
    when: datetime
    path: Path
    filename: str


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def backup_dir(vault_root: str | os.PathLike[str]) -> Path:
    """Return the backup directory of the vault at ``vault_root``."""
    return Path(vault_root) / SUB_DIR


def filename(slug: str, when: datetime) -> str:
    """Return the backup filename for ``slug`` taken at ``when``."""
    return f"{slug}-{_as_utc(when).strftime(_STAMP_FORMAT)}.md"


def write_from_bytes(
    vault_root: str | os.PathLike[str], slug: str, content: bytes, when: datetime
) -> Path:
    """Write ``content`` as a backup for ``slug`` and return its path."""
    if not slug:
        raise BackupError("backup: empty slug")
    directory = backup_dir(vault_root)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise BackupError(f"backup: mkdir: {exc}") from exc
    target = directory / filename(slug, when)
    try:
        target.write_bytes(content)
    except OSError as exc:
        raise BackupError(f"backup: write: {exc}") from exc
    return target


def write_from_file(
    vault_root: str | os.PathLike[str],
    slug: str,
    src_path: str | os.PathLike[str],
    when: datetime,
) -> Path:
    """Copy the file at ``src_path`` into the backup directory under ``slug``."""
    try:
        raw = Path(src_path).read_bytes()
    except OSError as exc:
        raise BackupError(f"backup: read source: {exc}") from exc
    return write_from_bytes(vault_root, slug, raw, when)


def _parse_entry(directory: Path, name: str) -> Entry | None:
    base = name.removesuffix(".md")
    if len(base) < _STAMP_LEN + 2:
        return None
    stamp_start = len(base) - _STAMP_LEN
    if base[stamp_start - 1] != "-":
        return None
    stamp = base[stamp_start:]
    try:
        when = datetime.strptime(stamp, _STAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None
    if when.strftime(_STAMP_FORMAT) != stamp:
        return None
    return Entry(
        slug=base[: stamp_start - 1],
        when=when,
        path=directory / name,
        filename=name,
    )


def list_backups(vault_root: str | os.PathLike[str]) -> list[Entry]:
    """Return every backup, sorted by slug and newest first within a slug."""
    directory = backup_dir(vault_root)
    try:
        children = list(directory.iterdir())
    except FileNotFoundError:
        return []
    except OSError as exc:
        raise BackupError(f"backup: list {directory}: {exc}") from exc
    entries = [
        entry
        for child in children
        if not child.is_dir() and child.name.endswith(".md")
        for entry in [_parse_entry(directory, child.name)]
        if entry is not None
    ]
    entries.sort(key=lambda e: e.when, reverse=True)
    entries.sort(key=lambda e: e.slug)
    return entries


def latest_for_slug(vault_root: str | os.PathLike[str], slug: str) -> Entry | None:
    """Return the most recent backup for ``slug``, or ``None`` if there is none."""
    matches = [e for e in list_backups(vault_root) if e.slug == slug]
    return max(matches, key=lambda e: e.when, default=None)


def prune(vault_root: str | os.PathLike[str], cutoff: datetime) -> int:
    """Delete backups taken before ``cutoff`` and return how many were removed.

    The sweep continues past individual failures; the first one is then
    raised as :class:`BackupError`, whose ``removed`` holds the count.
    """
    limit = _as_utc(cutoff)
    removed = 0
    first_error: str | None = None
    for entry in list_backups(vault_root):
        if entry.when >= limit:
            continue
        try:
            entry.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            if first_error is None:
                first_error = f"prune {entry.filename}: {exc}"
            continue
        removed += 1
    if first_error is not None:
        raise BackupError(first_error, removed=removed)
    return removed