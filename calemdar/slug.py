"""Filename-safe slugs derived from titles."""

from __future__ import annotations

import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """Lowercase ``text`` and turn each run of non-ASCII-alphanumerics into one dash."""
    return _NON_ALNUM.sub("-", text.lower()).strip("-")