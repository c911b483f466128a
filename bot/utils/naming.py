from __future__ import annotations

import re
from collections.abc import Iterable

from utils.constants import CHANNEL_NAME_MAX_LENGTH

_DISALLOWED = re.compile(r"[^a-z0-9\s_-]")
_WHITESPACE = re.compile(r"\s+")

# Leaves room for a "-NNN" uniqueness suffix.
_BASE_MAX_LENGTH = CHANNEL_NAME_MAX_LENGTH - 10


def slugify(text: str | None) -> str:
    """Turn a display string into a channel-safe fragment.

    Lowercases, drops anything outside ``[a-z0-9 _-]``, trims and collapses
    whitespace runs into single dashes. Accented letters are dropped, not
    transliterated: ``"Coördinator"`` becomes ``"cordinator"``.
    """
    if not text:
        return ""
    cleaned = _DISALLOWED.sub("", str(text).lower()).strip()
    return _WHITESPACE.sub("-", cleaned)


def build_channel_base(category: str, username: str, nickname: str | None = None) -> str:
    user_slug = slugify(username)
    parts = [slugify(category), user_slug]
    nick_slug = slugify(nickname)
    if nick_slug and nick_slug != user_slug:
        parts.append(nick_slug)
    return "-".join(part for part in parts if part)[:_BASE_MAX_LENGTH]


def unique_channel_name(base: str, existing: Iterable[str]) -> str:
    taken = set(existing)
    candidate = base
    suffix = 1
    while candidate in taken:
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate
