"""Fixed name -> glyph table used to resolve ``emoji`` field values on read."""

from __future__ import annotations

import re

EMOJI_GLYPHS: dict[str, str] = {
    "smile": "\U0001F600",
    "joy": "\U0001F602",
    "cry": "\U0001F62D",
    "angry": "\U0001F621",
    "heart": "❤️",
    "thumbsup": "\U0001F44D",
    "thumbsdown": "\U0001F44E",
    "fire": "\U0001F525",
    "star": "⭐",
    "wink": "\U0001F609",
}

_TOKEN_RE = re.compile(r"^:([a-z0-9_+-]+):$")


def emoji_name(token: str) -> str | None:
    """Return the bare name inside a ``:name:`` token, or ``None``."""
    match = _TOKEN_RE.match(token)
    if match is None:
        return None
    return match.group(1)


def resolve_emoji(token: str) -> str | None:
    """Return the glyph for a ``:name:`` token, or ``None`` if unknown."""
    name = emoji_name(token)
    if name is None:
        return None
    return EMOJI_GLYPHS.get(name)
