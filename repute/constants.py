"""
repute.constants — Shared Constants & Helpers
==============================================

Single source of truth for presentation constants and the small text/score
helpers shared by the weight function and the evaluators.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Leaderboard presentation
# ---------------------------------------------------------------------------
RANK_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉

# Interactions scoring above this weight move the user's standing
STANDING_WEIGHT_THRESHOLD = 2.0


# ---------------------------------------------------------------------------
# Score helpers
# ---------------------------------------------------------------------------
def clamp01(value: float) -> float:
    """Clamp *value* into [0, 1]."""
    return max(0.0, min(1.0, value))


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------
def ensure_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime.

    SQLite hands back naive datetimes for ``DateTime(timezone=True)``
    columns; they were written as UTC, so they are tagged as such.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: object) -> datetime | None:
    """Coerce a payload timestamp into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (a trailing ``Z`` included) and epoch
    numbers.  Numbers above 1e11 are read as milliseconds, the unit the chat
    runtimes send.  Anything else yields ``None``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if abs(value) > 1e11 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


# ---------------------------------------------------------------------------
# Text processing helpers
# ---------------------------------------------------------------------------
URL_REGEX = re.compile(r"https?://\S+")
_NON_ALNUM_REGEX = re.compile(r"[^a-z0-9\s]")


def count_urls(text: str) -> int:
    """Count http(s) URLs in *text*."""
    return len(URL_REGEX.findall(text))


def tokenize(text: str) -> list[str]:
    """Lower-case *text*, drop URLs and punctuation, split on whitespace."""
    lowered = URL_REGEX.sub(" ", text.lower())
    return _NON_ALNUM_REGEX.sub(" ", lowered).split()
