"""
repute.engine.weight — Interaction Weight Pipeline
===================================================

Pure calculation: no DB I/O, no clock reads.  The caller supplies ``now``.

Pipeline stages::

    InteractionRecord → Type → Sentiment → Length → Vocabulary → Decay → Context → Floor

Each stage multiplies the running weight.  Every table and threshold below
is the shipped policy; a :class:`~repute.engine.cache.ConfigCache` may
override any of them through the ``settings`` table (``weight.*`` keys).
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import TYPE_CHECKING

from repute.constants import clamp01
from repute.database.models import InteractionType
from repute.engine.interactions import InteractionRecord

if TYPE_CHECKING:
    from repute.engine.cache import ConfigCache

logger = logging.getLogger(__name__)

__all__ = [
    "CONTEXT_BONUSES",
    "QUALITY_VOCABULARY",
    "TYPE_MULTIPLIERS",
    "calculate_quality_score",
    "calculate_weight",
    "community_impact",
    "decay_factor",
]

# ---------------------------------------------------------------------------
# Scoring tables
# ---------------------------------------------------------------------------
TYPE_MULTIPLIERS: dict[str, float] = {
    InteractionType.RAID_PARTICIPATION: 2.0,
    InteractionType.RAID_INITIATION: 2.5,
    InteractionType.QUALITY_ENGAGEMENT: 1.5,
    InteractionType.COMMUNITY_HELP: 2.5,
    InteractionType.CONSTRUCTIVE_FEEDBACK: 2.0,
    InteractionType.SPAM_REPORT: -1.0,
    InteractionType.TOXIC_BEHAVIOR: -2.0,
    InteractionType.POSITIVE_FEEDBACK: 1.2,
    InteractionType.CONSTRUCTIVE_CRITICISM: 1.8,
    InteractionType.MENTOR_BEHAVIOR: 3.0,
    InteractionType.KNOWLEDGE_SHARING: 2.2,
    InteractionType.BUG_REPORT: 1.8,
    InteractionType.FEATURE_SUGGESTION: 1.5,
    InteractionType.TELEGRAM_MESSAGE: 0.5,
    InteractionType.DISCORD_MESSAGE: 0.5,
}
DEFAULT_TYPE_MULTIPLIER = 1.0

QUALITY_VOCABULARY: tuple[str, ...] = (
    "because",
    "however",
    "therefore",
    "although",
    "moreover",
    "furthermore",
    "specifically",
    "particularly",
    "detailed",
    "explanation",
    "example",
    "solution",
    "approach",
)

CONTEXT_BONUSES: dict[str, float] = {
    "mentions_others": 1.3,
    "helps_newbie": 1.5,
    "shares_resources": 1.4,
}

_SENTIMENT_FACTOR = 0.5
_LONG_CONTENT_CHARS = 100
_LONG_CONTENT_BONUS = 1.2
_SHORT_CONTENT_CHARS = 20
_SHORT_CONTENT_PENALTY = 0.8
_VOCABULARY_BONUS = 0.1
_DECAY_HOURS = 168.0  # one week
_DECAY_FLOOR = 0.1
_WEIGHT_FLOOR = -0.5

# Content quality score (stored alongside the weight)
_QUALITY_SCORE_WORDS: tuple[str, ...] = (
    "because",
    "however",
    "specifically",
    "detailed",
    "comprehensive",
)


# ---------------------------------------------------------------------------
# Stage helpers
# ---------------------------------------------------------------------------
def _vocabulary_hits(content: str, vocabulary: tuple[str, ...]) -> int:
    lowered = content.lower()
    return sum(1 for word in vocabulary if word in lowered)


def decay_factor(timestamp: datetime, now: datetime, half_life_hours: float = _DECAY_HOURS) -> float:
    """``e^(-hours/half_life)`` for an interaction at *timestamp*.

    Timestamps after *now* count as age zero.
    """
    hours = max(0.0, (now - timestamp).total_seconds() / 3600.0)
    return math.exp(-hours / half_life_hours)


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------
def calculate_weight(
    interaction: InteractionRecord,
    now: datetime,
    cache: ConfigCache | None = None,
) -> float:
    """Signed reputation weight of *interaction* as of *now*.

    Identical inputs always yield the identical weight.  The result is never
    below ``-0.5`` and has no ceiling.
    """
    if cache is not None:
        multipliers = cache.get_table("weight.type_multipliers", TYPE_MULTIPLIERS)
        bonuses = cache.get_table("weight.context_bonuses", CONTEXT_BONUSES)
        sentiment_factor = cache.get_float("weight.sentiment_factor", _SENTIMENT_FACTOR)
        long_chars = cache.get_int("weight.long_content_chars", _LONG_CONTENT_CHARS)
        long_bonus = cache.get_float("weight.long_content_bonus", _LONG_CONTENT_BONUS)
        short_chars = cache.get_int("weight.short_content_chars", _SHORT_CONTENT_CHARS)
        short_penalty = cache.get_float("weight.short_content_penalty", _SHORT_CONTENT_PENALTY)
        vocab_bonus = cache.get_float("weight.vocabulary_bonus", _VOCABULARY_BONUS)
        half_life = cache.get_float("weight.decay_hours", _DECAY_HOURS)
        decay_floor = cache.get_float("weight.decay_floor", _DECAY_FLOOR)
        floor = cache.get_float("weight.floor", _WEIGHT_FLOOR)
    else:
        multipliers = TYPE_MULTIPLIERS
        bonuses = CONTEXT_BONUSES
        sentiment_factor = _SENTIMENT_FACTOR
        long_chars, long_bonus = _LONG_CONTENT_CHARS, _LONG_CONTENT_BONUS
        short_chars, short_penalty = _SHORT_CONTENT_CHARS, _SHORT_CONTENT_PENALTY
        vocab_bonus = _VOCABULARY_BONUS
        half_life, decay_floor = _DECAY_HOURS, _DECAY_FLOOR
        floor = _WEIGHT_FLOOR

    weight = 1.0

    # 1. Interaction type
    weight *= multipliers.get(interaction.interaction_type, DEFAULT_TYPE_MULTIPLIER)

    # 2. Sentiment (-1..1)
    weight *= 1 + interaction.sentiment_score * sentiment_factor

    # 3. Content length
    length = len(interaction.content)
    if length > long_chars:
        weight *= long_bonus
    if length < short_chars:
        weight *= short_penalty

    # 4. Reasoned-explanation vocabulary
    weight *= 1 + _vocabulary_hits(interaction.content, QUALITY_VOCABULARY) * vocab_bonus

    # 5. Recency decay, evaluated once against `now`
    weight *= max(decay_floor, decay_factor(interaction.timestamp, now, half_life))

    # 6. Community context
    for flag, bonus in bonuses.items():
        if interaction.context.get(flag):
            weight *= bonus

    # 7. Floor
    return max(floor, weight)


def calculate_quality_score(interaction: InteractionRecord) -> float:
    """Content quality in [0, 1] (length, reasoning vocabulary, sentiment)."""
    score = 0.5
    length = len(interaction.content)
    if length > 100:
        score += 0.2
    if length > 300:
        score += 0.1
    if length < 20:
        score -= 0.2
    score += _vocabulary_hits(interaction.content, _QUALITY_SCORE_WORDS) * 0.1
    score += interaction.sentiment_score * 0.2
    return clamp01(score)


def community_impact(weight: float) -> str:
    """Coarse impact label for a weight: ``high`` / ``medium`` / ``low``."""
    if weight > 1.5:
        return "high"
    if weight > 0.8:
        return "medium"
    return "low"
