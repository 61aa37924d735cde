"""
repute.engine.interactions — InteractionRecord and normalization
=================================================================

Every raw interaction handed over by a calling action handler is normalized
into an :class:`InteractionRecord` before it is weighed and persisted.
Callers written against the chat runtime send camelCase keys
(``userId``, ``interactionType``, ``sentimentScore``…); both spellings are
accepted.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from repute.constants import parse_timestamp
from repute.database.models import InteractionType

__all__ = ["InteractionRecord", "normalize_interaction"]

# field → accepted payload keys, first present wins
_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id",),
    "user_id": ("user_id", "userId"),
    "username": ("username", "user_name"),
    "interaction_type": ("interaction_type", "interactionType", "actionType", "type"),
    "content": ("content", "text"),
    "context": ("context",),
    "sentiment_score": ("sentiment_score", "sentimentScore", "sentiment"),
    "related_raid_id": ("related_raid_id", "relatedRaidId", "raid_id", "raidId"),
    "platform": ("platform",),
    "timestamp": ("timestamp",),
}


# ---------------------------------------------------------------------------
# InteractionRecord — the normalized envelope
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class InteractionRecord:
    """A validated interaction.

    ``weight`` and ``quality_score`` are filled in by the recorder after
    scoring; a freshly normalized record carries the neutral defaults.
    """

    id: str
    user_id: str
    timestamp: datetime
    interaction_type: str = InteractionType.UNKNOWN.value
    username: str = ""
    content: str = ""
    context: dict[str, Any] = field(default_factory=dict)
    sentiment_score: float = 0.0
    related_raid_id: str | None = None
    platform: str = "unknown"
    weight: float = 0.0
    quality_score: float = 0.5


def _pick(raw: Mapping[str, Any], name: str) -> Any:
    for key in _ALIASES[name]:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def normalize_interaction(raw: Mapping[str, Any], now: datetime) -> InteractionRecord:
    """Fill defaults and coerce types on a raw interaction payload.

    Raises
    ------
    ValueError
        If the payload carries no user id.
    """
    user_id = _pick(raw, "user_id")
    if user_id is None or str(user_id).strip() == "":
        raise ValueError("interaction is missing a user id")

    try:
        sentiment = float(_pick(raw, "sentiment_score") or 0.0)
    except (TypeError, ValueError):
        sentiment = 0.0
    sentiment = max(-1.0, min(1.0, sentiment))

    context = _pick(raw, "context")
    raid_id = _pick(raw, "related_raid_id")

    return InteractionRecord(
        id=str(_pick(raw, "id") or uuid.uuid4()),
        user_id=str(user_id),
        timestamp=parse_timestamp(_pick(raw, "timestamp")) or now,
        interaction_type=str(_pick(raw, "interaction_type") or InteractionType.UNKNOWN.value),
        username=str(_pick(raw, "username") or ""),
        content=str(_pick(raw, "content") or ""),
        context=dict(context) if isinstance(context, Mapping) else {},
        sentiment_score=sentiment,
        related_raid_id=str(raid_id) if raid_id is not None else None,
        platform=str(_pick(raw, "platform") or "unknown"),
    )
