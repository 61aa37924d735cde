"""
repute.engine.profile — Personality profile derivation
=======================================================

Pure derivation of a behavioural profile from a user's interaction window.
No DB I/O; the service layer fetches rows and owns caching/persistence.

Rules are applied in a fixed order so that identical windows produce
identical profiles.  Thresholds are overridable via ``profile.*`` settings.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Protocol

from repute.constants import clamp01, ensure_utc
from repute.database.models import InteractionType

if TYPE_CHECKING:
    from repute.engine.cache import ConfigCache

__all__ = [
    "PersonalityProfile",
    "analyze_personality",
    "default_profile",
]

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------
PROFILE_TTL = timedelta(hours=24)
HISTORY_WINDOW = 200

_ACTIVITY_WINDOW = timedelta(days=7)
_HIGH_ACTIVITY = 20
_MODERATE_ACTIVITY = 5
_LEADER_INITIATIONS = 2
_ACTIVE_PARTICIPATIONS = 10
_HELPFUL_COUNT = 5
_VETERAN_PARTICIPATIONS = 20
_RELIABLE_SCORE = 0.8
_LEADER_SCORE = 0.6
_POSITIVE_TONE = 0.3
_NEGATIVE_TONE = -0.3
_POSITIVE_INFLUENCE = 0.5

LEADERSHIP_WEIGHTS: dict[str, float] = {
    InteractionType.MENTOR_BEHAVIOR: 0.4,
    InteractionType.KNOWLEDGE_SHARING: 0.3,
    InteractionType.CONSTRUCTIVE_FEEDBACK: 0.3,
}
_LEADERSHIP_SCALE = 10.0


class InteractionLike(Protocol):
    """Anything exposing the columns the profiler reads."""

    interaction_type: str
    weight: float
    sentiment_score: float
    timestamp: datetime


# ---------------------------------------------------------------------------
# PersonalityProfile
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PersonalityProfile:
    user_id: str
    engagement_style: str
    communication_tone: str
    activity_level: str
    community_contribution: str
    reliability_score: float
    leadership_potential: float
    last_updated: datetime
    traits: tuple[str, ...] = ()
    interaction_patterns: dict[str, int] = field(default_factory=dict)

    def is_fresh(self, now: datetime, ttl: timedelta = PROFILE_TTL) -> bool:
        return now - ensure_utc(self.last_updated) < ttl

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "engagement_style": self.engagement_style,
            "communication_tone": self.communication_tone,
            "activity_level": self.activity_level,
            "community_contribution": self.community_contribution,
            "reliability_score": self.reliability_score,
            "leadership_potential": self.leadership_potential,
            "traits": list(self.traits),
            "interaction_patterns": dict(self.interaction_patterns),
            "last_updated": self.last_updated.isoformat(),
        }


def default_profile(user_id: str, now: datetime) -> PersonalityProfile:
    """Profile for a user with no recorded history."""
    return PersonalityProfile(
        user_id=user_id,
        engagement_style="new_user",
        communication_tone="neutral",
        activity_level="low",
        community_contribution="none",
        reliability_score=0.5,
        leadership_potential=0.5,
        last_updated=now,
        traits=("new_member",),
    )


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------
def analyze_personality(
    user_id: str,
    interactions: Iterable[InteractionLike],
    now: datetime,
    cache: ConfigCache | None = None,
) -> PersonalityProfile:
    """Derive a profile from *interactions* (any order).

    An empty window yields :func:`default_profile`.
    """
    rows = list(interactions)
    if not rows:
        return default_profile(user_id, now)

    def _int(key: str, default: int) -> int:
        return cache.get_int(key, default) if cache else default

    def _float(key: str, default: float) -> float:
        return cache.get_float(key, default) if cache else default

    patterns: Counter[str] = Counter(row.interaction_type for row in rows)
    total = len(rows)
    traits: list[str] = []

    # Activity level — trailing window
    cutoff = now - _ACTIVITY_WINDOW
    recent = sum(1 for row in rows if ensure_utc(row.timestamp) > cutoff)
    if recent > _int("profile.high_activity", _HIGH_ACTIVITY):
        activity_level = "high"
    elif recent > _int("profile.moderate_activity", _MODERATE_ACTIVITY):
        activity_level = "moderate"
    else:
        activity_level = "low"

    # Engagement style — first matching rule wins
    raid_participation = patterns[InteractionType.RAID_PARTICIPATION]
    raid_initiation = patterns[InteractionType.RAID_INITIATION]
    quality_engagement = patterns[InteractionType.QUALITY_ENGAGEMENT]
    if raid_initiation > _int("profile.leader_initiations", _LEADER_INITIATIONS):
        engagement_style = "leader"
        traits.append("raid_leader")
    elif raid_participation > _int("profile.active_participations", _ACTIVE_PARTICIPATIONS):
        engagement_style = "active_participant"
        traits.append("active_raider")
    elif quality_engagement > raid_participation:
        engagement_style = "quality_focused"
        traits.append("quality_contributor")
    else:
        engagement_style = "balanced"

    # Community contribution
    community_contribution = "average"
    if patterns[InteractionType.COMMUNITY_HELP] > _int("profile.helpful_count", _HELPFUL_COUNT):
        community_contribution = "high"
        traits.append("helpful")

    # Reliability: net share of clearly positive over negative interactions
    positive = sum(1 for row in rows if row.weight > 1)
    negative = sum(1 for row in rows if row.weight < 0)
    reliability = clamp01((positive - negative) / total)

    # Leadership
    leadership = clamp01(
        sum(patterns[kind] * share for kind, share in LEADERSHIP_WEIGHTS.items())
        / _LEADERSHIP_SCALE
    )

    # Tone
    mean_sentiment = sum(row.sentiment_score or 0.0 for row in rows) / total
    if mean_sentiment > _float("profile.positive_tone", _POSITIVE_TONE):
        tone = "positive"
    elif mean_sentiment < _float("profile.negative_tone", _NEGATIVE_TONE):
        tone = "negative"
    else:
        tone = "neutral"

    if reliability > _float("profile.reliable_score", _RELIABLE_SCORE):
        traits.append("reliable")
    if leadership > _float("profile.leader_score", _LEADER_SCORE):
        traits.append("leader")
    if mean_sentiment > _float("profile.positive_influence", _POSITIVE_INFLUENCE):
        traits.append("positive_influence")
    if raid_participation > _int("profile.veteran_participations", _VETERAN_PARTICIPATIONS):
        traits.append("raid_veteran")

    return PersonalityProfile(
        user_id=user_id,
        engagement_style=engagement_style,
        communication_tone=tone,
        activity_level=activity_level,
        community_contribution=community_contribution,
        reliability_score=reliability,
        leadership_potential=leadership,
        last_updated=now,
        traits=tuple(traits),
        interaction_patterns={str(k): v for k, v in patterns.items()},
    )
