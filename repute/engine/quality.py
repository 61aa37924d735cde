"""
repute.engine.quality — Engagement quality evaluator
=====================================================

Scores a claimed raid engagement (like / retweet / quote / comment /
verify) from its action type, the evidence attached to it and any
suspicious-pattern flags a previous pass has raised.  Thresholds are read
from ConfigCache settings when available, falling back to the defaults
below.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from repute.constants import clamp01, parse_timestamp
from repute.engine.evaluation import (
    EvaluationResult,
    payload_get,
    payload_list,
    payload_timestamp,
)

if TYPE_CHECKING:
    from repute.engine.cache import ConfigCache

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Default quality policy (single source of truth)
# ---------------------------------------------------------------------------
ACTION_BONUSES: dict[str, float] = {
    "verify": 0.6,
    "quote": 0.4,
    "comment": 0.35,
    "retweet": 0.25,
    "like": 0.15,
}
_BASE_SCORE = 0.3
_EVIDENCE_BONUS = 0.2
_SUSPICIOUS_PENALTY = 0.3
_HIGH_QUALITY = 0.8
_LOW_QUALITY = 0.5

_RAPID_FIRE_GAP = timedelta(seconds=2)
_BOT_LIKE_COUNT = 5
_TIME_ANOMALY_SPAN = timedelta(hours=12)

_HTTP_URL = re.compile(r"^https?://")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def validate_evidence(evidence: Any) -> bool:
    """Whether *evidence* backs an engagement claim.

    Any non-empty string counts.  A mapping must be a screenshot with an
    http(s) ``url`` or a video with an http(s) ``url`` and ``duration > 0``.
    """
    if not evidence:
        return False
    if isinstance(evidence, str):
        return True
    if not isinstance(evidence, Mapping):
        return False

    url = evidence.get("url")
    has_url = isinstance(url, str) and bool(_HTTP_URL.match(url))
    kind = str(evidence.get("type") or "").lower()
    if kind == "screenshot":
        return has_url
    if kind == "video":
        try:
            duration = float(evidence.get("duration") or 0)
        except (TypeError, ValueError):
            return False
        return has_url and duration > 0
    return False


def detect_suspicious_patterns(engagements: Sequence[Any]) -> list[str]:
    """Flag bursty or automated-looking engagement sequences.

    ``rapid_fire``: three consecutive events with both gaps ≤ 2 s.
    ``bot_like_behavior``: five or more likes.
    ``time_anomaly``: the sequence spans more than 12 h.
    Entries without a parseable timestamp only count towards the like total.
    """
    patterns: list[str] = []
    times = sorted(
        ts
        for ts in (parse_timestamp(payload_get(e, "timestamp")) for e in engagements)
        if ts is not None
    )

    for i in range(2, len(times)):
        if (times[i] - times[i - 1] <= _RAPID_FIRE_GAP
                and times[i - 1] - times[i - 2] <= _RAPID_FIRE_GAP):
            patterns.append("rapid_fire")
            break

    likes = sum(
        1 for e in engagements
        if str(payload_get(e, "actionType", "action_type", default="")).lower() == "like"
    )
    if likes >= _BOT_LIKE_COUNT:
        patterns.append("bot_like_behavior")

    if len(times) >= 2 and times[-1] - times[0] > _TIME_ANOMALY_SPAN:
        patterns.append("time_anomaly")

    return patterns


def _summary(score: float, suspicious: bool, high: float, low: float) -> str:
    if suspicious:
        text = "Suspicious engagement detected"
    elif score >= high:
        text = "High-quality engagement"
    elif score < low:
        text = "Low-quality engagement"
    else:
        text = "Engagement evaluated"
    return f"{text} (score: {score:.2f})"


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------
def evaluate_engagement_quality(
    payload: Mapping[str, Any],
    cache: ConfigCache | None = None,
) -> EvaluationResult:
    """Quality score for the submission's ``engagementData``.

    Missing engagement data and unsupported action types score 0 with an
    explanatory indicator.
    """
    timestamp = payload_timestamp(payload)
    engagement = payload_get(payload, "engagementData", "engagement_data")
    if not isinstance(engagement, Mapping):
        return EvaluationResult(
            type="quality",
            score=0.0,
            indicators=("missing_engagement_data",),
            timestamp=timestamp,
            details={
                "summary": "Unable to evaluate engagement: missing engagement data",
                "recommendations": ["include_action_type_and_evidence"],
                "suspicious_patterns": [],
            },
        )

    bonuses = cache.get_table("quality.action_bonuses", ACTION_BONUSES) if cache else ACTION_BONUSES
    action = str(payload_get(engagement, "actionType", "action_type", default="")).lower()
    if action not in bonuses:
        return EvaluationResult(
            type="quality",
            score=0.0,
            indicators=("invalid_action_type",),
            timestamp=timestamp,
            details={
                "summary": "Invalid engagement type",
                "recommendations": ["use_valid_action_type"],
                "suspicious_patterns": [],
                "action_type": action,
            },
        )

    base = cache.get_float("quality.base_score", _BASE_SCORE) if cache else _BASE_SCORE
    evidence_bonus = cache.get_float("quality.evidence_bonus", _EVIDENCE_BONUS) if cache else _EVIDENCE_BONUS
    penalty = cache.get_float("quality.suspicious_penalty", _SUSPICIOUS_PENALTY) if cache else _SUSPICIOUS_PENALTY
    high = cache.get_float("quality.high_threshold", _HIGH_QUALITY) if cache else _HIGH_QUALITY
    low = cache.get_float("quality.low_threshold", _LOW_QUALITY) if cache else _LOW_QUALITY

    evidence = payload_get(engagement, "evidence")
    suspicious = [str(p) for p in payload_list(engagement, "suspiciousPatterns", "suspicious_patterns")]
    indicators: list[str] = []
    recommendations: list[str] = []

    score = base + bonuses[action]
    if validate_evidence(evidence):
        score += evidence_bonus
        indicators.append("valid_evidence")
    if not evidence:
        recommendations.append("provide_evidence")
    if suspicious:
        score -= penalty
        indicators.append("suspicious_patterns")

    score = round(clamp01(score), 3)
    return EvaluationResult(
        type="quality",
        score=score,
        indicators=tuple(indicators),
        timestamp=timestamp,
        details={
            "summary": _summary(score, bool(suspicious), high, low),
            "recommendations": recommendations,
            "suspicious_patterns": suspicious,
            "action_type": action,
        },
    )


class QualityEvaluator:
    name = "quality"

    def __init__(self, cache: ConfigCache | None = None) -> None:
        self._cache = cache

    def evaluate(self, payload: Mapping[str, Any]) -> EvaluationResult:
        return evaluate_engagement_quality(payload, self._cache)
