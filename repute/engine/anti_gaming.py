"""
repute.engine.anti_gaming — Spam, consistency & fraud evaluators
=================================================================

Heuristics that keep reputation from being farmed:

* **spam** — trigger vocabulary, exclamation runs, link stuffing, shouting.
* **consistency** — regularity of a user's engagement timing across raid
  sessions (coefficient of variation of the gaps).
* **fraud** — automated or copy-paste engagement: missing evidence on
  high-value actions, bursts, identical actions, repeated texts and
  timestamp clusters.

All three are pure over the submission payload.  Time windows are anchored
at timestamps carried by the payload, never at the wall clock, so the same
payload always scores the same.
"""

from __future__ import annotations

import logging
import re
import statistics
from collections import Counter
from collections.abc import Mapping
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from repute.constants import clamp01, count_urls, parse_timestamp
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
# Spam policy
# ---------------------------------------------------------------------------
SPAM_TRIGGERS: dict[str, float] = {
    "follow me": 0.25,
    "buy now": 0.3,
    "click here": 0.25,
    "free": 0.2,
    "promo": 0.2,
    "giveaway": 0.2,
}
_EXCLAMATION_MIN = 3
_EXCLAMATION_WEIGHT = 0.15
_LINKS_MIN = 2
_LINKS_WEIGHT = 0.15
_CAPS_RATIO = 0.4
_CAPS_MIN_LENGTH = 12
_CAPS_WEIGHT = 0.2
_SPAM_THRESHOLD = 0.7

_EXCLAMATION_RUN = re.compile(r"!+")
_UPPER = re.compile(r"[A-Z]")

# ---------------------------------------------------------------------------
# Consistency policy
# ---------------------------------------------------------------------------
_HIGH_VARIANCE_CV = 0.8
_RAPID_SEQUENCE_SECONDS = 5.0
_SESSION_HOPPING_MIN_SESSIONS = 3
_SESSION_HOPPING_MAX_DENSITY = 2.0
_SESSION_HOPPING_PENALTY = 0.15

# ---------------------------------------------------------------------------
# Fraud policy
# ---------------------------------------------------------------------------
HIGH_VALUE_ACTIONS: frozenset[str] = frozenset({"verify", "quote", "comment"})
_NO_EVIDENCE_WEIGHT = 0.3
_PATTERN_FLAG_WEIGHT = 0.3
_BURST_WINDOW = timedelta(seconds=10)
_BURST_MIN = 5
_BURST_WEIGHT = 0.3
_MAJORITY_MIN_EVENTS = 5
_MAJORITY_SHARE = 0.8
_MAJORITY_WEIGHT = 0.1
_REPEATED_TEXT_MIN = 3
_REPEATED_TEXT_WEIGHT = 0.2
_TIMESTAMP_CLUSTER_MIN = 5
_TIMESTAMP_CLUSTER_WEIGHT = 0.25
_FRAUD_THRESHOLD = 0.6
_FRAUD_PATTERN_FLAGS = frozenset({"rapid_fire", "bot_like_behavior"})


def _action_of(entry: Any) -> str:
    return str(payload_get(entry, "actionType", "action_type", default="unknown")).lower()


# ---------------------------------------------------------------------------
# Spam
# ---------------------------------------------------------------------------
def evaluate_spam(
    payload: Mapping[str, Any],
    cache: ConfigCache | None = None,
) -> EvaluationResult:
    """Spam likelihood of the submission ``text``; ``is_spam`` at ≥ 0.7."""
    triggers = cache.get_table("spam.triggers", SPAM_TRIGGERS) if cache else SPAM_TRIGGERS
    threshold = cache.get_float("spam.threshold", _SPAM_THRESHOLD) if cache else _SPAM_THRESHOLD

    raw = str(payload_get(payload, "text", default=""))
    lowered = raw.lower()
    score = 0.0
    indicators: list[str] = []

    for phrase, weight in triggers.items():
        if phrase in lowered:
            score += weight
            indicators.append(phrase)

    if any(len(run) >= _EXCLAMATION_MIN for run in _EXCLAMATION_RUN.findall(raw)):
        score += _EXCLAMATION_WEIGHT
        indicators.append("excessive_exclamations")

    if count_urls(raw) >= _LINKS_MIN:
        score += _LINKS_WEIGHT
        indicators.append("multiple_links")

    if len(raw) > _CAPS_MIN_LENGTH and len(_UPPER.findall(raw)) / len(raw) > _CAPS_RATIO:
        score += _CAPS_WEIGHT
        indicators.append("all_caps_ratio")

    score = round(clamp01(score), 3)
    return EvaluationResult(
        type="spam",
        score=score,
        indicators=tuple(indicators),
        verdict=score >= threshold,
        timestamp=payload_timestamp(payload),
    )


# ---------------------------------------------------------------------------
# Participation consistency
# ---------------------------------------------------------------------------
def coefficient_of_variation(values: list[float]) -> float:
    """Population stdev / mean; 1.0 when empty or the mean is zero."""
    if not values:
        return 1.0
    mean = statistics.fmean(values)
    if mean == 0:
        return 1.0
    return statistics.pstdev(values) / mean


def evaluate_consistency(
    payload: Mapping[str, Any],
    cache: ConfigCache | None = None,
) -> EvaluationResult:
    """Regularity of the user's engagement history.

    Fewer than two timestamped entries score a neutral 0.5 flagged
    ``insufficient_history``.
    """
    timestamp = payload_timestamp(payload)
    history = payload_list(payload, "engagementHistory", "engagement_history", "userEngagements")
    times = sorted(
        ts
        for ts in (parse_timestamp(payload_get(h, "timestamp")) for h in history)
        if ts is not None
    )
    if len(times) < 2:
        return EvaluationResult(
            type="consistency",
            score=0.5,
            indicators=("insufficient_history",),
            timestamp=timestamp,
            details={"intervals_count": 0, "cv": None},
        )

    penalty = (
        cache.get_float("consistency.session_hopping_penalty", _SESSION_HOPPING_PENALTY)
        if cache else _SESSION_HOPPING_PENALTY
    )

    gaps = [(b - a).total_seconds() for a, b in zip(times, times[1:])]
    cv = coefficient_of_variation(gaps)
    score = clamp01(1 - min(1.0, cv))

    flags: list[str] = []
    if cv > _HIGH_VARIANCE_CV:
        flags.append("high_variance")
    if any(gap < _RAPID_SEQUENCE_SECONDS for gap in gaps):
        flags.append("rapid_sequence")

    sessions = Counter(
        str(payload_get(h, "raidId", "raid_id", "sessionId", "session_id", default="unknown"))
        for h in history
    )
    if (len(sessions) >= _SESSION_HOPPING_MIN_SESSIONS
            and len(history) / len(sessions) < _SESSION_HOPPING_MAX_DENSITY):
        flags.append("session_hopping")
        score = max(0.0, score - penalty)

    return EvaluationResult(
        type="consistency",
        score=round(score, 3),
        indicators=tuple(flags),
        timestamp=timestamp,
        details={"intervals_count": len(gaps), "cv": round(cv, 3)},
    )


# ---------------------------------------------------------------------------
# Engagement fraud
# ---------------------------------------------------------------------------
def evaluate_fraud(
    payload: Mapping[str, Any],
    cache: ConfigCache | None = None,
) -> EvaluationResult:
    """Likelihood that the engagement is automated or fabricated.

    The burst window trails the payload's ``timestamp`` when present and
    otherwise the latest timestamp among ``recentEngagements``.
    """
    threshold = cache.get_float("fraud.threshold", _FRAUD_THRESHOLD) if cache else _FRAUD_THRESHOLD
    burst_seconds = (
        cache.get_float("fraud.burst_window_seconds", _BURST_WINDOW.total_seconds())
        if cache else _BURST_WINDOW.total_seconds()
    )
    window = timedelta(seconds=burst_seconds)

    engagement = payload_get(payload, "engagementData", "engagement_data", default={})
    if not isinstance(engagement, Mapping):
        engagement = {}
    recent = payload_list(payload, "recentEngagements", "recent_engagements")

    score = 0.0
    indicators: list[str] = []

    if _action_of(engagement) in HIGH_VALUE_ACTIONS and not payload_get(engagement, "evidence"):
        score += _NO_EVIDENCE_WEIGHT
        indicators.append("no_evidence_high_value")

    flags = {str(p) for p in payload_list(engagement, "suspiciousPatterns", "suspicious_patterns")}
    if flags & _FRAUD_PATTERN_FLAGS:
        score += _PATTERN_FLAG_WEIGHT
        indicators.append("suspicious_patterns_flag")

    stamps = [parse_timestamp(payload_get(r, "timestamp")) for r in recent]
    dated = [ts for ts in stamps if ts is not None]
    anchor = payload_timestamp(payload) or (max(dated) if dated else None)
    if anchor is not None:
        in_window = sum(1 for ts in dated if timedelta(0) <= anchor - ts <= window)
        if in_window >= _BURST_MIN:
            score += _BURST_WEIGHT
            indicators.append("burst_activity_10s")

    if len(recent) >= _MAJORITY_MIN_EVENTS:
        top = Counter(_action_of(r) for r in recent).most_common(1)[0][1]
        if top / len(recent) >= _MAJORITY_SHARE:
            score += _MAJORITY_WEIGHT
            indicators.append("identical_actions_majority")

    texts = Counter(
        text
        for text in (
            str(payload_get(r, "submissionText", "submission_text", default="")).strip().lower()
            for r in recent
        )
        if text
    )
    if any(count >= _REPEATED_TEXT_MIN for count in texts.values()):
        score += _REPEATED_TEXT_WEIGHT
        indicators.append("repeated_text_patterns")

    if any(count >= _TIMESTAMP_CLUSTER_MIN for count in Counter(dated).values()):
        score += _TIMESTAMP_CLUSTER_WEIGHT
        indicators.append("same_timestamp_cluster")

    score = round(clamp01(score), 3)
    if score >= threshold:
        logger.debug("Fraud indicators %s (score %.2f)", indicators, score)
    return EvaluationResult(
        type="fraud",
        score=score,
        indicators=tuple(indicators),
        verdict=score >= threshold,
        timestamp=payload_timestamp(payload),
    )


# ---------------------------------------------------------------------------
# Evaluator adapters
# ---------------------------------------------------------------------------
class SpamEvaluator:
    name = "spam"

    def __init__(self, cache: ConfigCache | None = None) -> None:
        self._cache = cache

    def evaluate(self, payload: Mapping[str, Any]) -> EvaluationResult:
        return evaluate_spam(payload, self._cache)


class ConsistencyEvaluator:
    name = "consistency"

    def __init__(self, cache: ConfigCache | None = None) -> None:
        self._cache = cache

    def evaluate(self, payload: Mapping[str, Any]) -> EvaluationResult:
        return evaluate_consistency(payload, self._cache)


class FraudEvaluator:
    name = "fraud"

    def __init__(self, cache: ConfigCache | None = None) -> None:
        self._cache = cache

    def evaluate(self, payload: Mapping[str, Any]) -> EvaluationResult:
        return evaluate_fraud(payload, self._cache)
