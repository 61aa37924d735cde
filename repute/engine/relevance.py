"""
repute.engine.relevance — Content relevance evaluator
======================================================

How closely a comment or quote tracks the raid's target content: Jaccard
similarity of the two token sets, nudged up for a declared topic and down
for generic praise.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from repute.constants import clamp01, tokenize
from repute.engine.evaluation import (
    EvaluationResult,
    payload_get,
    payload_list,
    payload_timestamp,
)

if TYPE_CHECKING:
    from repute.engine.cache import ConfigCache

GENERIC_PHRASES: tuple[str, ...] = (
    "great post",
    "nice",
    "cool",
    "awesome",
    "gm",
    "gn",
    "love it",
)

_TOPIC_BONUS = 0.1
_GENERIC_PENALTY = 0.1
_HIGH_OVERLAP = 0.5
_MODERATE_OVERLAP = 0.25


def jaccard(a: set[str], b: set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def _is_generic(tokens: list[str]) -> bool:
    # Whole-token match so "gm" never fires inside "gmail"
    padded = f" {' '.join(tokens)} "
    return any(f" {phrase} " in padded for phrase in GENERIC_PHRASES)


def evaluate_relevance(
    payload: Mapping[str, Any],
    cache: ConfigCache | None = None,
) -> EvaluationResult:
    """Relevance of ``text`` to ``targetContent`` / ``referenceText``."""
    topic_bonus = cache.get_float("relevance.topic_bonus", _TOPIC_BONUS) if cache else _TOPIC_BONUS
    generic_penalty = cache.get_float("relevance.generic_penalty", _GENERIC_PENALTY) if cache else _GENERIC_PENALTY

    text = str(payload_get(payload, "text", default="")).strip()
    target = str(payload_get(
        payload, "targetContent", "target_content", "referenceText", "reference_text", default="",
    ))

    user_tokens = tokenize(text)
    user_set = set(user_tokens)
    score = jaccard(user_set, set(tokenize(target)))

    indicators: list[str] = []
    if score >= _HIGH_OVERLAP:
        indicators.append("high_token_overlap")
    elif score >= _MODERATE_OVERLAP:
        indicators.append("moderate_token_overlap")
    else:
        indicators.append("low_token_overlap")

    topics = [str(t).lower() for t in payload_list(payload, "topics")]
    if any(topic in user_set for topic in topics):
        score += topic_bonus
        indicators.append("topic_match")

    if _is_generic(user_tokens):
        score -= generic_penalty
        indicators.append("generic_phrase_penalty")

    return EvaluationResult(
        type="relevance",
        score=round(clamp01(score), 3),
        indicators=tuple(indicators),
        timestamp=payload_timestamp(payload),
        details={"target_provided": bool(target.strip())},
    )


class RelevanceEvaluator:
    name = "relevance"

    def __init__(self, cache: ConfigCache | None = None) -> None:
        self._cache = cache

    def evaluate(self, payload: Mapping[str, Any]) -> EvaluationResult:
        return evaluate_relevance(payload, self._cache)
