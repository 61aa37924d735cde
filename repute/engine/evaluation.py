"""
repute.engine.evaluation — Shared evaluator plumbing
=====================================================

An evaluator scores one dimension of a claimed engagement submission and
returns an :class:`EvaluationResult`.  Evaluators are independent, own no
state and never raise on malformed payloads; callers compose whichever
subset they need with :func:`run_evaluators` and merge a result onto the
submission with :func:`attach_evaluation`.

Submission payload keys (camelCase as sent by the chat runtime, snake_case
also accepted)::

    text, engagementData{actionType, evidence, suspiciousPatterns},
    recentEngagements[], engagementHistory[], targetContent|referenceText,
    topics[], timestamp
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from repute.constants import parse_timestamp

logger = logging.getLogger(__name__)

__all__ = [
    "EvaluationResult",
    "Evaluator",
    "attach_evaluation",
    "payload_get",
    "payload_list",
    "payload_timestamp",
    "run_evaluators",
]


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """Outcome of one evaluator.

    ``verdict`` is only set by evaluators that decide something
    (``is_spam`` for spam, ``is_fraud`` for fraud).  ``timestamp`` comes from
    the payload, so it is ``None`` when the submission carried none.
    """

    type: str
    score: float
    indicators: tuple[str, ...] = ()
    verdict: bool | None = None
    timestamp: datetime | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "score": self.score,
            "indicators": list(self.indicators),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
        if self.verdict is not None:
            key = {"spam": "is_spam", "fraud": "is_fraud"}.get(self.type, "verdict")
            data[key] = self.verdict
        data.update(self.details)
        return data


@runtime_checkable
class Evaluator(Protocol):
    name: str

    def evaluate(self, payload: Mapping[str, Any]) -> EvaluationResult: ...


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------
def payload_get(payload: Any, *keys: str, default: Any = None) -> Any:
    """First non-``None`` value under any of *keys*; *default* otherwise.

    Non-mapping payloads yield *default* so evaluators stay total.
    """
    if not isinstance(payload, Mapping):
        return default
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return default


def payload_list(payload: Any, *keys: str) -> list[Any]:
    value = payload_get(payload, *keys)
    return list(value) if isinstance(value, (list, tuple)) else []


def payload_timestamp(payload: Any) -> datetime | None:
    """The submission's own timestamp, never the wall clock."""
    return parse_timestamp(payload_get(payload, "timestamp"))


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------
def attach_evaluation(payload: Mapping[str, Any], result: EvaluationResult) -> dict[str, Any]:
    """Return a copy of *payload* with *result* under ``"evaluation"``.

    Unrelated keys are preserved and the input mapping is left untouched.
    """
    merged = dict(payload)
    merged["evaluation"] = result.to_dict()
    return merged


def run_evaluators(
    payload: Mapping[str, Any],
    evaluators: Iterable[Evaluator],
) -> dict[str, EvaluationResult]:
    """Run each evaluator independently; results keyed by evaluator name."""
    results: dict[str, EvaluationResult] = {}
    for evaluator in evaluators:
        results[evaluator.name] = evaluator.evaluate(payload)
        logger.debug(
            "%s score=%.3f", evaluator.name, results[evaluator.name].score,
        )
    return results
