"""
repute.database.seed — Default Scoring Settings Seeder
=======================================================

Baseline scoring policy seeded on first startup so every tunable shows up
in the ``settings`` table with its shipped value (weight pipeline, profiler
thresholds, evaluators, consolidation).

Idempotent — only inserts keys that don't already exist.  Values edited
later by an operator are never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from repute.database.models import Setting
from repute.engine.anti_gaming import SPAM_TRIGGERS
from repute.engine.quality import ACTION_BONUSES
from repute.engine.weight import CONTEXT_BONUSES, TYPE_MULTIPLIERS

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    # Weight pipeline
    "weight.type_multipliers": (
        {str(k): v for k, v in TYPE_MULTIPLIERS.items()}, "weight",
        "Multiplier per interaction type (unknown types use 1.0)",
    ),
    "weight.context_bonuses": (
        dict(CONTEXT_BONUSES), "weight", "Multiplier per truthy context flag",
    ),
    "weight.sentiment_factor": (0.5, "weight", "Weight × (1 + sentiment × factor)"),
    "weight.long_content_chars": (100, "weight", "Content longer than this earns the long bonus"),
    "weight.long_content_bonus": (1.2, "weight", "Multiplier for long content"),
    "weight.short_content_chars": (20, "weight", "Content shorter than this is penalised"),
    "weight.short_content_penalty": (0.8, "weight", "Multiplier for short content"),
    "weight.vocabulary_bonus": (0.1, "weight", "Bonus per reasoning word present"),
    "weight.decay_hours": (168.0, "weight", "Recency decay constant in hours"),
    "weight.decay_floor": (0.1, "weight", "Minimum decay multiplier"),
    "weight.floor": (-0.5, "weight", "Lowest weight an interaction can have"),
    "standing.weight_threshold": (
        2.0, "standing", "Interactions weighing more than this update the leaderboard",
    ),
    # Personality profiler
    "profile.high_activity": (20, "profile", "Interactions in 7 days above which activity is high"),
    "profile.moderate_activity": (5, "profile", "Interactions in 7 days above which activity is moderate"),
    "profile.leader_initiations": (2, "profile", "Raid initiations above which the style is leader"),
    "profile.active_participations": (10, "profile", "Raid participations for active_participant"),
    "profile.helpful_count": (5, "profile", "Community-help count for high contribution"),
    "profile.veteran_participations": (20, "profile", "Raid participations for the raid_veteran trait"),
    "profile.reliable_score": (0.8, "profile", "Reliability above which the reliable trait applies"),
    "profile.leader_score": (0.6, "profile", "Leadership above which the leader trait applies"),
    "profile.positive_tone": (0.3, "profile", "Mean sentiment above which tone is positive"),
    "profile.negative_tone": (-0.3, "profile", "Mean sentiment below which tone is negative"),
    "profile.positive_influence": (0.5, "profile", "Mean sentiment for the positive_influence trait"),
    "profile.refresh_batch_size": (100, "profile", "Profiles recomputed per nightly refresh"),
    # Evaluators
    "quality.action_bonuses": (dict(ACTION_BONUSES), "evaluators", "Quality bonus per action type"),
    "quality.base_score": (0.3, "evaluators", "Quality base score"),
    "quality.evidence_bonus": (0.2, "evaluators", "Quality bonus for valid evidence"),
    "quality.suspicious_penalty": (0.3, "evaluators", "Quality penalty when patterns are flagged"),
    "quality.high_threshold": (0.8, "evaluators", "Score for a high-quality summary"),
    "quality.low_threshold": (0.5, "evaluators", "Score below which the summary is low-quality"),
    "relevance.topic_bonus": (0.1, "evaluators", "Relevance bonus for a topic match"),
    "relevance.generic_penalty": (0.1, "evaluators", "Relevance penalty for generic praise"),
    "spam.triggers": (dict(SPAM_TRIGGERS), "evaluators", "Spam weight per trigger phrase"),
    "spam.threshold": (0.7, "evaluators", "Spam score at which is_spam is set"),
    "consistency.session_hopping_penalty": (
        0.15, "evaluators", "Consistency penalty for session hopping",
    ),
    "fraud.threshold": (0.6, "evaluators", "Fraud score at which is_fraud is set"),
    "fraud.burst_window_seconds": (10, "evaluators", "Trailing window for burst detection"),
    # Consolidation
    "consolidation.cutoff_days": (30, "consolidation", "Archive interactions older than this"),
    "consolidation.weight_threshold": (
        0.3, "consolidation", "Archive interactions weighing less than this",
    ),
    "memory.fragment_ttl_hours": (24, "consolidation", "Cached fragments older than this are pruned"),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> None:
    """Insert default settings that don't yet exist.

    Runs on every startup but only writes rows for keys that are missing,
    so it is safe to call repeatedly.
    """
    session = Session(engine)
    inserted = 0
    try:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            existing = session.get(Setting, key)
            if existing is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default settings.", inserted)
