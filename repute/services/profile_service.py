"""
repute.services.profile_service — Personality profile persistence
==================================================================

Upsert and load of ``personality_profiles`` rows.  Derivation lives in
:mod:`repute.engine.profile`; caching lives in the service facade.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine

from repute.constants import ensure_utc
from repute.database.engine import get_session
from repute.database.models import PersonalityProfileRow
from repute.engine.profile import PersonalityProfile

logger = logging.getLogger(__name__)


def upsert_profile(engine: Engine, profile: PersonalityProfile) -> None:
    """Insert or overwrite the row keyed by ``profile.user_id``."""
    with get_session(engine) as session:
        row = session.get(PersonalityProfileRow, profile.user_id)
        if row is None:
            row = PersonalityProfileRow(user_id=profile.user_id)
            session.add(row)
        row.engagement_style = profile.engagement_style
        row.communication_tone = profile.communication_tone
        row.activity_level = profile.activity_level
        row.community_contribution = profile.community_contribution
        row.reliability_score = profile.reliability_score
        row.leadership_potential = profile.leadership_potential
        row.traits = list(profile.traits)
        row.interaction_patterns = dict(profile.interaction_patterns)
        row.last_updated = profile.last_updated
    logger.debug("Upserted profile for %s", profile.user_id)


def load_profile(engine: Engine, user_id: str) -> PersonalityProfile | None:
    """The persisted profile for *user_id*, or ``None``."""
    with get_session(engine) as session:
        row = session.get(PersonalityProfileRow, user_id)
        if row is None:
            return None
        return PersonalityProfile(
            user_id=row.user_id,
            engagement_style=row.engagement_style,
            communication_tone=row.communication_tone,
            activity_level=row.activity_level,
            community_contribution=row.community_contribution,
            reliability_score=row.reliability_score,
            leadership_potential=row.leadership_potential,
            last_updated=ensure_utc(row.last_updated),
            traits=tuple(row.traits or ()),
            interaction_patterns=dict(row.interaction_patterns or {}),
        )
