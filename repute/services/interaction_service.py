"""
repute.services.interaction_service — Interaction persistence & reads
======================================================================

Synchronous store functions over the ``interactions`` table.  Async callers
go through :func:`repute.database.engine.run_db`.

Rows are converted to :class:`InteractionRecord` inside the session so that
nothing handed back to callers is bound to a closed session.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import Engine, distinct, func, select

from repute.constants import ensure_utc
from repute.database.engine import get_session
from repute.database.models import Interaction
from repute.engine.interactions import InteractionRecord
from repute.engine.weight import calculate_quality_score, calculate_weight, community_impact

if TYPE_CHECKING:
    from repute.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------
def score_interaction(
    record: InteractionRecord,
    now: datetime,
    cache: ConfigCache | None = None,
) -> InteractionRecord:
    """Return *record* with its weight and quality score filled in.

    The quality score and the impact label are also written into the
    context so downstream readers see them without recomputing.
    """
    weight = calculate_weight(record, now, cache)
    quality = calculate_quality_score(record)
    context = {
        **record.context,
        "quality_score": quality,
        "community_impact": community_impact(weight),
    }
    return replace(record, weight=weight, quality_score=quality, context=context)


def _to_record(row: Interaction) -> InteractionRecord:
    return InteractionRecord(
        id=row.id,
        user_id=row.user_id,
        timestamp=ensure_utc(row.timestamp),
        interaction_type=row.interaction_type,
        username=row.username,
        content=row.content,
        context=dict(row.context or {}),
        sentiment_score=row.sentiment_score,
        related_raid_id=row.related_raid_id,
        platform=row.platform,
        weight=row.weight,
        quality_score=row.quality_score,
    )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def persist_interaction(engine: Engine, record: InteractionRecord) -> None:
    """Insert one interaction row.

    A duplicate id fails on the primary key; the error propagates.
    """
    with get_session(engine) as session:
        session.add(Interaction(
            id=record.id,
            user_id=record.user_id,
            username=record.username,
            interaction_type=record.interaction_type,
            content=record.content,
            context=record.context,
            platform=record.platform,
            weight=record.weight,
            sentiment_score=record.sentiment_score,
            quality_score=record.quality_score,
            related_raid_id=record.related_raid_id,
            timestamp=record.timestamp,
        ))
    logger.debug(
        "Stored interaction %s (%s, user=%s, weight=%.3f)",
        record.id, record.interaction_type, record.user_id, record.weight,
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def fetch_recent_interactions(
    engine: Engine,
    user_id: str,
    limit: int = 200,
) -> list[InteractionRecord]:
    """The user's *limit* most recent interactions, newest first."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(Interaction)
            .where(Interaction.user_id == user_id)
            .order_by(Interaction.timestamp.desc())
            .limit(limit)
        ).all()
        return [_to_record(row) for row in rows]


def load_recent_interactions(engine: Engine, since: datetime) -> list[InteractionRecord]:
    """Every interaction with ``timestamp >= since`` (cache warm-up)."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(Interaction)
            .where(Interaction.timestamp >= since)
            .order_by(Interaction.timestamp.desc())
        ).all()
        return [_to_record(row) for row in rows]


def active_user_ids(engine: Engine, since: datetime) -> list[str]:
    """Distinct users with at least one interaction since *since*, sorted."""
    with get_session(engine) as session:
        return list(session.scalars(
            select(Interaction.user_id)
            .where(Interaction.timestamp >= since)
            .distinct()
            .order_by(Interaction.user_id)
        ).all())


def community_insights(engine: Engine, since: datetime) -> dict[str, Any]:
    """Totals and per-type counts for interactions since *since*."""
    with get_session(engine) as session:
        total, users, avg_weight = session.execute(
            select(
                func.count(Interaction.id),
                func.count(distinct(Interaction.user_id)),
                func.avg(Interaction.weight),
            ).where(Interaction.timestamp >= since)
        ).one()
        by_type = {
            kind: count
            for kind, count in session.execute(
                select(Interaction.interaction_type, func.count(Interaction.id))
                .where(Interaction.timestamp >= since)
                .group_by(Interaction.interaction_type)
                .order_by(func.count(Interaction.id).desc(), Interaction.interaction_type)
            ).all()
        }

    return {
        "since": since.isoformat(),
        "total_interactions": total or 0,
        "active_users": users or 0,
        "average_weight": round(float(avg_weight or 0.0), 3),
        "by_type": by_type,
    }
