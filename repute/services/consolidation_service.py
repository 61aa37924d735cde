"""
repute.services.consolidation_service — Low-weight interaction archival
========================================================================

Moves aged, low-weight interactions out of the hot ``interactions`` table
into ``archived_interactions``.

The selection predicate (``timestamp < now − cutoff_days`` AND
``weight < weight_threshold``) is evaluated **once per run**, so rows
written while the job runs are never swept up.  Selected ids are processed
in chunks of ``BATCH_SIZE``; for each chunk the archive insert commits in
its own transaction and only then are the originals deleted.  A chunk
whose archive step fails keeps its originals and the job moves on.

Re-running is safe: ids already present in the archive are not archived
again, and leftover originals from an earlier interrupted run are deleted.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import Engine, delete, select
from sqlalchemy.exc import SQLAlchemyError

from repute.database.engine import get_session
from repute.database.models import ArchivedInteraction, Interaction

logger = logging.getLogger(__name__)

BATCH_SIZE = 500
DEFAULT_CUTOFF_DAYS = 30
DEFAULT_WEIGHT_THRESHOLD = 0.3
ARCHIVE_REASON = "low_weight_consolidation"


def _select_candidates(
    engine: Engine, cutoff: datetime, weight_threshold: float,
) -> list[tuple[str, str, float]]:
    with get_session(engine) as session:
        rows = session.execute(
            select(Interaction.id, Interaction.user_id, Interaction.weight)
            .where(Interaction.timestamp < cutoff, Interaction.weight < weight_threshold)
            .order_by(Interaction.timestamp)
        ).all()
        return [(r.id, r.user_id, r.weight) for r in rows]


def _archive_batch(
    engine: Engine, batch: list[tuple[str, str, float]], now: datetime,
) -> int:
    """Insert archive rows for *batch*, skipping ids already archived."""
    ids = [row_id for row_id, _, _ in batch]
    with get_session(engine) as session:
        existing = set(session.scalars(
            select(ArchivedInteraction.original_id)
            .where(ArchivedInteraction.original_id.in_(ids))
        ).all())
        fresh = [row for row in batch if row[0] not in existing]
        session.add_all(
            ArchivedInteraction(
                original_id=row_id,
                user_id=user_id,
                weight=weight,
                reason=ARCHIVE_REASON,
                archived_at=now,
            )
            for row_id, user_id, weight in fresh
        )
    return len(fresh)


def _delete_batch(engine: Engine, ids: list[str]) -> int:
    with get_session(engine) as session:
        result = session.execute(delete(Interaction).where(Interaction.id.in_(ids)))
        return result.rowcount or 0


def run_consolidation(
    engine: Engine,
    now: datetime,
    cutoff_days: int = DEFAULT_CUTOFF_DAYS,
    weight_threshold: float = DEFAULT_WEIGHT_THRESHOLD,
) -> dict[str, int | bool]:
    """Archive then delete qualifying interactions.

    Returns a summary dict:
    ``{"selected": N, "archived": A, "deleted": D, "failed": bool}``.
    ``failed`` is ``True`` when at least one batch could not be archived
    (its originals were left in place) or could not be selected at all.
    """
    cutoff = now - timedelta(days=cutoff_days)
    try:
        candidates = _select_candidates(engine, cutoff, weight_threshold)
    except SQLAlchemyError:
        logger.exception("Consolidation: candidate selection failed")
        return {"selected": 0, "archived": 0, "deleted": 0, "failed": True}

    archived = deleted = 0
    failed = False
    for start in range(0, len(candidates), BATCH_SIZE):
        batch = candidates[start:start + BATCH_SIZE]
        try:
            archived += _archive_batch(engine, batch, now)
        except SQLAlchemyError:
            failed = True
            logger.exception(
                "Consolidation: archive failed for batch at offset %d; originals kept",
                start,
            )
            continue
        try:
            deleted += _delete_batch(engine, [row_id for row_id, _, _ in batch])
        except SQLAlchemyError:
            failed = True
            logger.exception(
                "Consolidation: delete failed for batch at offset %d (already archived)",
                start,
            )

    logger.info(
        "Consolidation complete — %d selected, %d archived, %d deleted "
        "(cutoff=%s, weight<%.2f)",
        len(candidates), archived, deleted, cutoff.isoformat(), weight_threshold,
    )
    return {
        "selected": len(candidates),
        "archived": archived,
        "deleted": deleted,
        "failed": failed,
    }
