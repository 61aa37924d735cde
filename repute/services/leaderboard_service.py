"""
repute.services.leaderboard_service — Standing store
=====================================================

Upserts ``leaderboard_entries`` and keeps their ranks dense.

* Write paths (:func:`apply_standing_delta`, :func:`update_leaderboard`)
  raise on store failures.  The recorder runs standing deltas
  fire-and-forget and logs those failures itself.
* Read paths (:func:`get_leaderboard`, :func:`get_top_contributors`,
  :func:`get_user_standing`) never raise; they log and return ``[]`` /
  ``None``.

Ranks are 1..N by ``total_points`` descending.  Ties go to the user who got
there first (earlier ``last_activity``), then to ``user_id``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from repute.constants import RANK_BADGES, ensure_utc, parse_timestamp
from repute.database.engine import get_session
from repute.database.models import LeaderboardEntry

logger = logging.getLogger(__name__)

# stats key → accepted aliases, first present wins
_STAT_ALIASES: dict[str, tuple[str, ...]] = {
    "user_id": ("user_id", "userId"),
    "username": ("username",),
    "total_points": ("total_points", "totalPoints", "points"),
    "raids_participated": ("raids_participated", "raidsParticipated"),
    "successful_engagements": ("successful_engagements", "successfulEngagements"),
    "streak": ("streak",),
    "last_activity": ("last_activity", "lastActivity"),
}


def badges_for_rank(rank: int | None) -> list[str]:
    """🥇🥈🥉 for the top three, nothing otherwise."""
    if rank is not None and 1 <= rank <= len(RANK_BADGES):
        return [RANK_BADGES[rank - 1]]
    return []


def _entry_to_dict(entry: LeaderboardEntry) -> dict[str, Any]:
    return {
        "user_id": entry.user_id,
        "username": entry.username,
        "total_points": entry.total_points,
        "raids_participated": entry.raids_participated,
        "successful_engagements": entry.successful_engagements,
        "streak": entry.streak,
        "rank": entry.rank,
        "badges": list(entry.badges or []),
        "last_activity": ensure_utc(entry.last_activity).isoformat(),
    }


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------
def recompute_ranks(session: Session) -> None:
    """Assign dense ranks and podium badges to every entry."""
    entries = session.scalars(select(LeaderboardEntry)).all()
    entries = sorted(
        entries,
        key=lambda e: (-e.total_points, ensure_utc(e.last_activity), e.user_id),
    )
    for position, entry in enumerate(entries, start=1):
        entry.rank = position
        entry.badges = badges_for_rank(position)


def _get_or_create(session: Session, user_id: str, username: str, now: datetime) -> LeaderboardEntry:
    entry = session.get(LeaderboardEntry, user_id)
    if entry is None:
        entry = LeaderboardEntry(
            user_id=user_id,
            username=username,
            total_points=0.0,
            raids_participated=0,
            successful_engagements=0,
            streak=0,
            badges=[],
            last_activity=now,
        )
        session.add(entry)
    return entry


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def _increment(session: Session, user_id: str, username: str, weight: float, raid: bool, now: datetime) -> bool:
    """Add to the stored counters in one statement; False if no row exists."""
    values: dict[str, Any] = {
        "total_points": LeaderboardEntry.total_points + weight,
        "successful_engagements": LeaderboardEntry.successful_engagements + 1,
        "last_activity": now,
    }
    if raid:
        values["raids_participated"] = LeaderboardEntry.raids_participated + 1
    if username:
        values["username"] = username
    result = session.execute(
        update(LeaderboardEntry)
        .where(LeaderboardEntry.user_id == user_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


def apply_standing_delta(
    engine: Engine,
    user_id: str,
    username: str,
    weight: float,
    *,
    raid_id: str | None = None,
    now: datetime | None = None,
) -> None:
    """Credit one high-weight interaction to the user's standing.

    Counters are incremented in SQL so concurrent deltas for the same user
    all land.  A first insert that loses the race to another writer is
    retried once as an increment.
    """
    now = now or datetime.now(UTC)
    raid = bool(raid_id)
    for attempt in range(2):
        try:
            with get_session(engine) as session:
                if not _increment(session, user_id, username, weight, raid, now):
                    session.add(LeaderboardEntry(
                        user_id=user_id,
                        username=username,
                        total_points=weight,
                        raids_participated=1 if raid else 0,
                        successful_engagements=1,
                        streak=0,
                        badges=[],
                        last_activity=now,
                    ))
                    session.flush()
                recompute_ranks(session)
            break
        except IntegrityError:
            if attempt:
                raise
            logger.debug("Standing insert for %s collided; retrying", user_id)
    logger.debug("Standing +%.3f for %s", weight, user_id)


def update_leaderboard(engine: Engine, stats: Mapping[str, Any]) -> None:
    """Overwrite the entry described by *stats* and re-rank.

    Keys absent from *stats* keep their stored values.

    Raises
    ------
    ValueError
        If *stats* carries no user id.
    """
    def pick(name: str) -> Any:
        for key in _STAT_ALIASES[name]:
            if stats.get(key) is not None:
                return stats[key]
        return None

    user_id = pick("user_id")
    if not user_id:
        raise ValueError("leaderboard stats are missing a user id")

    now = parse_timestamp(pick("last_activity")) or datetime.now(UTC)
    with get_session(engine) as session:
        entry = _get_or_create(session, str(user_id), str(pick("username") or ""), now)
        if pick("username") is not None:
            entry.username = str(pick("username"))
        if pick("total_points") is not None:
            entry.total_points = float(pick("total_points"))
        for name in ("raids_participated", "successful_engagements", "streak"):
            if pick(name) is not None:
                setattr(entry, name, int(pick(name)))
        entry.last_activity = now
        session.flush()
        recompute_ranks(session)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_leaderboard(
    engine: Engine,
    limit: int = 10,
    offset: int | None = None,
) -> list[dict[str, Any]]:
    """Ranked entries, best first.  ``[]`` on any store failure."""
    try:
        with get_session(engine) as session:
            query = (
                select(LeaderboardEntry)
                .order_by(LeaderboardEntry.rank.asc().nulls_last(), LeaderboardEntry.user_id)
                .limit(limit)
            )
            if offset:
                query = query.offset(offset)
            return [_entry_to_dict(e) for e in session.scalars(query).all()]
    except SQLAlchemyError:
        logger.exception("Failed to read leaderboard")
        return []


def get_top_contributors(engine: Engine, limit: int = 10) -> list[dict[str, Any]]:
    """Entries ordered by successful engagements.  ``[]`` on failure."""
    try:
        with get_session(engine) as session:
            entries = session.scalars(
                select(LeaderboardEntry)
                .order_by(
                    LeaderboardEntry.successful_engagements.desc(),
                    LeaderboardEntry.total_points.desc(),
                    LeaderboardEntry.user_id,
                )
                .limit(limit)
            ).all()
            return [_entry_to_dict(e) for e in entries]
    except SQLAlchemyError:
        logger.exception("Failed to read top contributors")
        return []


def get_user_standing(engine: Engine, user_id: str) -> dict[str, Any] | None:
    try:
        with get_session(engine) as session:
            entry = session.get(LeaderboardEntry, user_id)
            return _entry_to_dict(entry) if entry is not None else None
    except SQLAlchemyError:
        logger.exception("Failed to read standing for %s", user_id)
        return None
