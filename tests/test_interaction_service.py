"""
tests/test_interaction_service.py — Interaction Store Tests
============================================================

Persistence and read paths of the interactions table against in-memory
SQLite.
"""

from __future__ import annotations

import warnings
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError, SAWarning

from repute.database.models import InteractionType
from repute.engine.interactions import InteractionRecord
from repute.services.interaction_service import (
    active_user_ids,
    community_insights,
    fetch_recent_interactions,
    load_recent_interactions,
    persist_interaction,
    score_interaction,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def _rec(rid: str, user: str = "u1", hours_ago: float = 0.0, **kw) -> InteractionRecord:
    base = dict(
        id=rid,
        user_id=user,
        timestamp=NOW - timedelta(hours=hours_ago),
        interaction_type=InteractionType.DISCORD_MESSAGE.value,
        content="hello there",
        weight=1.0,
    )
    base.update(kw)
    return InteractionRecord(**base)


class TestScoreInteraction:
    def test_weight_and_quality_filled(self):
        scored = score_interaction(_rec("a", weight=0.0, content="because " * 20), NOW)
        assert scored.weight > 0
        assert 0.1 <= scored.quality_score <= 1.0
        assert scored.context["quality_score"] == scored.quality_score
        assert scored.context["community_impact"] in {"high", "medium", "low"}

    def test_existing_context_preserved(self):
        scored = score_interaction(_rec("a", context={"channel": "general"}), NOW)
        assert scored.context["channel"] == "general"


class TestPersistAndFetch:
    def test_round_trip_fields(self, db_engine):
        rec = _rec("a", context={"k": "v"}, related_raid_id="r-1", platform="discord", username="ann")
        persist_interaction(db_engine, rec)

        [loaded] = fetch_recent_interactions(db_engine, "u1")
        assert loaded.id == "a"
        assert loaded.context == {"k": "v"}
        assert loaded.related_raid_id == "r-1"
        assert loaded.platform == "discord"
        assert loaded.username == "ann"
        assert loaded.timestamp == NOW
        assert loaded.timestamp.tzinfo is not None

    def test_newest_first_and_limited(self, db_engine):
        for i in range(5):
            persist_interaction(db_engine, _rec(f"i{i}", hours_ago=i))
        persist_interaction(db_engine, _rec("other", user="u2"))

        rows = fetch_recent_interactions(db_engine, "u1", limit=3)
        assert [r.id for r in rows] == ["i0", "i1", "i2"]

    def test_duplicate_id_raises(self, db_engine):
        persist_interaction(db_engine, _rec("dup"))
        with pytest.raises(IntegrityError):
            persist_interaction(db_engine, _rec("dup"))


class TestWindowedReads:
    @pytest.fixture
    def seeded(self, db_engine):
        persist_interaction(db_engine, _rec("a", user="u1", hours_ago=1, weight=2.0))
        persist_interaction(db_engine, _rec("b", user="u2", hours_ago=2, weight=1.0,
                                            interaction_type=InteractionType.BUG_REPORT.value))
        persist_interaction(db_engine, _rec("c", user="u3", hours_ago=24 * 10, weight=5.0))
        return db_engine

    def test_load_recent(self, seeded):
        rows = load_recent_interactions(seeded, NOW - timedelta(days=1))
        assert [r.id for r in rows] == ["a", "b"]

    def test_active_user_ids(self, seeded):
        with warnings.catch_warnings():
            warnings.simplefilter("error", SAWarning)
            assert active_user_ids(seeded, NOW - timedelta(days=30)) == ["u1", "u2", "u3"]
        assert active_user_ids(seeded, NOW - timedelta(days=1)) == ["u1", "u2"]

    def test_community_insights(self, seeded):
        since = NOW - timedelta(days=7)
        insights = community_insights(seeded, since)
        assert insights["total_interactions"] == 2
        assert insights["active_users"] == 2
        assert insights["average_weight"] == pytest.approx(1.5)
        assert insights["by_type"] == {"bug_report": 1, "discord_message": 1}
        assert insights["since"] == since.isoformat()

    def test_insights_on_empty_window(self, db_engine):
        insights = community_insights(db_engine, NOW)
        assert insights["total_interactions"] == 0
        assert insights["average_weight"] == 0.0
        assert insights["by_type"] == {}
