"""
tests/test_memory_service.py — Community Memory Service Tests
==============================================================

Facade behaviour end to end against in-memory SQLite, driven on virtual
time so scheduled jobs run deterministically.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from repute.database.models import InteractionType, Setting
from repute.engine.cache import ConfigCache
from repute.engine.interactions import InteractionRecord
from repute.engine.profile import default_profile
from repute.services import memory_service
from repute.services.capabilities import (
    InteractionRecorder,
    LeaderboardReader,
    ProfileProvider,
    ServiceRegistry,
)
from repute.services.interaction_service import persist_interaction
from repute.services.leaderboard_service import get_user_standing
from repute.services.memory_service import CommunityMemoryService
from repute.services.profile_service import load_profile, upsert_profile
from repute.services.scheduler import VirtualScheduler

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _service(db_engine, cfg, policy=None) -> tuple[CommunityMemoryService, VirtualScheduler]:
    scheduler = VirtualScheduler(NOW)
    service = CommunityMemoryService(
        db_engine, policy, cfg, scheduler=scheduler, clock=scheduler.clock,
    )
    return service, scheduler


def _stored(db_engine, rid: str, user: str = "u1", days_ago: float = 0.0, weight: float = 1.0) -> None:
    persist_interaction(db_engine, InteractionRecord(
        id=rid,
        user_id=user,
        timestamp=NOW - timedelta(days=days_ago),
        interaction_type=InteractionType.DISCORD_MESSAGE.value,
        content="stored earlier",
        weight=weight,
    ))


# ---------------------------------------------------------------------------
# record
# ---------------------------------------------------------------------------
class TestRecord:
    def test_record_persists_and_caches(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)

        async def go():
            rec = await service.record({
                "userId": "u1",
                "interactionType": "community_help",
                "content": "Here is how to set up your wallet because it trips people up",
            })
            await service.flush()
            return rec, await service.get_user_memories("u1")

        rec, memories = run_async(go())
        assert rec.weight > 0
        assert rec.timestamp == NOW
        assert "community_impact" in rec.context
        assert [m.id for m in memories] == [rec.id]

    def test_missing_user_id_raises(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)
        with pytest.raises(ValueError):
            run_async(service.record({"content": "anonymous"}))
        assert service.memories.size == 0

    def test_failed_write_is_not_cached(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)

        async def go():
            await service.record({"id": "dup", "userId": "u1", "content": "first"})
            with pytest.raises(IntegrityError):
                await service.record({"id": "dup", "userId": "u1", "content": "second"})

        run_async(go())
        assert service.memories.fragment_count == 1

    def test_high_weight_updates_standing(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)

        async def go():
            rec = await service.record({
                "userId": "u1",
                "username": "ann",
                "interactionType": InteractionType.MENTOR_BEHAVIOR.value,
                "content": "we met at the usual place and talked a bit more ok",
                "raidId": "r-1",
            })
            await service.flush()
            return rec

        rec = run_async(go())
        assert rec.weight > 2.0
        standing = get_user_standing(db_engine, "u1")
        assert standing["total_points"] == pytest.approx(rec.weight)
        assert standing["raids_participated"] == 1
        assert standing["username"] == "ann"

    def test_low_weight_leaves_standing_alone(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)

        async def go():
            await service.record({"userId": "u1", "interactionType": "telegram_message", "content": "hi"})
            await service.flush()

        run_async(go())
        assert get_user_standing(db_engine, "u1") is None

    def test_standing_threshold_from_settings(self, db_engine, cfg, policy):
        policy.override("standing.weight_threshold", 0.1)
        service, _ = _service(db_engine, cfg, policy)

        async def go():
            await service.record({"userId": "u1", "interactionType": "telegram_message", "content": "hi"})
            await service.flush()

        run_async(go())
        assert get_user_standing(db_engine, "u1") is not None

    def test_standing_failure_is_logged_not_raised(self, db_engine, cfg, caplog):
        service, _ = _service(db_engine, cfg)
        boom = OperationalError("UPDATE", {}, Exception("down"))

        async def go():
            with patch.object(memory_service, "apply_standing_delta", side_effect=boom):
                rec = await service.record({
                    "userId": "u1",
                    "interactionType": InteractionType.MENTOR_BEHAVIOR.value,
                    "content": "we met at the usual place and talked a bit more ok",
                })
                await service.flush()
            return rec

        with caplog.at_level(logging.ERROR, logger="repute.services.memory_service"):
            rec = run_async(go())
        assert rec.id
        assert "Standing update failed for u1" in caplog.text


# ---------------------------------------------------------------------------
# get_profile
# ---------------------------------------------------------------------------
class TestProfiles:
    def test_no_history_gives_cached_default(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)
        profile = run_async(service.get_profile("newbie"))
        assert profile == default_profile("newbie", NOW)
        assert service.profiles.size == 1
        assert load_profile(db_engine, "newbie") == profile

    def test_fresh_profile_served_from_cache(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)

        async def go():
            first = await service.get_profile("u1")
            for i in range(3):
                await service.record({"userId": "u1", "interactionType": "raid_initiation", "content": f"raid {i}"})
            await service.flush()
            return first, await service.get_profile("u1")

        first, second = run_async(go())
        assert second is first

    def test_stale_profile_recomputed(self, db_engine, cfg):
        service, scheduler = _service(db_engine, cfg)

        async def go():
            await service.get_profile("u1")
            for i in range(3):
                await service.record({"userId": "u1", "interactionType": "raid_initiation", "content": f"raid {i}"})
            await service.flush()
            scheduler.start()
            await scheduler.advance(timedelta(hours=25))
            return await service.get_profile("u1")

        profile = run_async(go())
        assert profile.engagement_style == "leader"

    def test_read_failure_gives_uncached_default(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)
        boom = OperationalError("SELECT", {}, Exception("down"))
        with patch.object(memory_service, "fetch_recent_interactions", side_effect=boom):
            profile = run_async(service.get_profile("u1"))
        assert profile.engagement_style == "new_user"
        assert service.profiles.size == 0

    def test_persist_failure_still_returns_profile(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)
        boom = OperationalError("UPSERT", {}, Exception("down"))
        with patch.object(memory_service, "upsert_profile", side_effect=boom):
            profile = run_async(service.get_profile("u1"))
        assert profile.user_id == "u1"
        assert service.profiles.size == 1

    def test_fresh_persisted_profile_seeds_cache(self, db_engine, cfg):
        stored = replace(default_profile("u1", NOW - timedelta(hours=1)), engagement_style="leader")
        upsert_profile(db_engine, stored)
        service, _ = _service(db_engine, cfg)
        with patch.object(memory_service, "fetch_recent_interactions") as mock_fetch:
            profile = run_async(service.get_profile("u1"))
        mock_fetch.assert_not_called()
        assert profile == stored
        assert service.profiles.size == 1

    def test_stale_persisted_profile_recomputed(self, db_engine, cfg):
        upsert_profile(db_engine, replace(
            default_profile("u1", NOW - timedelta(days=2)), engagement_style="leader",
        ))
        service, _ = _service(db_engine, cfg)
        profile = run_async(service.get_profile("u1"))
        assert profile == default_profile("u1", NOW)
        assert load_profile(db_engine, "u1") == profile

    def test_persisted_read_failure_falls_back_to_history(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)
        boom = OperationalError("SELECT", {}, Exception("down"))
        with patch.object(memory_service, "load_profile", side_effect=boom):
            profile = run_async(service.get_profile("u1"))
        assert profile == default_profile("u1", NOW)
        assert service.profiles.size == 1


# ---------------------------------------------------------------------------
# memories & insights
# ---------------------------------------------------------------------------
class TestMemoriesAndInsights:
    def test_cold_cache_reads_store_and_fills(self, db_engine, cfg):
        _stored(db_engine, "a", days_ago=1)
        _stored(db_engine, "b", days_ago=0.5)
        service, _ = _service(db_engine, cfg)

        memories = run_async(service.get_user_memories("u1"))
        assert [m.id for m in memories] == ["b", "a"]
        assert service.memories.has("u1")

    def test_unknown_user_has_no_memories(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)
        assert run_async(service.get_user_memories("ghost")) == []
        assert not service.memories.has("ghost")

    def test_warm_cache_loads_recent_window(self, db_engine, cfg):
        _stored(db_engine, "recent", days_ago=2)
        _stored(db_engine, "old", days_ago=20)
        service, _ = _service(db_engine, cfg)

        assert run_async(service.warm_cache()) == 1
        assert [m.id for m in service.memories.get("u1")] == ["recent"]

    def test_community_insights(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)

        async def go():
            await service.record({"userId": "u1", "interactionType": "bug_report", "content": "crash on login"})
            await service.record({"userId": "u2", "interactionType": "bug_report", "content": "typo in docs"})
            await service.flush()
            return await service.get_community_insights()

        insights = run_async(go())
        assert insights["total_interactions"] == 2
        assert insights["active_users"] == 2
        assert insights["by_type"] == {"bug_report": 2}
        assert insights["since_days"] == 7

    def test_insights_store_failure(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)
        boom = OperationalError("SELECT", {}, Exception("down"))
        with patch.object(memory_service, "community_insights", side_effect=boom):
            insights = run_async(service.get_community_insights(since_days=3))
        assert insights["total_interactions"] == 0
        assert insights["since_days"] == 3


# ---------------------------------------------------------------------------
# leaderboard passthroughs
# ---------------------------------------------------------------------------
class TestLeaderboard:
    def test_update_then_read(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)

        async def go():
            await service.update_leaderboard({"userId": "a", "totalPoints": 3, "successfulEngagements": 9})
            await service.update_leaderboard({"userId": "b", "totalPoints": 7, "successfulEngagements": 1})
            return await service.get_leaderboard(), await service.get_top_contributors()

        board, top = run_async(go())
        assert [e["user_id"] for e in board] == ["b", "a"]
        assert [e["user_id"] for e in top] == ["a", "b"]

    def test_update_without_user_raises(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)
        with pytest.raises(ValueError):
            run_async(service.update_leaderboard({"totalPoints": 3}))

    def test_user_standing(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)

        async def go():
            await service.update_leaderboard({"userId": "a", "totalPoints": 3})
            return await service.get_user_standing("a"), await service.get_user_standing("ghost")

        standing, missing = run_async(go())
        assert standing["rank"] == 1
        assert standing["total_points"] == 3.0
        assert missing is None


# ---------------------------------------------------------------------------
# scheduled maintenance
# ---------------------------------------------------------------------------
class TestMaintenance:
    def test_consolidate_archives_and_prunes(self, db_engine, cfg):
        _stored(db_engine, "ancient", days_ago=40, weight=0.1)
        _stored(db_engine, "last-week", days_ago=3, weight=1.0)
        service, _ = _service(db_engine, cfg)

        async def go():
            await service.warm_cache()
            return await service.consolidate()

        summary = run_async(go())
        assert summary["archived"] == 1
        assert summary["deleted"] == 1
        assert summary["pruned"] == 1
        assert not service.memories.has("u1")

    def test_refresh_profiles(self, db_engine, cfg, monkeypatch):
        monkeypatch.setattr(memory_service, "REFRESH_DELAY_SECONDS", 0)
        _stored(db_engine, "a", user="u1", days_ago=1)
        _stored(db_engine, "b", user="u2", days_ago=5)
        _stored(db_engine, "c", user="idle", days_ago=45)
        service, _ = _service(db_engine, cfg)

        assert run_async(service.refresh_profiles()) == 2
        assert load_profile(db_engine, "u1") is not None
        assert load_profile(db_engine, "idle") is None

    def test_refresh_batch_size(self, db_engine, cfg, policy, monkeypatch):
        monkeypatch.setattr(memory_service, "REFRESH_DELAY_SECONDS", 0)
        policy.override("profile.refresh_batch_size", 1)
        _stored(db_engine, "a", user="u1")
        _stored(db_engine, "b", user="u2")
        service, _ = _service(db_engine, cfg, policy)
        assert run_async(service.refresh_profiles()) == 1

    def test_refresh_skips_failing_user(self, db_engine, cfg, monkeypatch, caplog):
        monkeypatch.setattr(memory_service, "REFRESH_DELAY_SECONDS", 0)
        for rid, user in (("a", "u1"), ("b", "u2"), ("c", "u3")):
            _stored(db_engine, rid, user=user, days_ago=1)
        service, _ = _service(db_engine, cfg)
        real_fetch = memory_service.fetch_recent_interactions

        def flaky(engine, user_id, limit):
            if user_id == "u2":
                raise OperationalError("SELECT", {}, Exception("down"))
            return real_fetch(engine, user_id, limit)

        with patch.object(memory_service, "fetch_recent_interactions", side_effect=flaky):
            with caplog.at_level(logging.ERROR, logger="repute.services.memory_service"):
                refreshed = run_async(service.refresh_profiles())

        assert refreshed == 2
        assert "Profile refresh failed for u2" in caplog.text
        assert load_profile(db_engine, "u1") is not None
        assert load_profile(db_engine, "u2") is None
        assert load_profile(db_engine, "u3") is not None

    def test_jobs_run_on_schedule(self, db_engine, cfg, monkeypatch):
        monkeypatch.setattr(memory_service, "REFRESH_DELAY_SECONDS", 0)
        _stored(db_engine, "ancient", days_ago=40, weight=0.1)
        service, scheduler = _service(db_engine, cfg)

        async def go():
            await service.start()
            ran = await scheduler.advance(timedelta(hours=24))
            await service.stop()
            return ran

        ran = run_async(go())
        # 12:00 start: consolidation at 18:00, 00:00, 06:00, 12:00; refresh at 02:00
        assert ran.count("consolidation") == 4
        assert ran.count("profile_refresh") == 1
        assert ran.count("cache_bounds") == 24 * 6
        assert load_profile(db_engine, "u1") is None  # its only row was archived first

    def test_start_registers_jobs_once(self, db_engine, cfg):
        service, scheduler = _service(db_engine, cfg)

        async def go():
            await service.start()
            await service.stop()
            await service.start()
            await service.stop()

        run_async(go())
        assert scheduler.jobs == ["consolidation", "profile_refresh", "cache_bounds"]

    def test_stop_clears_caches(self, db_engine, cfg):
        _stored(db_engine, "a", days_ago=1)
        service, _ = _service(db_engine, cfg)

        async def go():
            await service.start()
            await service.get_profile("u1")
            before = service.health()
            await service.stop()
            return before

        before = run_async(go())
        assert before["memory_cache_fragments"] == 1
        assert before["profile_cache_size"] == 1
        assert before["scheduler_running"] is True
        assert service.memories.size == 0
        assert service.profiles.size == 0
        assert service.health()["scheduler_running"] is False


# ---------------------------------------------------------------------------
# capability wiring
# ---------------------------------------------------------------------------
class TestRegistration:
    def test_registers_every_capability(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)
        registry = ServiceRegistry()
        service.register(registry)
        for capability in (InteractionRecorder, ProfileProvider, LeaderboardReader):
            assert registry.get(capability) is service


# ---------------------------------------------------------------------------
# settings notifications
# ---------------------------------------------------------------------------
class TestSettingsNotify:
    def test_settings_change_reloads_policy(self, db_engine, cfg):
        cache = ConfigCache(db_engine)
        service, _ = _service(db_engine, cfg, cache)
        with patch.object(cache, "_load_settings") as mock_load:
            service.handle_settings_notify("settings")
            service.handle_settings_notify("interactions")
        mock_load.assert_called_once()

    def test_reload_picks_up_new_threshold(self, db_engine, cfg):
        cache = ConfigCache(db_engine)
        service, _ = _service(db_engine, cfg, cache)
        with Session(db_engine) as session:
            session.add(Setting(key="standing.weight_threshold", value_json="0.5", category="standing"))
            session.commit()
        service.handle_settings_notify("settings")
        assert cache.get_float("standing.weight_threshold", 2.0) == 0.5

    def test_no_policy_cache_is_a_noop(self, db_engine, cfg):
        service, _ = _service(db_engine, cfg)
        service.handle_settings_notify("settings")
