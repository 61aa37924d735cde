"""
repute.services.memory_service — Community memory service facade
=================================================================

:class:`CommunityMemoryService` is the one object a host talks to.  It owns
the per-user memory cache and the profile cache, records interactions,
serves profiles and standings, and registers the maintenance jobs:

* **consolidation** — every ``consolidation_interval_hours``: archive aged
  low-weight rows, prune cached fragments older than 24 h, enforce cache
  bounds.
* **profile_refresh** — daily at ``profile_refresh_time`` (UTC): recompute
  profiles of the first 100 users active in the last 30 days.
* **cache_bounds** — every 10 minutes.

Error policy:

* ``record`` propagates validation (``ValueError``) and store failures.
  Its standing update runs fire-and-forget and only logs failures.
* Read paths log store failures and return safe defaults.
* Scheduled jobs log and continue per item.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from repute.constants import STANDING_WEIGHT_THRESHOLD
from repute.database.engine import run_db
from repute.engine.interactions import InteractionRecord, normalize_interaction
from repute.engine.memory import MemoryCache, MemoryFragment, ProfileCache
from repute.engine.profile import (
    HISTORY_WINDOW,
    PersonalityProfile,
    analyze_personality,
    default_profile,
)
from repute.services.capabilities import (
    InteractionRecorder,
    LeaderboardReader,
    ProfileProvider,
    ServiceRegistry,
)
from repute.services.consolidation_service import (
    DEFAULT_CUTOFF_DAYS,
    DEFAULT_WEIGHT_THRESHOLD,
    run_consolidation,
)
from repute.services.interaction_service import (
    active_user_ids,
    community_insights,
    fetch_recent_interactions,
    load_recent_interactions,
    persist_interaction,
    score_interaction,
)
from repute.services.leaderboard_service import (
    apply_standing_delta,
    get_leaderboard,
    get_top_contributors,
    get_user_standing,
    update_leaderboard,
)
from repute.services.profile_service import load_profile, upsert_profile
from repute.services.scheduler import AsyncioScheduler, Scheduler

if TYPE_CHECKING:
    from repute.config import ReputeConfig
    from repute.engine.cache import ConfigCache

logger = logging.getLogger(__name__)

FRAGMENT_TTL_HOURS = 24
ACTIVE_WINDOW = timedelta(days=30)
REFRESH_BATCH_SIZE = 100
REFRESH_DELAY_SECONDS = 0.1
CACHE_BOUNDS_INTERVAL = timedelta(minutes=10)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CommunityMemoryService:
    """Interaction recorder, profiler and standing store behind one facade."""

    def __init__(
        self,
        engine: Engine,
        cache: ConfigCache | None,
        cfg: ReputeConfig,
        *,
        scheduler: Scheduler | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._engine = engine
        self._cache = cache
        self._cfg = cfg
        self._scheduler = scheduler if scheduler is not None else AsyncioScheduler()
        self._clock = clock or _utcnow
        self.memories = MemoryCache()
        self.profiles = ProfileCache()
        self._pending: set[asyncio.Task[None]] = set()
        self._jobs_registered = False

    # -- settings helpers ---------------------------------------------------
    def _int(self, key: str, default: int) -> int:
        return self._cache.get_int(key, default) if self._cache else default

    def _float(self, key: str, default: float) -> float:
        return self._cache.get_float(key, default) if self._cache else default

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------
    async def start(self) -> None:
        """Warm the memory cache and start the maintenance jobs."""
        await self.warm_cache()
        if not self._jobs_registered:
            self._scheduler.every(
                timedelta(hours=self._cfg.consolidation_interval_hours),
                self.consolidate,
                name="consolidation",
            )
            self._scheduler.daily_at(
                self._cfg.refresh_at, self.refresh_profiles, name="profile_refresh",
            )
            self._scheduler.every(
                CACHE_BOUNDS_INTERVAL, self.enforce_cache_bounds, name="cache_bounds",
            )
            self._jobs_registered = True
        self._scheduler.start()
        logger.info("Community memory service started for %s", self._cfg.community_name)

    async def stop(self) -> None:
        """Stop the jobs, wait for pending standing updates, clear caches."""
        await self._scheduler.stop()
        await self.flush()
        self.memories.clear()
        self.profiles.clear()
        logger.info("Community memory service stopped")

    async def flush(self) -> None:
        """Wait for every in-flight standing update to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def warm_cache(self) -> int:
        """Bulk-load the last ``cache_warm_days`` of interactions.

        The only bulk load; buckets grow through :meth:`record` afterwards.
        A store failure leaves the cache cold and is logged.
        """
        now = self._clock()
        since = now - timedelta(days=self._cfg.cache_warm_days)
        try:
            rows = await run_db(load_recent_interactions, self._engine, since)
        except SQLAlchemyError:
            logger.exception("Cache warm-up failed; starting cold")
            return 0
        loaded = self.memories.replace_all((MemoryFragment.from_row(r) for r in rows), now)
        logger.info("Loaded %d recent interactions for %d users", loaded, self.memories.size)
        return loaded

    # -----------------------------------------------------------------------
    # Recording
    # -----------------------------------------------------------------------
    async def record(self, raw: Mapping[str, Any]) -> InteractionRecord:
        """Normalize, weigh and persist one interaction.

        The fragment is cached only after the write succeeded.  Interactions
        weighing more than the standing threshold update the leaderboard in
        the background.

        Raises
        ------
        ValueError
            If the payload has no user id.
        sqlalchemy.exc.SQLAlchemyError
            If the durable write fails (including duplicate ids).
        """
        now = self._clock()
        record = score_interaction(normalize_interaction(raw, now), now, self._cache)
        await run_db(persist_interaction, self._engine, record)
        self.memories.append(MemoryFragment.from_row(record), now)

        threshold = self._float("standing.weight_threshold", STANDING_WEIGHT_THRESHOLD)
        if record.weight > threshold:
            task = asyncio.create_task(self._apply_standing(record, now))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return record

    async def _apply_standing(self, record: InteractionRecord, now: datetime) -> None:
        try:
            await run_db(
                apply_standing_delta,
                self._engine,
                record.user_id,
                record.username,
                record.weight,
                raid_id=record.related_raid_id,
                now=now,
            )
        except Exception:
            logger.exception("Standing update failed for %s", record.user_id)

    # -----------------------------------------------------------------------
    # Profiles
    # -----------------------------------------------------------------------
    async def get_profile(self, user_id: str) -> PersonalityProfile:
        """Cached profile if fresh, then the persisted row if fresh, else
        recomputed from the last 200 rows.

        Never raises; a store read failure yields an uncached default.
        """
        now = self._clock()
        cached = self.profiles.get_fresh(user_id, now)
        if cached is not None:
            return cached

        try:
            stored = await run_db(load_profile, self._engine, user_id)
        except SQLAlchemyError:
            logger.exception("Failed to load persisted profile of %s", user_id)
            stored = None
        if stored is not None and stored.is_fresh(now):
            self.profiles.put(stored)
            return stored

        try:
            return await self._recompute_profile(user_id, now)
        except SQLAlchemyError:
            logger.exception("Failed to read interactions for profile of %s", user_id)
            return default_profile(user_id, now)

    async def _recompute_profile(self, user_id: str, now: datetime) -> PersonalityProfile:
        # history read failures propagate; persist failures are only logged
        rows = await run_db(fetch_recent_interactions, self._engine, user_id, HISTORY_WINDOW)
        profile = analyze_personality(user_id, rows, now, self._cache)
        self.profiles.put(profile)
        try:
            await run_db(upsert_profile, self._engine, profile)
        except SQLAlchemyError:
            logger.exception("Failed to persist profile of %s", user_id)
        return profile

    # -----------------------------------------------------------------------
    # Memories & insights
    # -----------------------------------------------------------------------
    async def get_user_memories(self, user_id: str, limit: int = 50) -> list[MemoryFragment]:
        """Newest-first fragments: cache first, then the store.  Never raises."""
        if self.memories.has(user_id):
            return self.memories.get(user_id, limit)
        try:
            rows = await run_db(fetch_recent_interactions, self._engine, user_id, limit)
        except SQLAlchemyError:
            logger.exception("Failed to read memories of %s", user_id)
            return []
        fragments = [MemoryFragment.from_row(r) for r in rows]
        if fragments:
            self.memories.fill(user_id, fragments, self._clock())
        return fragments

    async def get_community_insights(self, since_days: int = 7) -> dict[str, Any]:
        """Totals and per-type counts over the last *since_days*.  Never raises."""
        since = self._clock() - timedelta(days=since_days)
        try:
            insights = await run_db(community_insights, self._engine, since)
        except SQLAlchemyError:
            logger.exception("Failed to compute community insights")
            insights = {
                "since": since.isoformat(),
                "total_interactions": 0,
                "active_users": 0,
                "average_weight": 0.0,
                "by_type": {},
            }
        insights["since_days"] = since_days
        return insights

    # -----------------------------------------------------------------------
    # Leaderboard
    # -----------------------------------------------------------------------
    async def get_leaderboard(self, limit: int = 10, offset: int | None = None) -> list[dict[str, Any]]:
        return await run_db(get_leaderboard, self._engine, limit, offset)

    async def get_top_contributors(self, limit: int = 10) -> list[dict[str, Any]]:
        return await run_db(get_top_contributors, self._engine, limit)

    async def get_user_standing(self, user_id: str) -> dict[str, Any] | None:
        """One user's leaderboard entry, or ``None``.  Never raises."""
        return await run_db(get_user_standing, self._engine, user_id)

    async def update_leaderboard(self, stats: Mapping[str, Any]) -> None:
        """Explicit standing upsert.  Store failures propagate."""
        await run_db(update_leaderboard, self._engine, stats)

    # -----------------------------------------------------------------------
    # Maintenance jobs
    # -----------------------------------------------------------------------
    async def consolidate(self) -> dict[str, Any]:
        """Archive aged low-weight rows, then prune and bound the caches."""
        now = self._clock()
        summary: dict[str, Any] = dict(await run_db(
            run_consolidation,
            self._engine,
            now,
            self._int("consolidation.cutoff_days", DEFAULT_CUTOFF_DAYS),
            self._float("consolidation.weight_threshold", DEFAULT_WEIGHT_THRESHOLD),
        ))
        ttl = timedelta(hours=self._int("memory.fragment_ttl_hours", FRAGMENT_TTL_HOURS))
        summary["pruned"] = self.memories.prune_older_than(now - ttl)
        await self.enforce_cache_bounds()
        logger.info(
            "Memory consolidation — archived %d, deleted %d, pruned %d cached fragments",
            summary["archived"], summary["deleted"], summary["pruned"],
        )
        return summary

    async def refresh_profiles(self) -> int:
        """Recompute profiles of recently active users.  Returns the count refreshed."""
        now = self._clock()
        try:
            user_ids = await run_db(active_user_ids, self._engine, now - ACTIVE_WINDOW)
        except SQLAlchemyError:
            logger.exception("Profile refresh: could not list active users")
            return 0

        batch = user_ids[: self._int("profile.refresh_batch_size", REFRESH_BATCH_SIZE)]
        refreshed = 0
        for user_id in batch:
            self.profiles.invalidate(user_id)
            try:
                await self._recompute_profile(user_id, now)
                refreshed += 1
            except Exception:
                logger.exception("Profile refresh failed for %s", user_id)
            await asyncio.sleep(REFRESH_DELAY_SECONDS)
        logger.info("Refreshed %d of %d active user profiles", refreshed, len(user_ids))
        return refreshed

    async def enforce_cache_bounds(self) -> dict[str, int]:
        dropped = {
            "fragments_dropped": self.memories.enforce_bounds(),
            "profiles_evicted": self.profiles.enforce_bounds(),
        }
        if any(dropped.values()):
            logger.debug("Cache bounds enforced: %s", dropped)
        return dropped

    # -----------------------------------------------------------------------
    # Introspection & wiring
    # -----------------------------------------------------------------------
    def health(self) -> dict[str, Any]:
        return {
            "memory_cache_users": self.memories.size,
            "memory_cache_fragments": self.memories.fragment_count,
            "profile_cache_size": self.profiles.size,
            "pending_standing_updates": len(self._pending),
            "scheduler_running": self._scheduler.running,
            "jobs": self._scheduler.jobs,
        }

    def handle_settings_notify(self, table_name: str) -> None:
        """Forward a database change notification to the scoring-policy cache."""
        if self._cache is not None:
            self._cache.handle_notify(table_name)

    def register(self, registry: ServiceRegistry) -> None:
        """Expose this service under every capability it provides."""
        registry.register(InteractionRecorder, self)
        registry.register(ProfileProvider, self)
        registry.register(LeaderboardReader, self)
