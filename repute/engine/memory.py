"""
repute.engine.memory — Per-user memory buckets & profile cache
===============================================================

Both caches are owned by a single service instance (no module-level
state), guarded by a lock, and cleared on ``stop()``.

``MemoryCache`` keeps one most-recent-first bucket of
:class:`MemoryFragment` per user.  Buckets are only ever touched under the
lock, so interleaved access across different users cannot cross-contaminate.
Appends for the *same* user are not ordered with respect to their durable
writes; de-duplicating double submissions is the caller's job (by
interaction id).

``ProfileCache`` maps user_id → :class:`PersonalityProfile` and is
check-then-recompute with a 24 h staleness window.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from repute.constants import ensure_utc
from repute.engine.profile import PROFILE_TTL, PersonalityProfile

logger = logging.getLogger(__name__)

MAX_FRAGMENTS_PER_USER = 1000
MAX_CACHED_PROFILES = 1000


@dataclass(frozen=True, slots=True)
class MemoryFragment:
    """Cached projection of one Interaction row."""

    id: str
    user_id: str
    interaction_type: str
    content: str
    weight: float
    timestamp: datetime
    context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Any) -> MemoryFragment:
        """Build from an :class:`~repute.database.models.Interaction` or record."""
        return cls(
            id=row.id,
            user_id=row.user_id,
            interaction_type=row.interaction_type,
            content=row.content,
            weight=row.weight,
            timestamp=ensure_utc(row.timestamp),
            context=dict(row.context or {}),
        )


@dataclass(slots=True)
class _Bucket:
    fragments: list[MemoryFragment]
    created_at: datetime
    touched_at: datetime


class MemoryCache:
    """Per-user, most-recent-first fragment buckets with TTL metadata."""

    def __init__(self, max_per_user: int = MAX_FRAGMENTS_PER_USER) -> None:
        self._lock = threading.Lock()
        self._buckets: dict[str, _Bucket] = {}
        self._max_per_user = max_per_user

    def append(self, fragment: MemoryFragment, now: datetime) -> None:
        """Push *fragment* to the front of its user's bucket (created lazily)."""
        with self._lock:
            bucket = self._buckets.get(fragment.user_id)
            if bucket is None:
                bucket = _Bucket(fragments=[], created_at=now, touched_at=now)
                self._buckets[fragment.user_id] = bucket
            bucket.fragments.insert(0, fragment)
            bucket.touched_at = now
            if len(bucket.fragments) > self._max_per_user:
                del bucket.fragments[self._max_per_user:]

    def replace_all(self, fragments: Iterable[MemoryFragment], now: datetime) -> int:
        """Rebuild every bucket from *fragments* (warm start).  Returns count."""
        grouped: dict[str, list[MemoryFragment]] = {}
        count = 0
        for fragment in fragments:
            grouped.setdefault(fragment.user_id, []).append(fragment)
            count += 1
        buckets: dict[str, _Bucket] = {}
        for user_id, items in grouped.items():
            items.sort(key=lambda f: f.timestamp, reverse=True)
            buckets[user_id] = _Bucket(
                fragments=items[: self._max_per_user], created_at=now, touched_at=now,
            )
        with self._lock:
            self._buckets = buckets
        return count

    def fill(self, user_id: str, fragments: Iterable[MemoryFragment], now: datetime) -> bool:
        """Create *user_id*'s bucket from a store read.

        Does nothing (and returns ``False``) if the bucket appeared in the
        meantime, so appends that raced the read are never overwritten.
        """
        items = sorted(fragments, key=lambda f: f.timestamp, reverse=True)
        with self._lock:
            if user_id in self._buckets:
                return False
            self._buckets[user_id] = _Bucket(
                fragments=items[: self._max_per_user], created_at=now, touched_at=now,
            )
        return True

    def has(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._buckets

    def get(self, user_id: str, limit: int | None = None) -> list[MemoryFragment]:
        """Copy of the user's bucket, newest first (empty when absent)."""
        with self._lock:
            bucket = self._buckets.get(user_id)
            if bucket is None:
                return []
            items = bucket.fragments if limit is None else bucket.fragments[:limit]
            return list(items)

    def prune_older_than(self, cutoff: datetime) -> int:
        """Drop fragments with ``timestamp <= cutoff``.  Returns the number removed.

        Buckets left empty are removed too.
        """
        removed = 0
        with self._lock:
            for user_id in list(self._buckets):
                bucket = self._buckets[user_id]
                kept = [f for f in bucket.fragments if f.timestamp > cutoff]
                removed += len(bucket.fragments) - len(kept)
                if kept:
                    bucket.fragments = kept
                else:
                    del self._buckets[user_id]
        return removed

    def enforce_bounds(self) -> int:
        """Trim oversized buckets.  Returns the number of fragments dropped."""
        dropped = 0
        with self._lock:
            for bucket in self._buckets.values():
                excess = len(bucket.fragments) - self._max_per_user
                if excess > 0:
                    del bucket.fragments[self._max_per_user:]
                    dropped += excess
        return dropped

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()

    @property
    def size(self) -> int:
        """Number of user buckets."""
        with self._lock:
            return len(self._buckets)

    @property
    def fragment_count(self) -> int:
        with self._lock:
            return sum(len(b.fragments) for b in self._buckets.values())


class ProfileCache:
    """user_id → profile, fresh for ``ttl`` after ``last_updated``."""

    def __init__(
        self,
        ttl: timedelta = PROFILE_TTL,
        max_entries: int = MAX_CACHED_PROFILES,
    ) -> None:
        self._lock = threading.Lock()
        self._profiles: dict[str, PersonalityProfile] = {}
        self._ttl = ttl
        self._max_entries = max_entries

    def get_fresh(self, user_id: str, now: datetime) -> PersonalityProfile | None:
        """Return the cached profile if younger than the TTL, else ``None``."""
        with self._lock:
            profile = self._profiles.get(user_id)
        if profile is not None and profile.is_fresh(now, self._ttl):
            return profile
        return None

    def put(self, profile: PersonalityProfile) -> None:
        with self._lock:
            self._profiles[profile.user_id] = profile

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._profiles.pop(user_id, None)

    def enforce_bounds(self) -> int:
        """Evict the least recently updated profiles beyond the cap."""
        with self._lock:
            excess = len(self._profiles) - self._max_entries
            if excess <= 0:
                return 0
            oldest = sorted(
                self._profiles.values(), key=lambda p: ensure_utc(p.last_updated),
            )[:excess]
            for profile in oldest:
                del self._profiles[profile.user_id]
        logger.debug("Evicted %d cached profiles", excess)
        return excess

    def clear(self) -> None:
        with self._lock:
            self._profiles.clear()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._profiles)
