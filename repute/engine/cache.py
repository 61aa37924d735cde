"""
repute.engine.cache — In-Memory Scoring Policy Cache
=====================================================

Scoring policy (type multipliers, thresholds, evaluator weights) lives in the
``settings`` table so it can be audited and tuned without a deploy.  The
engine reads it on every call, so the rows are cached in memory and
re-read on :meth:`ConfigCache.reload` (or :meth:`handle_notify` when the
hosting process relays a change notification).

Every engine module falls back to its own module-level default table when a
key is absent, so an empty cache reproduces the shipped policy exactly.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from repute.database.models import Setting

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class ConfigCache:
    """Thread-safe in-memory copy of the ``settings`` table.

    Usage::

        cache = ConfigCache(engine)
        cache.load_all()

        half_life = cache.get_float("weight.decay_hours", 168.0)
        multipliers = cache.get_setting("weight.type_multipliers", {})
    """

    def __init__(self, engine: Engine | None) -> None:
        self._engine = engine
        self._lock = threading.Lock()
        # key → parsed JSON value
        self._settings: dict[str, Any] = {}

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------
    def load_all(self) -> None:
        """Load every setting from the DB.  Call on startup."""
        self._load_settings()
        logger.info("ConfigCache loaded: %d settings", len(self._settings))

    def reload(self) -> None:
        self._load_settings()

    def _load_settings(self) -> None:
        if self._engine is None:
            return
        with Session(self._engine) as session:
            rows = session.scalars(select(Setting)).all()
            parsed: dict[str, Any] = {}
            for row in rows:
                try:
                    parsed[row.key] = json.loads(row.value_json)
                except (json.JSONDecodeError, TypeError):
                    parsed[row.key] = row.value_json

        with self._lock:
            self._settings = parsed

    def handle_notify(self, table_name: str) -> None:
        """Reload when a change notification names the settings table."""
        table_name = table_name.strip().lower()
        if table_name == "settings":
            logger.info("Scoring policy invalidated; reloading settings")
            self._load_settings()
        else:
            logger.warning("Unknown table in notification: %s — ignoring", table_name)

    def override(self, key: str, value: Any) -> None:
        """Set an in-memory value without touching the DB (tests, dry runs)."""
        with self._lock:
            self._settings[key] = value

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._settings)

    # -------------------------------------------------------------------
    # Typed setting accessors (thread-safe)
    # -------------------------------------------------------------------
    def get_setting(self, key: str, default: Any = None) -> Any:
        """Return the parsed JSON value for *key*, or *default*."""
        with self._lock:
            return self._settings.get(key, default)

    def get_int(self, key: str, default: int = 0) -> int:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return int(val)
        except (TypeError, ValueError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return float(val)
        except (TypeError, ValueError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        val = self.get_setting(key)
        if val is None:
            return default
        return bool(val)

    def get_table(self, key: str, default: dict[str, float]) -> dict[str, float]:
        """Return *default* overlaid with the JSON object stored at *key*.

        Non-numeric entries in the stored object are ignored, so a bad admin
        edit can only fall back to the shipped value, never break scoring.
        """
        stored = self.get_setting(key)
        merged = dict(default)
        if not isinstance(stored, dict):
            return merged
        for name, value in stored.items():
            try:
                merged[str(name)] = float(value)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-numeric setting %s[%s]=%r", key, name, value)
        return merged
