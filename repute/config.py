"""
repute.config — YAML Configuration Loader
==========================================

This module reads ``config.yaml`` for **infrastructure-only** settings:
community identity, job schedules, cache warm-up and log level.  Scoring
policy (weights, thresholds, evaluator tables) lives in the ``settings``
database table and is read through :class:`~repute.engine.cache.ConfigCache`.

Usage::

    from repute.config import load_config

    cfg = load_config()                      # reads ./config.yaml by default
    print(cfg.community_name)                # "Raid Crew"
    print(cfg.consolidation_interval_hours)  # 6
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure only.
# Scoring policy lives in the DB ``settings`` table.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ReputeConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    community_name: str

    # Scheduled jobs
    consolidation_interval_hours: int = 6
    profile_refresh_time: str = "02:00"  # HH:MM, UTC

    # Cold start: days of interactions bulk-loaded into the memory cache
    cache_warm_days: int = 7

    log_level: str = "INFO"

    @property
    def refresh_at(self) -> time:
        """``profile_refresh_time`` parsed into a :class:`datetime.time`."""
        return time.fromisoformat(self.profile_refresh_time)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> ReputeConfig:
    """Read *path* and return a :class:`ReputeConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If ``profile_refresh_time`` is not ``HH:MM``.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    refresh_time = raw.get("profile_refresh_time", "02:00")
    if isinstance(refresh_time, int):
        # YAML 1.1 reads an unquoted 02:00 as the base-60 integer 120
        refresh_time = f"{refresh_time // 60:02d}:{refresh_time % 60:02d}"
    refresh_time = str(refresh_time)
    time.fromisoformat(refresh_time)

    return ReputeConfig(
        community_name=raw["community_name"],
        consolidation_interval_hours=int(raw.get("consolidation_interval_hours", 6)),
        profile_refresh_time=refresh_time,
        cache_warm_days=int(raw.get("cache_warm_days", 7)),
        log_level=str(raw.get("log_level", "INFO")).upper(),
    )
