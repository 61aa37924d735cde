"""
tests/test_config.py — YAML Configuration Loader Tests
=======================================================
"""

from __future__ import annotations

from datetime import time

import pytest

from repute.config import ReputeConfig, load_config


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_full_file(self, tmp_path):
        cfg = load_config(_write(tmp_path, (
            'community_name: "Raid Crew"\n'
            "consolidation_interval_hours: 4\n"
            'profile_refresh_time: "03:30"\n'
            "cache_warm_days: 3\n"
            "log_level: debug\n"
        )))
        assert cfg == ReputeConfig(
            community_name="Raid Crew",
            consolidation_interval_hours=4,
            profile_refresh_time="03:30",
            cache_warm_days=3,
            log_level="DEBUG",
        )
        assert cfg.refresh_at == time(3, 30)

    def test_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, "community_name: Crew\n"))
        assert cfg.consolidation_interval_hours == 6
        assert cfg.refresh_at == time(2, 0)
        assert cfg.cache_warm_days == 7
        assert cfg.log_level == "INFO"

    def test_unquoted_refresh_time(self, tmp_path):
        """YAML 1.1 reads 02:00 as sexagesimal 120."""
        cfg = load_config(_write(tmp_path, "community_name: Crew\nprofile_refresh_time: 02:00\n"))
        assert cfg.profile_refresh_time == "02:00"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_missing_community_name(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, "cache_warm_days: 2\n"))

    def test_bad_refresh_time(self, tmp_path):
        with pytest.raises(ValueError):
            load_config(_write(tmp_path, 'community_name: Crew\nprofile_refresh_time: "late"\n'))

    def test_example_file_loads(self):
        from pathlib import Path

        example = Path(__file__).resolve().parent.parent / "config.yaml.example"
        assert load_config(example).community_name == "Raid Crew"
