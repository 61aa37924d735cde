"""
tests/test_scheduler.py — Job Scheduler Tests
==============================================
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, time, timedelta

import pytest

from repute.services.scheduler import AsyncioScheduler, ScheduledJob, Scheduler, VirtualScheduler

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _noop() -> None:
    return None


class TestScheduledJob:
    def test_interval_following(self):
        job = ScheduledJob(name="j", job=_noop, interval=timedelta(hours=6))
        assert job.following(NOW) == NOW + timedelta(hours=6)

    def test_daily_later_today(self):
        job = ScheduledJob(name="j", job=_noop, at=time(18, 30))
        assert job.following(NOW) == NOW.replace(hour=18, minute=30)

    def test_daily_rolls_to_tomorrow(self):
        job = ScheduledJob(name="j", job=_noop, at=time(2, 0))
        assert job.following(NOW) == datetime(2026, 3, 2, 2, 0, tzinfo=UTC)

    def test_daily_at_exact_time_is_tomorrow(self):
        job = ScheduledJob(name="j", job=_noop, at=time(12, 0))
        assert job.following(NOW) == NOW + timedelta(days=1)

    def test_job_without_interval_or_time(self):
        job = ScheduledJob(name="j", job=_noop)
        with pytest.raises(ValueError):
            job.following(NOW)


class TestVirtualScheduler:
    def test_runs_due_jobs_in_order(self):
        scheduler = VirtualScheduler(NOW)
        seen: list[tuple[str, datetime]] = []

        def recorder(name):
            async def job():
                seen.append((name, scheduler.clock()))
            return job

        scheduler.every(timedelta(hours=6), recorder("six"), name="six")
        scheduler.daily_at(time(2, 0), recorder("nightly"), name="nightly")
        scheduler.start()

        # 12:00 → 03:00 next day
        ran = run_async(scheduler.advance(timedelta(hours=15)))
        assert ran == ["six", "six", "nightly"]
        assert [t for _, t in seen] == [
            NOW + timedelta(hours=6),
            NOW + timedelta(hours=12),
            NOW + timedelta(hours=14),
        ]
        assert scheduler.clock() == NOW + timedelta(hours=15)

    def test_nothing_runs_before_start(self):
        scheduler = VirtualScheduler(NOW)
        calls = []

        async def job():
            calls.append(1)

        scheduler.every(timedelta(minutes=1), job, name="tick")
        assert run_async(scheduler.advance(timedelta(hours=1))) == []
        assert calls == []
        assert scheduler.clock() == NOW + timedelta(hours=1)

    def test_failing_job_keeps_schedule(self, caplog):
        scheduler = VirtualScheduler(NOW)

        async def broken():
            raise RuntimeError("boom")

        scheduler.every(timedelta(minutes=10), broken, name="broken")
        scheduler.start()
        with caplog.at_level(logging.ERROR, logger="repute.services.scheduler"):
            ran = run_async(scheduler.advance(timedelta(minutes=30)))

        assert ran == ["broken"] * 3
        assert "Scheduled job broken failed" in caplog.text
        assert all(getattr(r, "task", None) == "broken" for r in caplog.records)

    def test_stop_halts_jobs(self):
        scheduler = VirtualScheduler(NOW)
        scheduler.every(timedelta(minutes=1), _noop, name="tick")
        scheduler.start()
        run_async(scheduler.stop())
        assert not scheduler.running
        assert run_async(scheduler.advance(timedelta(minutes=5))) == []

    def test_non_positive_interval_rejected(self):
        scheduler = VirtualScheduler(NOW)
        with pytest.raises(ValueError):
            scheduler.every(timedelta(0), _noop, name="never")

    def test_base_scheduler_is_abstract(self):
        with pytest.raises(TypeError):
            Scheduler()


class TestAsyncioScheduler:
    def test_runs_and_stops(self):
        scheduler = AsyncioScheduler()
        calls = []

        async def tick():
            calls.append(1)

        scheduler.every(timedelta(milliseconds=10), tick, name="tick")

        async def go():
            scheduler.start()
            scheduler.start()  # second start is a no-op
            await asyncio.sleep(0.2)
            await scheduler.stop()

        run_async(go())
        assert calls
        assert not scheduler.running
        assert scheduler.jobs == ["tick"]
