"""
repute.services.scheduler — Periodic job scheduling
====================================================

The service registers its maintenance jobs against a :class:`Scheduler`
rather than owning timers, so the same wiring runs on the wall clock in
production and on virtual time in tests::

    scheduler.every(timedelta(hours=6), consolidate, name="consolidation")
    scheduler.daily_at(time(2, 0), refresh_profiles, name="profile_refresh")
    scheduler.start()

Jobs are zero-argument coroutine functions.  A failing job is logged with
``extra={"task": name}`` and keeps its schedule.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta
from typing import Any

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


@dataclass(slots=True)
class ScheduledJob:
    name: str
    job: Job
    interval: timedelta | None = None
    at: time | None = None
    next_run: datetime | None = None

    def following(self, after: datetime) -> datetime:
        """First run time strictly after *after*."""
        if self.interval is not None:
            return after + self.interval
        if self.at is None:
            raise ValueError(f"job {self.name} has neither an interval nor a daily time")
        candidate = datetime.combine(after.date(), self.at, tzinfo=UTC)
        if candidate <= after:
            candidate += timedelta(days=1)
        return candidate


async def run_job(entry: ScheduledJob) -> None:
    """Run one job, logging (never raising) its failure."""
    try:
        await entry.job()
    except Exception:
        logger.exception("Scheduled job %s failed", entry.name, extra={"task": entry.name})


class Scheduler(ABC):
    """Registry of periodic jobs.  Subclasses decide how time passes."""

    def __init__(self) -> None:
        self._jobs: list[ScheduledJob] = []
        self._running = False

    def every(self, interval: timedelta, job: Job, name: str) -> None:
        if interval <= timedelta(0):
            raise ValueError(f"interval for {name} must be positive")
        self._jobs.append(ScheduledJob(name=name, job=job, interval=interval))

    def daily_at(self, at: time, job: Job, name: str) -> None:
        """Run *job* once a day at *at* (UTC)."""
        self._jobs.append(ScheduledJob(name=name, job=job, at=at))

    @property
    def jobs(self) -> list[str]:
        return [j.name for j in self._jobs]

    @property
    def running(self) -> bool:
        return self._running

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...


# ---------------------------------------------------------------------------
# Wall clock
# ---------------------------------------------------------------------------
class AsyncioScheduler(Scheduler):
    """One asyncio task per job, sleeping until the job's next run."""

    def __init__(self) -> None:
        super().__init__()
        self._tasks: list[asyncio.Task[None]] = []

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        for entry in self._jobs:
            self._tasks.append(asyncio.create_task(self._loop(entry), name=entry.name))
        logger.info("Scheduler started with %d jobs: %s", len(self._jobs), ", ".join(self.jobs))

    async def _loop(self, entry: ScheduledJob) -> None:
        while True:
            now = datetime.now(UTC)
            entry.next_run = entry.following(now)
            await asyncio.sleep((entry.next_run - now).total_seconds())
            await run_job(entry)

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Scheduler stopped")


# ---------------------------------------------------------------------------
# Virtual clock
# ---------------------------------------------------------------------------
class VirtualScheduler(Scheduler):
    """Runs due jobs when virtual time is moved forward with :meth:`advance`.

    ``clock`` can be handed to the service so that jobs observe the same
    virtual ``now`` that triggered them.
    """

    def __init__(self, start: datetime) -> None:
        super().__init__()
        self._now = start

    def clock(self) -> datetime:
        return self._now

    def start(self) -> None:
        self._running = True
        for entry in self._jobs:
            entry.next_run = entry.following(self._now)

    async def stop(self) -> None:
        self._running = False

    async def advance(self, delta: timedelta) -> list[str]:
        """Move time forward by *delta*, running every job that falls due.

        Jobs run in due-time order with the clock set to their due time.
        Returns the names of the jobs run, in order.
        """
        target = self._now + delta
        ran: list[str] = []
        while self._running:
            due = [j for j in self._jobs if j.next_run is not None and j.next_run <= target]
            if not due:
                break
            entry = min(due, key=lambda j: j.next_run)
            self._now = entry.next_run
            await run_job(entry)
            ran.append(entry.name)
            entry.next_run = entry.following(self._now)
        self._now = target
        return ran
