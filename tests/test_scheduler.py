from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from apscheduler.jobstores.base import JobLookupError

from gamescout.scheduler import CYCLE_DELAY_SECONDS, ContinuousScheduler


class FakeScheduler:
    """Stands in for AsyncIOScheduler; jobs fire only when the test says so."""

    def __init__(self) -> None:
        self.running = False
        self.jobs: dict[str, SimpleNamespace] = {}
        self.removed: list[str] = []
        self.shutdown_called = False
        self._next_id = 0

    def start(self) -> None:
        self.running = True

    def shutdown(self, wait: bool = True) -> None:
        self.running = False
        self.shutdown_called = True

    def add_job(self, func, trigger, run_date=None, args=None, **kwargs):
        self._next_id += 1
        job = SimpleNamespace(
            id=f"job-{self._next_id}", func=func, trigger=trigger, run_date=run_date, args=args or []
        )
        self.jobs[job.id] = job
        return job

    def remove_job(self, job_id: str) -> None:
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]
        self.removed.append(job_id)

    async def fire(self, job_id: str) -> None:
        job = self.jobs.pop(job_id)
        await job.func(*job.args)


def test_start_runs_first_cycle_immediately_and_schedules_next() -> None:
    async def scenario():
        tokens = []

        async def run_cycle(token):
            tokens.append(token)

        fake = FakeScheduler()
        scheduler = ContinuousScheduler(run_cycle, scheduler=fake)

        assert scheduler.start() is True
        assert scheduler.start() is False
        await scheduler.wait_idle()

        assert len(tokens) == 1
        assert scheduler.is_active() is True
        assert fake.running is True
        [job] = fake.jobs.values()
        assert job.trigger == "date"
        expected = datetime.now(timezone.utc) + timedelta(seconds=CYCLE_DELAY_SECONDS)
        assert abs((job.run_date - expected).total_seconds()) < 5

        await fake.fire(job.id)
        assert len(tokens) == 2
        assert len(fake.jobs) == 1
        assert scheduler.cycles_started == 2

        assert scheduler.stop() is True
        assert fake.jobs == {}
        assert scheduler.is_active() is False
        assert all(token.cancelled for token in tokens)

    asyncio.run(scenario())


def test_stop_during_cycle_cancels_and_prevents_rescheduling() -> None:
    async def scenario():
        started = asyncio.Event()
        release = asyncio.Event()
        seen = {}

        async def run_cycle(token):
            started.set()
            await release.wait()
            seen["cancelled"] = token.cancelled

        fake = FakeScheduler()
        scheduler = ContinuousScheduler(run_cycle, scheduler=fake)
        scheduler.start()
        await started.wait()

        assert scheduler.stop() is True
        release.set()
        await scheduler.wait_idle()

        assert seen["cancelled"] is True
        assert fake.jobs == {}
        assert scheduler.is_active() is False

    asyncio.run(scenario())


def test_stop_when_stopped_is_a_noop() -> None:
    async def run_cycle(token):
        return None

    scheduler = ContinuousScheduler(run_cycle, scheduler=FakeScheduler())

    assert scheduler.stop() is False


def test_failed_cycle_still_schedules_next() -> None:
    async def scenario():
        async def run_cycle(token):
            raise RuntimeError("browser crashed")

        fake = FakeScheduler()
        scheduler = ContinuousScheduler(run_cycle, scheduler=fake)
        scheduler.start()
        await scheduler.wait_idle()

        assert len(fake.jobs) == 1
        assert scheduler.is_active() is True
        await scheduler.shutdown()
        assert fake.shutdown_called is True
        assert fake.jobs == {}

    asyncio.run(scenario())


def test_restart_during_cycle_never_overlaps_cycles() -> None:
    async def scenario():
        release = asyncio.Event()
        started = asyncio.Event()
        state = {"in_flight": 0, "peak": 0, "runs": 0}

        async def run_cycle(token):
            state["runs"] += 1
            state["in_flight"] += 1
            state["peak"] = max(state["peak"], state["in_flight"])
            started.set()
            try:
                await release.wait()
            finally:
                state["in_flight"] -= 1

        fake = FakeScheduler()
        scheduler = ContinuousScheduler(run_cycle, scheduler=fake)
        scheduler.start()
        await started.wait()
        first_task = scheduler.state.current_task

        scheduler.stop()
        assert scheduler.start() is True
        release.set()
        await asyncio.wait({first_task})
        await scheduler.wait_idle()

        assert state["runs"] == 2
        assert state["peak"] == 1
        assert len(fake.jobs) == 1

    asyncio.run(scenario())
