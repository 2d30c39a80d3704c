"""Continuous search: run a crawl cycle, wait, run the next one."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from gamescout.logging_config import get_logger
from gamescout.models import CancelToken

LOGGER = get_logger(__name__)

CYCLE_DELAY_SECONDS = 300

CycleRunner = Callable[[CancelToken], Awaitable[Any]]


@dataclass
class RunState:
    """Lifecycle flags for one scheduler; cleared together by ``reset``."""

    running: bool = False
    starting: bool = False
    cancel_token: CancelToken | None = None
    next_job_id: str | None = None
    current_task: asyncio.Task | None = None

    def reset(self) -> None:
        self.running = False
        self.starting = False
        self.cancel_token = None
        self.next_job_id = None


class ContinuousScheduler:
    """Runs ``run_cycle`` immediately, then again ``delay_seconds`` after each completion.

    The delay is counted from the end of a cycle, so a slow cycle never overlaps
    the next one. ``start``/``stop`` must be called from the event loop thread.
    """

    def __init__(
        self,
        run_cycle: CycleRunner,
        *,
        delay_seconds: float = CYCLE_DELAY_SECONDS,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self.delay_seconds = delay_seconds
        self.state = RunState()
        self.cycles_started = 0
        self._run_cycle = run_cycle
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._cycle_lock = asyncio.Lock()

    def is_active(self) -> bool:
        return self.state.running

    def start(self) -> bool:
        state = self.state
        if state.running or state.starting:
            LOGGER.warning("Continuous search is already running")
            return False

        state.starting = True
        try:
            if not self._scheduler.running:
                self._scheduler.start()
            token = CancelToken()
            state.cancel_token = token
            state.running = True
            state.current_task = asyncio.get_running_loop().create_task(self._run(token))
        except Exception:
            state.reset()
            raise
        finally:
            state.starting = False

        LOGGER.info("Continuous search started")
        return True

    def stop(self) -> bool:
        state = self.state
        if not state.running and not state.starting:
            LOGGER.warning("Continuous search is not running")
            return False

        if state.cancel_token is not None:
            state.cancel_token.cancel()
        if state.next_job_id is not None:
            try:
                self._scheduler.remove_job(state.next_job_id)
            except JobLookupError:
                LOGGER.debug("Next cycle job %s already gone", state.next_job_id)
        state.reset()
        LOGGER.info("Continuous search stopped")
        return True

    async def wait_idle(self) -> None:
        """Wait until no cycle is in flight."""

        task = self.state.current_task
        if task is not None and not task.done():
            await asyncio.wait({task})

    async def shutdown(self) -> None:
        if self.is_active():
            self.stop()
        await self.wait_idle()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    async def _run(self, token: CancelToken) -> None:
        async with self._cycle_lock:
            if token.cancelled or self.state.cancel_token is not token:
                return
            self.cycles_started += 1
            LOGGER.info("Starting crawl cycle #%d", self.cycles_started)
            try:
                await self._run_cycle(token)
            except Exception:
                LOGGER.exception("Crawl cycle failed")
        self._schedule_next(token)

    async def _scheduled_cycle(self, token: CancelToken) -> None:
        self.state.next_job_id = None
        self.state.current_task = asyncio.current_task()
        await self._run(token)

    def _schedule_next(self, token: CancelToken) -> None:
        state = self.state
        if not state.running or state.cancel_token is not token:
            LOGGER.info("Continuous search stopped; no further cycles scheduled")
            return
        run_date = datetime.now(timezone.utc) + timedelta(seconds=self.delay_seconds)
        job = self._scheduler.add_job(
            self._scheduled_cycle,
            "date",
            run_date=run_date,
            args=[token],
            misfire_grace_time=None,
        )
        state.next_job_id = job.id
        LOGGER.info("Next crawl cycle scheduled at %s", run_date.isoformat())
