"""GC Scheduler - runs cleanup cycles on an interval or on demand."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from dinein.services.gc.base import GCResult, GCTask
from dinein.utils.datetime import utcnow

if TYPE_CHECKING:
    from dinein.config import GCConfig

logger = structlog.get_logger()

# Yields the tasks for one cycle, bound to resources that live for that cycle
TaskFactory = Callable[[], AbstractAsyncContextManager[list[GCTask]]]


class GCScheduler:
    """Runs GC cycles.

    Each cycle opens the task factory, runs its tasks one after another and
    closes it again, so tasks never share a database session across cycles.
    A failing task is recorded in its GCResult and the cycle moves on.

    Usage:
        scheduler = GCScheduler(task_factory, config=settings.gc)
        await scheduler.run_once()   # manual cycle
        await scheduler.start()      # periodic cycles
        await scheduler.stop()       # lets an in-flight cycle finish
    """

    def __init__(self, task_factory: TaskFactory, config: "GCConfig") -> None:
        self._task_factory = task_factory
        self._config = config
        self._log = logger.bind(service="gc_scheduler")

        self._loop_task: asyncio.Task | None = None
        self._stop_requested = asyncio.Event()

        # Manual and periodic cycles never overlap
        self._cycle_lock = asyncio.Lock()

        self.last_cycle_at: datetime | None = None
        self.last_results: list[GCResult] = []

    @property
    def is_running(self) -> bool:
        """Whether the periodic loop is active."""
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def is_cycle_running(self) -> bool:
        return self._cycle_lock.locked()

    async def run_once(self) -> list[GCResult]:
        """Run one cycle now, queueing behind a cycle already in progress."""
        async with self._cycle_lock:
            results = await self._run_cycle()
        self.last_cycle_at = utcnow()
        self.last_results = results
        return results

    async def _run_cycle(self) -> list[GCResult]:
        self._log.info("gc.cycle.start")

        async with self._task_factory() as tasks:
            results = [await self._run_task(task) for task in tasks]

        self._log.info(
            "gc.cycle.complete",
            tasks=len(results),
            total_cleaned=sum(r.cleaned_count for r in results),
            total_errors=sum(len(r.errors) for r in results),
        )
        return results

    async def _run_task(self, task: GCTask) -> GCResult:
        try:
            result = await task.run()
        except Exception as e:
            self._log.exception("gc.task.failed", task=task.name, error=str(e))
            result = GCResult()
            result.add_error(f"Task failed: {e}")

        result.task_name = task.name
        for error in result.errors:
            self._log.warning("gc.task.error", task=task.name, error=error)
        self._log.info(
            "gc.task.complete",
            task=task.name,
            cleaned=result.cleaned_count,
            errors=len(result.errors),
        )
        return result

    async def start(self) -> None:
        """Start periodic cycles, the first one immediately."""
        if self.is_running:
            self._log.warning("gc.scheduler.already_running")
            return

        self._stop_requested.clear()
        self._loop_task = asyncio.create_task(self._loop())
        self._log.info(
            "gc.scheduler.started",
            interval_seconds=self._config.interval_seconds,
        )

    async def stop(self) -> None:
        """Stop periodic cycles.

        The wait between cycles is interrupted; a cycle that has already
        started runs to completion first.
        """
        if self._loop_task is None:
            return

        self._log.info("gc.scheduler.stopping")
        self._stop_requested.set()
        await self._loop_task
        self._loop_task = None
        self._log.info("gc.scheduler.stopped")

    async def _loop(self) -> None:
        while not self._stop_requested.is_set():
            try:
                await self.run_once()
            except Exception as e:
                self._log.exception("gc.scheduler.cycle_error", error=str(e))

            try:
                await asyncio.wait_for(
                    self._stop_requested.wait(),
                    timeout=self._config.interval_seconds,
                )
            except TimeoutError:
                continue
