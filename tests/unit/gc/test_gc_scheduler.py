"""Unit tests for GC scheduler.

Tests run_once ordering, error isolation, per-cycle task factories, and
background loop start/stop.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import pytest

from dinein.config import GCConfig, GCTaskConfig
from dinein.services.gc.base import GCResult, GCTask
from dinein.services.gc.scheduler import GCScheduler


class FakeGCTask(GCTask):
    """Fake GC task for testing."""

    def __init__(self, name: str, cleaned: int = 0, errors: list[str] | None = None):
        self._name = name
        self._cleaned = cleaned
        self._errors = errors or []
        self.run_count = 0

    @property
    def name(self) -> str:
        return self._name

    async def run(self) -> GCResult:
        self.run_count += 1
        result = GCResult(task_name=self._name, cleaned_count=self._cleaned)
        for error in self._errors:
            result.add_error(error)
        return result


class RaisingGCTask(GCTask):
    """GC task that raises an exception."""

    def __init__(self, name: str, error: Exception):
        self._name = name
        self._error = error
        self.run_count = 0

    @property
    def name(self) -> str:
        return self._name

    async def run(self) -> GCResult:
        self.run_count += 1
        raise self._error


def static_factory(*tasks: GCTask):
    """Task factory yielding the same task list every cycle, counting cycles."""

    @asynccontextmanager
    async def factory():
        factory.opened += 1
        try:
            yield list(tasks)
        finally:
            factory.closed += 1

    factory.opened = 0
    factory.closed = 0
    return factory


@pytest.fixture
def gc_config():
    """Create a GC config for testing."""
    return GCConfig(
        enabled=True,
        run_on_startup=False,
        interval_seconds=1,
        expired_api_key=GCTaskConfig(enabled=True),
    )


class TestRunOnce:
    async def test_executes_all_tasks_in_order(self, gc_config):
        task1 = FakeGCTask("task1", cleaned=2)
        task2 = FakeGCTask("task2", cleaned=3)
        scheduler = GCScheduler(static_factory(task1, task2), gc_config)

        results = await scheduler.run_once()

        assert [r.task_name for r in results] == ["task1", "task2"]
        assert [r.cleaned_count for r in results] == [2, 3]
        assert task1.run_count == 1
        assert task2.run_count == 1

    async def test_raising_task_does_not_stop_cycle(self, gc_config):
        bad = RaisingGCTask("bad", RuntimeError("boom"))
        good = FakeGCTask("good", cleaned=1)
        scheduler = GCScheduler(static_factory(bad, good), gc_config)

        results = await scheduler.run_once()

        assert results[0].task_name == "bad"
        assert not results[0].success
        assert "boom" in results[0].errors[0]
        assert results[1].success
        assert good.run_count == 1

    async def test_reported_errors_kept(self, gc_config):
        task = FakeGCTask("partial", cleaned=1, errors=["one failed"])
        scheduler = GCScheduler(static_factory(task), gc_config)

        [result] = await scheduler.run_once()

        assert result.cleaned_count == 1
        assert result.errors == ["one failed"]

    async def test_factory_opened_and_closed_per_cycle(self, gc_config):
        factory = static_factory(FakeGCTask("t"))
        scheduler = GCScheduler(factory, gc_config)

        await scheduler.run_once()
        await scheduler.run_once()

        assert factory.opened == 2
        assert factory.closed == 2

    async def test_empty_cycle(self, gc_config):
        scheduler = GCScheduler(static_factory(), gc_config)

        assert await scheduler.run_once() == []

    async def test_concurrent_runs_serialised(self, gc_config):
        started = asyncio.Event()
        release = asyncio.Event()

        class BlockingTask(FakeGCTask):
            async def run(self) -> GCResult:
                started.set()
                await release.wait()
                return await super().run()

        task = BlockingTask("blocking")
        scheduler = GCScheduler(static_factory(task), gc_config)

        first = asyncio.create_task(scheduler.run_once())
        await started.wait()
        assert scheduler.is_cycle_running

        second = asyncio.create_task(scheduler.run_once())
        await asyncio.sleep(0)
        assert task.run_count == 0

        release.set()
        await asyncio.gather(first, second)
        assert task.run_count == 2
        assert not scheduler.is_cycle_running


class TestBackgroundLoop:
    async def test_start_and_stop(self, gc_config):
        task = FakeGCTask("loop")
        scheduler = GCScheduler(static_factory(task), gc_config)

        await scheduler.start()
        assert scheduler.is_running
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert not scheduler.is_running
        assert task.run_count >= 1

    async def test_start_twice_is_noop(self, gc_config):
        scheduler = GCScheduler(static_factory(), gc_config)

        await scheduler.start()
        first_task = scheduler._loop_task
        await scheduler.start()

        assert scheduler._loop_task is first_task
        await scheduler.stop()

    async def test_stop_without_start(self, gc_config):
        scheduler = GCScheduler(static_factory(), gc_config)

        await scheduler.stop()

        assert not scheduler.is_running

    async def test_factory_failure_does_not_kill_loop(self, gc_config):
        calls = 0

        @asynccontextmanager
        async def failing_factory():
            nonlocal calls
            calls += 1
            raise RuntimeError("no database")
            yield []  # pragma: no cover

        gc_config.interval_seconds = 0
        scheduler = GCScheduler(failing_factory, gc_config)

        await scheduler.start()
        await asyncio.sleep(0.01)
        await scheduler.stop()

        assert calls >= 2

    async def test_stop_lets_running_cycle_finish(self, gc_config):
        started = asyncio.Event()
        release = asyncio.Event()

        class SlowTask(FakeGCTask):
            async def run(self) -> GCResult:
                started.set()
                await release.wait()
                return await super().run()

        task = SlowTask("slow", cleaned=4)
        scheduler = GCScheduler(static_factory(task), gc_config)

        await scheduler.start()
        await started.wait()
        stopping = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0)
        assert not stopping.done()

        release.set()
        await stopping

        assert task.run_count == 1
        assert scheduler.last_results[0].cleaned_count == 4
        assert scheduler.last_cycle_at is not None

    async def test_restart_after_stop(self, gc_config):
        task = FakeGCTask("again")
        scheduler = GCScheduler(static_factory(task), gc_config)

        await scheduler.start()
        await asyncio.sleep(0.01)
        await scheduler.stop()
        await scheduler.start()
        await asyncio.sleep(0.01)
        await scheduler.stop()

        assert task.run_count == 2
