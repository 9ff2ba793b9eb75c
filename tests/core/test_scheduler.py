"""Tests for periodic task scheduling and its no-overlap guards."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from app.core.scheduler import (
    PeriodicScheduler,
    PeriodicTask,
    TaskAlreadyRunning,
    redis_task_lock,
)


class TestPeriodicTask:
    @pytest.mark.asyncio
    async def test_run_once_returns_result(self):
        task = PeriodicTask("answer", 60, AsyncMock(return_value=42))

        assert await task.run_once() == 42
        assert task.last_result == 42
        assert task.is_running is False

    @pytest.mark.asyncio
    async def test_overlapping_run_is_rejected(self):
        release = asyncio.Event()

        async def slow():
            await release.wait()
            return "done"

        task = PeriodicTask("slow", 60, slow)
        first = asyncio.create_task(task.run_once())
        await asyncio.sleep(0)

        assert task.is_running is True
        with pytest.raises(TaskAlreadyRunning):
            await task.run_once()

        release.set()
        assert await first == "done"
        assert task.is_running is False

    @pytest.mark.asyncio
    async def test_tick_skips_while_running(self):
        release = asyncio.Event()
        calls = []

        async def slow():
            calls.append(1)
            await release.wait()

        task = PeriodicTask("slow", 60, slow)
        first = asyncio.create_task(task.tick())
        await asyncio.sleep(0)

        await task.tick()
        release.set()
        await first

        assert calls == [1]

    @pytest.mark.asyncio
    async def test_tick_swallows_task_errors(self):
        task = PeriodicTask("broken", 60, AsyncMock(side_effect=RuntimeError("boom")))

        await task.tick()

        assert task.is_running is False

    @pytest.mark.asyncio
    async def test_run_once_propagates_task_errors(self):
        task = PeriodicTask("broken", 60, AsyncMock(side_effect=RuntimeError("boom")))

        with pytest.raises(RuntimeError):
            await task.run_once()

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            PeriodicTask("bad", 0, AsyncMock())


class TestPeriodicScheduler:
    @pytest.mark.asyncio
    async def test_slow_task_never_overlaps_itself(self):
        active = 0
        max_active = 0
        runs = 0

        async def slow():
            nonlocal active, max_active, runs
            active += 1
            runs += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.05)
            active -= 1

        scheduler = PeriodicScheduler()
        scheduler.add("slow", 0.01, slow, run_on_start=True)
        scheduler.start()
        await asyncio.sleep(0.2)
        await scheduler.stop()

        assert runs >= 2
        assert max_active == 1

    @pytest.mark.asyncio
    async def test_stop_waits_for_inflight_run(self):
        finished = []

        async def work():
            await asyncio.sleep(0.05)
            finished.append(True)

        scheduler = PeriodicScheduler()
        scheduler.add("work", 60, work, run_on_start=True)
        scheduler.start()
        await asyncio.sleep(0.01)
        await scheduler.stop()

        assert finished == [True]

    def test_duplicate_names_rejected(self):
        scheduler = PeriodicScheduler()
        scheduler.add("job", 10, AsyncMock())

        with pytest.raises(ValueError):
            scheduler.add("job", 20, AsyncMock())

    def test_lookup_by_name(self):
        scheduler = PeriodicScheduler()
        task = scheduler.add("job", 10, AsyncMock())

        assert scheduler.get("job") is task
        assert scheduler.get("missing") is None
        assert scheduler.tasks == [task]


class TestRedisTaskLock:
    @pytest.mark.asyncio
    async def test_acquire_and_release(self):
        client = AsyncMock()
        client.set.return_value = True

        async with redis_task_lock(client, "publish", 60) as acquired:
            assert acquired is True

        key, token = client.set.await_args.args
        assert key == "periodic-task-lock:publish"
        assert client.set.await_args.kwargs == {"nx": True, "ex": 60}
        eval_args = client.eval.await_args.args
        assert eval_args[1:] == (1, key, token)

    @pytest.mark.asyncio
    async def test_held_lock_is_not_released(self):
        client = AsyncMock()
        client.set.return_value = None

        async with redis_task_lock(client, "publish", 60) as acquired:
            assert acquired is False

        client.eval.assert_not_awaited()
