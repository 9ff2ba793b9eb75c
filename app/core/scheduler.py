"""Periodic task scheduling.

Two guards keep a periodic task from running concurrently with itself:

* ``PeriodicTask`` / ``PeriodicScheduler`` run coroutines on a fixed interval
  inside the current event loop. A tick that arrives while the previous run
  of the same task is still in flight is skipped.
* ``redis_task_lock`` guards tasks fired by Celery beat, where runs may land
  on different worker processes.
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from app.core.logging import log_error, log_info, log_warning, set_correlation_id
from app.core.metrics import PERIODIC_TASK_DURATION_SECONDS, PERIODIC_TASK_RUNS_TOTAL

logger = logging.getLogger(__name__)

TaskFunc = Callable[[], Awaitable[Any]]

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class TaskAlreadyRunning(Exception):
    """Raised when a guarded task is triggered while a run is in flight."""


class PeriodicTask:
    """A coroutine function run on a fixed interval, never overlapping itself."""

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        func: TaskFunc,
        run_on_start: bool = False,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval_seconds = interval_seconds
        self.func = func
        self.run_on_start = run_on_start
        self._running = False
        self.last_started_at: Optional[float] = None
        self.last_result: Any = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_once(self) -> Any:
        """Run the task body once.

        Raises:
            TaskAlreadyRunning: If a previous run is still in flight
        """
        if self._running:
            raise TaskAlreadyRunning(self.name)

        self._running = True
        self.last_started_at = time.monotonic()
        set_correlation_id(f"{self.name}-{uuid.uuid4().hex[:12]}")
        try:
            with PERIODIC_TASK_DURATION_SECONDS.labels(task=self.name).time():
                result = await self.func()
            PERIODIC_TASK_RUNS_TOTAL.labels(task=self.name, result="success").inc()
            self.last_result = result
            return result
        except Exception:
            PERIODIC_TASK_RUNS_TOTAL.labels(task=self.name, result="error").inc()
            raise
        finally:
            self._running = False

    async def tick(self) -> None:
        """Scheduled invocation: skip if running, log and swallow task errors."""
        try:
            await self.run_once()
        except TaskAlreadyRunning:
            PERIODIC_TASK_RUNS_TOTAL.labels(task=self.name, result="skipped").inc()
            log_warning(
                logger,
                "Periodic task still running, skipping tick",
                task=self.name,
            )
        except Exception as e:
            log_error(logger, "Periodic task failed", exception=e, task=self.name)


class PeriodicScheduler:
    """Runs registered ``PeriodicTask`` objects on the running event loop.

    Ticks are fired on schedule regardless of how long the previous run
    takes; overlap is prevented by ``PeriodicTask.tick``.
    """

    def __init__(self):
        self._tasks: dict[str, PeriodicTask] = {}
        self._loops: list[asyncio.Task] = []
        self._inflight: set[asyncio.Task] = set()
        self._started = False

    def add(
        self,
        name: str,
        interval_seconds: float,
        func: TaskFunc,
        run_on_start: bool = False,
    ) -> PeriodicTask:
        """Register a task. Must be called before ``start``."""
        if name in self._tasks:
            raise ValueError(f"Periodic task already registered: {name}")
        task = PeriodicTask(name, interval_seconds, func, run_on_start=run_on_start)
        self._tasks[name] = task
        return task

    def get(self, name: str) -> Optional[PeriodicTask]:
        return self._tasks.get(name)

    @property
    def tasks(self) -> list[PeriodicTask]:
        return list(self._tasks.values())

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        for task in self._tasks.values():
            self._loops.append(asyncio.create_task(self._loop(task), name=f"periodic:{task.name}"))
        log_info(
            logger,
            "Periodic scheduler started",
            tasks={t.name: t.interval_seconds for t in self._tasks.values()},
        )

    async def stop(self) -> None:
        """Cancel the schedule loops and wait for in-flight runs to finish."""
        if not self._started:
            return
        self._started = False
        for loop in self._loops:
            loop.cancel()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops.clear()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        log_info(logger, "Periodic scheduler stopped")

    def _fire(self, task: PeriodicTask) -> None:
        run = asyncio.create_task(task.tick())
        self._inflight.add(run)
        run.add_done_callback(self._inflight.discard)

    async def _loop(self, task: PeriodicTask) -> None:
        if task.run_on_start:
            self._fire(task)
        while True:
            await asyncio.sleep(task.interval_seconds)
            self._fire(task)


@asynccontextmanager
async def redis_task_lock(redis_client, name: str, ttl_seconds: int) -> AsyncIterator[bool]:
    """Cross-process "already running" guard backed by Redis ``SET NX EX``.

    Yields True when the lock was acquired. The lock expires after
    ``ttl_seconds`` so a crashed holder cannot block the task forever.
    """
    key = f"periodic-task-lock:{name}"
    token = uuid.uuid4().hex
    acquired = bool(await redis_client.set(key, token, nx=True, ex=ttl_seconds))
    try:
        yield acquired
    finally:
        if acquired:
            await redis_client.eval(_RELEASE_SCRIPT, 1, key, token)
