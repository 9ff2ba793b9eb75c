"""Process-wide encoding components.

The queue lives in memory, so exactly one instance per process owns it. The
FastAPI lifespan builds an ``EncodingRuntime`` on startup and the routers
reach it through ``get_runtime``.
"""

import logging
from datetime import timedelta
from typing import Optional

from app.core.config import settings
from app.core.logging import log_info
from app.core.metrics import record_queue_stats
from app.core.scheduler import PeriodicScheduler
from app.modules.encoding.provider import get_default_provider
from app.modules.encoding.queue import EncodingJobQueue
from app.modules.encoding.watchdog import EncodingWatchdog
from app.modules.encoding.worker import EncodingWorker
from app.modules.publishing.service import ScheduledPublishCoordinator

logger = logging.getLogger(__name__)

WATCHDOG_TASK = "encoding-watchdog"
QUEUE_CLEANUP_TASK = "encoding-queue-cleanup"
QUEUE_STATS_TASK = "encoding-queue-stats"
PUBLISH_TASK = "publish-due-videos"
DEMOTE_TASK = "demote-stuck-schedules"


class EncodingRuntime:
    """Holds the queue and everything scheduled around it."""

    def __init__(
        self,
        queue: EncodingJobQueue,
        watchdog: EncodingWatchdog,
        scheduler: PeriodicScheduler,
        worker: Optional[EncodingWorker] = None,
    ):
        self.queue = queue
        self.watchdog = watchdog
        self.scheduler = scheduler
        self.worker = worker

    @classmethod
    def from_settings(cls) -> "EncodingRuntime":
        queue = EncodingJobQueue(
            max_concurrent=settings.ENCODING_MAX_CONCURRENT,
            max_attempts=settings.ENCODING_MAX_ATTEMPTS,
            retention=timedelta(hours=settings.ENCODING_JOB_RETENTION_HOURS),
        )
        watchdog = EncodingWatchdog.from_settings(queue)
        worker = None
        if settings.ENCODING_WORKER_ENABLED:
            worker = EncodingWorker.from_settings(queue, get_default_provider())

        runtime = cls(queue, watchdog, PeriodicScheduler(), worker)
        runtime.register_tasks()
        return runtime

    def register_tasks(self) -> None:
        self.scheduler.add(
            WATCHDOG_TASK,
            settings.WATCHDOG_INTERVAL_SECONDS,
            self.watchdog.run_once,
            run_on_start=True,
        )
        self.scheduler.add(
            QUEUE_CLEANUP_TASK,
            settings.QUEUE_CLEANUP_INTERVAL_SECONDS,
            self.cleanup_queue,
        )
        self.scheduler.add(
            QUEUE_STATS_TASK,
            settings.QUEUE_STATS_INTERVAL_SECONDS,
            self.report_queue_stats,
        )
        if settings.PUBLISH_IN_PROCESS:
            coordinator = ScheduledPublishCoordinator()
            self.scheduler.add(PUBLISH_TASK, settings.PUBLISH_INTERVAL_SECONDS, coordinator.publish_due_videos)
            self.scheduler.add(
                DEMOTE_TASK,
                settings.STUCK_SCHEDULE_INTERVAL_SECONDS,
                coordinator.demote_stuck_schedules,
            )

    async def cleanup_queue(self) -> int:
        return self.queue.cleanup()

    async def report_queue_stats(self) -> None:
        stats = self.queue.get_stats()
        record_queue_stats(stats)
        log_info(
            logger,
            "Encoding queue stats",
            pending=stats.pending,
            processing=stats.processing,
            completed=stats.completed,
            failed=stats.failed,
        )

    async def run_watchdog(self):
        """Run the watchdog now, through the same no-overlap guard as the schedule."""
        return await self.scheduler.get(WATCHDOG_TASK).run_once()

    async def start(self) -> None:
        if self.worker is not None:
            self.worker.start()
        self.scheduler.start()
        log_info(logger, "Encoding runtime started", worker_enabled=self.worker is not None)

    async def stop(self) -> None:
        await self.scheduler.stop()
        if self.worker is not None:
            await self.worker.stop()
        log_info(logger, "Encoding runtime stopped")


_runtime: Optional[EncodingRuntime] = None


def set_runtime(runtime: Optional[EncodingRuntime]) -> None:
    global _runtime
    _runtime = runtime


def get_runtime() -> EncodingRuntime:
    """FastAPI dependency returning the process's encoding runtime."""
    if _runtime is None:
        raise RuntimeError("Encoding runtime not started")
    return _runtime
