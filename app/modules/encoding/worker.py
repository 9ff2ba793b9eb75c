"""Encoding worker.

Pulls jobs from the in-memory queue and hands them to the encoding provider.
A job is complete once the provider has accepted it; the video then sits in
ENCODING until the provider callback (or the watchdog) resolves it.
"""

import asyncio
import logging
import uuid
from typing import Callable, Optional

from app.core.clock import utcnow
from app.core.config import settings
from app.core.database import async_session_maker
from app.core.logging import log_error, log_info, log_warning, set_correlation_id
from app.core.metrics import ENCODING_JOB_EVENTS_TOTAL
from app.modules.encoding.events import QueueEvent
from app.modules.encoding.provider import EncodingProvider
from app.modules.encoding.queue import EncodingJob, EncodingJobQueue
from app.modules.video.repository import VideoRepository

logger = logging.getLogger(__name__)


class EncodingWorker:
    """Dispatches queued encoding jobs to the provider.

    Jobs are picked up when the queue announces a new job and by a periodic
    poll, so retried jobs and jobs left behind by a full concurrency ceiling
    are eventually dispatched.
    """

    def __init__(
        self,
        queue: EncodingJobQueue,
        provider: EncodingProvider,
        session_factory=async_session_maker,
        repository_cls=VideoRepository,
        poll_interval: float = 5.0,
        shutdown_wait: float = 60.0,
        clock: Callable = utcnow,
    ):
        self.queue = queue
        self.provider = provider
        self.session_factory = session_factory
        self.repository_cls = repository_cls
        self.poll_interval = poll_interval
        self.shutdown_wait = shutdown_wait
        self._clock = clock

        self.running = False
        self._poll_task: Optional[asyncio.Task] = None
        self._inflight: set[asyncio.Task] = set()
        self._counters = {event: self._count_event(event) for event in QueueEvent}

    @classmethod
    def from_settings(cls, queue: EncodingJobQueue, provider: EncodingProvider) -> "EncodingWorker":
        return cls(
            queue,
            provider,
            poll_interval=settings.ENCODING_POLL_INTERVAL_SECONDS,
            shutdown_wait=settings.ENCODING_SHUTDOWN_WAIT_SECONDS,
        )

    # ==================== Lifecycle ====================

    def attach(self) -> None:
        """Subscribe to queue events."""
        self.queue.events.subscribe(QueueEvent.ADDED, self._on_job_added)
        self.queue.events.subscribe(QueueEvent.FAILED, self._on_job_failed)
        for event, counter in self._counters.items():
            self.queue.events.subscribe(event, counter)

    def start(self) -> None:
        if self.running:
            log_warning(logger, "Encoding worker already running")
            return
        if not self.provider.is_available():
            log_warning(logger, "Encoding provider not configured, submissions will fail")

        self.attach()
        self.running = True
        self._poll_task = asyncio.create_task(self._poll_loop(), name="encoding-worker-poll")
        log_info(logger, "Encoding worker started", max_concurrent=self.queue.max_concurrent)
        self.kick()

    async def stop(self) -> None:
        """Stop polling and wait (bounded) for in-flight dispatches."""
        if not self.running:
            return
        self.running = False

        if self._poll_task is not None:
            self._poll_task.cancel()
            await asyncio.gather(self._poll_task, return_exceptions=True)
            self._poll_task = None

        self.queue.events.unsubscribe(QueueEvent.ADDED, self._on_job_added)
        self.queue.events.unsubscribe(QueueEvent.FAILED, self._on_job_failed)
        for event, counter in self._counters.items():
            self.queue.events.unsubscribe(event, counter)

        if self._inflight:
            log_info(logger, "Waiting for encoding dispatches to finish", pending=len(self._inflight))
            _, still_running = await asyncio.wait(self._inflight, timeout=self.shutdown_wait)
            if still_running:
                log_warning(logger, "Shutdown with dispatches still running", pending=len(still_running))

        log_info(logger, "Encoding worker stopped")

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            self.kick()

    def kick(self) -> None:
        """Start dispatches for as many jobs as the ceiling allows."""
        if not self.running:
            return
        while True:
            job = self.queue.get_next_job()
            if job is None:
                return
            task = asyncio.create_task(self.process_job(job))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    # ==================== Queue events ====================

    def _on_job_added(self, job: EncodingJob) -> None:
        self.kick()

    def _on_job_failed(self, job: EncodingJob) -> None:
        task = asyncio.create_task(self.record_permanent_failure(job))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    @staticmethod
    def _count_event(event: QueueEvent):
        def _inc(job: EncodingJob) -> None:
            ENCODING_JOB_EVENTS_TOTAL.labels(event=event.value).inc()
        return _inc

    # ==================== Job processing ====================

    async def process_next_job(self) -> bool:
        """Dispatch the next job inline. Returns False when none could be taken."""
        job = self.queue.get_next_job()
        if job is None:
            return False
        await self.process_job(job)
        return True

    async def process_job(self, job: EncodingJob) -> None:
        """Submit one dispatched job and report the outcome to the queue."""
        set_correlation_id(job.id)
        video_id = uuid.UUID(job.video_id)
        log_info(logger, "Processing encoding job", job_id=job.id, video_id=job.video_id, attempt=job.attempts)

        try:
            async with self.session_factory() as session:
                repo = self.repository_cls(session)
                started = await repo.mark_encoding_started(video_id, self._clock())
                await session.commit()
                if not started:
                    # Already READY/FAILED or deleted: nothing left to encode
                    log_info(logger, "Video no longer awaiting encode, skipping", video_id=job.video_id)
                    self.queue.complete_job(job.id)
                    return

                provider_job_id = await self.provider.submit(job.video_id, job.input_blob_name)
                await repo.set_provider_job_id(video_id, provider_job_id)
                await session.commit()
        except Exception as e:
            log_error(logger, "Encoding job failed", exception=e, job_id=job.id, video_id=job.video_id)
            self.queue.fail_job(job.id, str(e), retry=True)
        else:
            self.queue.complete_job(job.id)
        finally:
            if self.running and self.queue.has_available_jobs():
                self.kick()

    async def record_permanent_failure(self, job: EncodingJob) -> None:
        """Persist a terminally failed job as FAILED on the video."""
        try:
            async with self.session_factory() as session:
                repo = self.repository_cls(session)
                await repo.mark_encoding_failed(
                    uuid.UUID(job.video_id),
                    job.error or "Encoding failed",
                    self._clock(),
                )
                await session.commit()
        except Exception as e:
            log_error(logger, "Failed to record encoding failure", exception=e, video_id=job.video_id)


async def enqueue_video(
    queue: EncodingJobQueue,
    video_id: uuid.UUID,
    original_blob_name: str,
    session_factory=async_session_maker,
    priority: Optional[int] = None,
    repository_cls=VideoRepository,
) -> Optional[str]:
    """Mark a video PENDING and admit it to the queue.

    Returns None when the video already has a live job.
    """
    if queue.has_live_job(video_id):
        log_info(logger, "Video already queued for encoding", video_id=str(video_id))
        return None

    async with session_factory() as session:
        repo = repository_cls(session)
        if not await repo.mark_pending(video_id, original_blob_name):
            raise LookupError(f"Video {video_id} not found")
        await session.commit()

    if priority is None:
        priority = settings.ENCODING_DEFAULT_PRIORITY
    return queue.add_job(video_id, original_blob_name, priority)
