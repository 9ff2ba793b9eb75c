"""In-memory encoding job queue.

Tracks encoding work admitted by the upload path and hands it to the worker
while respecting a concurrency ceiling. The queue is ephemeral: jobs are lost
when the process restarts, and the encoding watchdog re-admits work from the
durable video record. The queue never talks to storage or the database.

All transitions are synchronous and contain no awaits, so within a single
event loop they never interleave.
"""

import heapq
import itertools
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from app.core.clock import utcnow
from app.core.logging import log_info, log_warning
from app.modules.encoding.events import QueueEvent, QueueEventBus

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 10
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MAX_CONCURRENT = 2
DEFAULT_RETENTION = timedelta(hours=24)


class JobStatus(str, Enum):
    """Status of an in-memory encoding job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


LIVE_STATUSES = frozenset((JobStatus.PENDING, JobStatus.PROCESSING))
TERMINAL_STATUSES = frozenset((JobStatus.COMPLETED, JobStatus.FAILED))


@dataclass
class EncodingJob:
    """A unit of encoding work for one video."""

    id: str
    video_id: str
    input_blob_name: str
    priority: int = DEFAULT_PRIORITY
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES


@dataclass
class QueueStats:
    """Job counts by status. The four buckets always sum to ``total``."""

    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0


class EncodingJobQueue:
    """Priority-ordered, bounded-concurrency encoding job tracker.

    Lower ``priority`` values are dispatched first; equal priorities are
    dispatched in insertion order. A retried job is re-inserted behind jobs of
    the same priority that are already waiting.
    """

    def __init__(
        self,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retention: timedelta = DEFAULT_RETENTION,
        events: Optional[QueueEventBus] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_concurrent = max_concurrent
        self.max_attempts = max_attempts
        self.retention = retention
        self.events = events or QueueEventBus()
        self._clock = clock

        self._jobs: dict[str, EncodingJob] = {}
        self._by_video: dict[str, str] = {}
        self._pending: list[tuple[int, int, str]] = []
        self._processing: set[str] = set()
        self._sequence = itertools.count()

    def _push_pending(self, job: EncodingJob) -> None:
        heapq.heappush(self._pending, (job.priority, next(self._sequence), job.id))

    def add_job(
        self,
        video_id,
        input_blob_name: str,
        priority: int = DEFAULT_PRIORITY,
    ) -> str:
        """Admit a new job in ``pending`` and return its id.

        Duplicates are not rejected here; callers check ``has_live_job`` or
        ``get_job_by_video_id`` first.
        """
        video_id = str(video_id)
        job_id = f"job-{video_id}-{uuid.uuid4().hex[:12]}"
        job = EncodingJob(
            id=job_id,
            video_id=video_id,
            input_blob_name=input_blob_name,
            priority=priority,
            max_attempts=self.max_attempts,
            created_at=self._clock(),
        )
        self._jobs[job_id] = job
        self._by_video[video_id] = job_id
        self._push_pending(job)

        log_info(
            logger,
            "Encoding job added to queue",
            job_id=job_id,
            video_id=video_id,
            priority=priority,
            queue_length=len(self._pending),
        )
        self.events.publish(QueueEvent.ADDED, job)
        return job_id

    def get_next_job(self) -> Optional[EncodingJob]:
        """Dispatch the most urgent pending job, or None.

        Returns None when the concurrency ceiling is reached or nothing is
        pending.
        """
        if len(self._processing) >= self.max_concurrent:
            return None

        while self._pending:
            _, _, job_id = heapq.heappop(self._pending)
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.PENDING:
                continue

            job.status = JobStatus.PROCESSING
            job.started_at = self._clock()
            job.attempts += 1
            self._processing.add(job_id)

            log_info(
                logger,
                "Job dequeued for processing",
                job_id=job_id,
                video_id=job.video_id,
                attempt=job.attempts,
            )
            return job

        return None

    def complete_job(self, job_id: str) -> None:
        """Mark a job completed. Unknown ids are ignored."""
        job = self._jobs.get(job_id)
        if job is None:
            return

        job.status = JobStatus.COMPLETED
        self._processing.discard(job_id)

        log_info(logger, "Encoding job completed", job_id=job_id, video_id=job.video_id)
        self.events.publish(QueueEvent.COMPLETED, job)

    def fail_job(self, job_id: str, error: str, retry: bool = True) -> None:
        """Record a failed attempt.

        The job returns to ``pending`` when ``retry`` is set and attempts
        remain; otherwise it becomes terminally ``failed``. Unknown ids are
        ignored.
        """
        job = self._jobs.get(job_id)
        if job is None:
            return

        self._processing.discard(job_id)
        job.error = error

        if retry and job.attempts < job.max_attempts:
            job.status = JobStatus.PENDING
            self._push_pending(job)
            log_warning(
                logger,
                "Encoding job failed, will retry",
                job_id=job_id,
                video_id=job.video_id,
                attempt=job.attempts,
                error=error,
            )
            self.events.publish(QueueEvent.RETRY, job)
        else:
            job.status = JobStatus.FAILED
            logger.error(
                "Encoding job permanently failed",
                extra={
                    "job_id": job_id,
                    "video_id": job.video_id,
                    "attempts": job.attempts,
                    "error": error,
                },
            )
            self.events.publish(QueueEvent.FAILED, job)

    def get_job(self, job_id: str) -> Optional[EncodingJob]:
        return self._jobs.get(job_id)

    def get_job_by_video_id(self, video_id) -> Optional[EncodingJob]:
        """Most recently added job for a video, in any status."""
        job_id = self._by_video.get(str(video_id))
        if job_id is None:
            return None
        return self._jobs.get(job_id)

    def has_live_job(self, video_id) -> bool:
        """True if the video has a pending or processing job."""
        job = self.get_job_by_video_id(video_id)
        return job is not None and job.is_live

    def get_stats(self) -> QueueStats:
        stats = QueueStats(total=len(self._jobs))
        for job in self._jobs.values():
            if job.status == JobStatus.PENDING:
                stats.pending += 1
            elif job.status == JobStatus.PROCESSING:
                stats.processing += 1
            elif job.status == JobStatus.COMPLETED:
                stats.completed += 1
            elif job.status == JobStatus.FAILED:
                stats.failed += 1
        return stats

    def has_available_jobs(self) -> bool:
        """True if a pending job exists and a processing slot is free."""
        return bool(self._pending) and len(self._processing) < self.max_concurrent

    @property
    def processing_count(self) -> int:
        return len(self._processing)

    def cleanup(self, now: Optional[datetime] = None) -> int:
        """Evict completed/failed jobs created before the retention window.

        Returns:
            Number of jobs evicted
        """
        cutoff = (now or self._clock()) - self.retention
        expired = [
            job_id
            for job_id, job in self._jobs.items()
            if job.status in TERMINAL_STATUSES and job.created_at < cutoff
        ]
        for job_id in expired:
            job = self._jobs.pop(job_id)
            if self._by_video.get(job.video_id) == job_id:
                del self._by_video[job.video_id]

        if expired:
            log_info(logger, "Cleaned up old encoding jobs", cleaned=len(expired))
        return len(expired)
