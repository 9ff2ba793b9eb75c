"""Encoding watchdog.

Reconciles the durable video record with reality on a fixed interval. It
covers two ways the normal flow can break:

1. The provider finished (or died) but its completion callback never
   arrived, leaving the video in ENCODING. If the HLS manifest is in storage
   the video is promoted to READY; once the timeout passes without output it
   is marked FAILED; in between it is left alone.
2. The process hosting the in-memory queue restarted between admission and
   dispatch, leaving the video in PENDING with no job. The durable record is
   the only surviving evidence, so the work is re-admitted to the queue.

Each video is handled independently. A failure on one video is logged and
counted and the rest of the batch continues.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from app.core.clock import utcnow
from app.core.config import settings
from app.core.database import async_session_maker
from app.core.logging import log_error, log_info, log_warning
from app.core.metrics import WATCHDOG_OUTCOMES_TOTAL
from app.core.storage import Storage, build_manifest_url, get_encoded_storage, manifest_key
from app.modules.encoding.queue import EncodingJobQueue
from app.modules.video.repository import VideoRepository

logger = logging.getLogger(__name__)

STUCK_THRESHOLD = timedelta(minutes=30)
TIMEOUT_THRESHOLD = timedelta(minutes=60)

TIMEOUT_ERROR = "Encoding timed out — no webhook received and no output found in storage"


@dataclass
class WatchdogReport:
    """Outcome counts of a single watchdog run."""

    started_at: datetime
    stuck_checked: int = 0
    repaired_ready: int = 0
    timed_out: int = 0
    in_grace: int = 0
    pending_checked: int = 0
    requeued: int = 0
    skipped_live_job: int = 0
    skipped_missing_blob: int = 0
    errors: int = 0
    requeued_video_ids: list[str] = field(default_factory=list)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class EncodingWatchdog:
    """Detects and repairs stuck or orphaned encodes."""

    def __init__(
        self,
        queue: EncodingJobQueue,
        storage: Optional[Storage] = None,
        session_factory=async_session_maker,
        repository_cls=VideoRepository,
        stuck_after: timedelta = STUCK_THRESHOLD,
        timeout_after: timedelta = TIMEOUT_THRESHOLD,
        cdn_endpoint: Optional[str] = None,
        requeue_priority: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if timeout_after < stuck_after:
            raise ValueError("timeout_after must not be shorter than stuck_after")
        self.queue = queue
        self._storage = storage
        self.session_factory = session_factory
        self.repository_cls = repository_cls
        self.stuck_after = stuck_after
        self.timeout_after = timeout_after
        self.cdn_endpoint = cdn_endpoint
        self.requeue_priority = (
            requeue_priority if requeue_priority is not None else settings.ENCODING_DEFAULT_PRIORITY
        )
        self._clock = clock

    @classmethod
    def from_settings(cls, queue: EncodingJobQueue) -> "EncodingWatchdog":
        return cls(
            queue,
            stuck_after=timedelta(minutes=settings.WATCHDOG_STUCK_MINUTES),
            timeout_after=timedelta(minutes=settings.WATCHDOG_TIMEOUT_MINUTES),
        )

    @property
    def storage(self) -> Storage:
        if self._storage is None:
            self._storage = get_encoded_storage()
        return self._storage

    async def run_once(self) -> WatchdogReport:
        """Run one reconciliation pass over the durable record."""
        now = self._clock()
        report = WatchdogReport(started_at=now)

        async with self.session_factory() as session:
            repo = self.repository_cls(session)
            await self._repair_stuck_encoding(session, repo, now, report)
            await self._recover_orphaned_pending(repo, now, report)

        if report.repaired_ready or report.timed_out or report.requeued or report.errors:
            log_info(
                logger,
                "Encoding watchdog repaired videos",
                repaired_ready=report.repaired_ready,
                timed_out=report.timed_out,
                requeued=report.requeued,
                errors=report.errors,
            )
        return report

    async def _manifest_exists(self, video_id) -> bool:
        # boto3 is blocking; keep the event loop free while waiting on HEAD
        return await asyncio.to_thread(self.storage.exists, manifest_key(video_id))

    async def _repair_stuck_encoding(self, session, repo, now: datetime, report: WatchdogReport) -> None:
        stuck_cutoff = now - self.stuck_after
        timeout_cutoff = now - self.timeout_after

        videos = await repo.get_stuck_encoding(stuck_cutoff)
        # Snapshot before any rollback expires the loaded instances
        candidates: list[tuple[uuid.UUID, datetime]] = [
            (video.id, _as_utc(video.encoding_started_at)) for video in videos
        ]
        report.stuck_checked = len(candidates)
        if candidates:
            log_info(logger, "Found videos stuck in ENCODING", count=len(candidates))

        for video_id, started_at in candidates:
            try:
                outcome = await self._repair_one(repo, video_id, started_at, timeout_cutoff, now)
                if outcome in ("ready", "timed_out"):
                    await session.commit()
            except Exception as e:
                await session.rollback()
                report.errors += 1
                WATCHDOG_OUTCOMES_TOTAL.labels(outcome="error").inc()
                log_error(
                    logger,
                    "Failed to repair stuck encoding",
                    exception=e,
                    video_id=str(video_id),
                )
                continue

            WATCHDOG_OUTCOMES_TOTAL.labels(outcome=outcome).inc()
            if outcome == "ready":
                report.repaired_ready += 1
            elif outcome == "timed_out":
                report.timed_out += 1
            elif outcome == "grace":
                report.in_grace += 1

    async def _repair_one(
        self,
        repo,
        video_id: uuid.UUID,
        started_at: datetime,
        timeout_cutoff: datetime,
        now: datetime,
    ) -> str:
        if await self._manifest_exists(video_id):
            manifest_url = build_manifest_url(video_id, cdn_endpoint=self.cdn_endpoint)
            updated = await repo.mark_ready_from_storage(video_id, manifest_url, now)
            if not updated:
                return "unchanged"
            log_info(
                logger,
                "Manifest found for stuck video, marked READY",
                video_id=str(video_id),
                hls_manifest_url=manifest_url,
            )
            return "ready"

        if started_at < timeout_cutoff:
            updated = await repo.mark_encoding_timed_out(video_id, TIMEOUT_ERROR, now)
            if not updated:
                return "unchanged"
            log_warning(
                logger,
                "Encoding timed out with no output, marked FAILED",
                video_id=str(video_id),
                encoding_started_at=started_at.isoformat(),
            )
            return "timed_out"

        log_info(
            logger,
            "Stuck video still within grace window",
            video_id=str(video_id),
            encoding_started_at=started_at.isoformat(),
        )
        return "grace"

    async def _recover_orphaned_pending(self, repo, now: datetime, report: WatchdogReport) -> None:
        videos = await repo.get_orphaned_pending(now - self.stuck_after)
        candidates: list[tuple[uuid.UUID, Optional[str]]] = [
            (video.id, video.original_blob_name) for video in videos
        ]
        report.pending_checked = len(candidates)

        for video_id, blob_name in candidates:
            try:
                if self.queue.has_live_job(video_id):
                    report.skipped_live_job += 1
                    continue

                if not blob_name:
                    report.skipped_missing_blob += 1
                    WATCHDOG_OUTCOMES_TOTAL.labels(outcome="missing_blob").inc()
                    log_warning(
                        logger,
                        "Orphaned PENDING video has no original blob, cannot requeue",
                        video_id=str(video_id),
                    )
                    continue

                job_id = self.queue.add_job(video_id, blob_name, self.requeue_priority)
            except Exception as e:
                report.errors += 1
                WATCHDOG_OUTCOMES_TOTAL.labels(outcome="error").inc()
                log_error(
                    logger,
                    "Failed to requeue orphaned video",
                    exception=e,
                    video_id=str(video_id),
                )
                continue

            report.requeued += 1
            report.requeued_video_ids.append(str(video_id))
            WATCHDOG_OUTCOMES_TOTAL.labels(outcome="requeued").inc()
            log_info(
                logger,
                "Requeued orphaned PENDING video",
                video_id=str(video_id),
                job_id=job_id,
            )
