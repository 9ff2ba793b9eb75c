"""Scheduled publishing.

Two periodic passes over scheduled videos:

* ``publish_due_videos`` publishes every scheduled video whose time has come,
  provided its encode is READY and moderation APPROVED.
* ``demote_stuck_schedules`` returns to DRAFT every due schedule that can
  never be satisfied because encoding FAILED or moderation REJECTED.

Videos whose encode or moderation is still in progress are left SCHEDULED
and picked up by a later pass.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from app.core.clock import utcnow
from app.core.database import async_session_maker
from app.core.logging import log_error, log_info
from app.core.metrics import SCHEDULED_PUBLISH_TOTAL
from app.modules.video.repository import VideoRepository

logger = logging.getLogger(__name__)


@dataclass
class PublishResult:
    """Outcome of a publish pass."""

    processed: int = 0
    published: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


class ScheduledPublishCoordinator:
    """Moves due scheduled videos to PUBLISHED or back to DRAFT."""

    def __init__(
        self,
        session_factory=async_session_maker,
        repository_cls=VideoRepository,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.repository_cls = repository_cls
        self._clock = clock

    async def publish_due_videos(self) -> PublishResult:
        """Publish every due scheduled video whose preconditions hold."""
        now = self._clock()
        result = PublishResult()

        async with self.session_factory() as session:
            repo = self.repository_cls(session)
            videos = await repo.get_due_for_publish(now)
            video_ids: list[uuid.UUID] = [video.id for video in videos]
            result.processed = len(video_ids)

            for video_id in video_ids:
                try:
                    published = await repo.publish_scheduled(video_id, now)
                    await session.commit()
                except Exception as e:
                    await session.rollback()
                    result.failed += 1
                    result.errors.append(f"{video_id}: {e}")
                    SCHEDULED_PUBLISH_TOTAL.labels(outcome="error").inc()
                    log_error(logger, "Failed to publish scheduled video", exception=e, video_id=str(video_id))
                    continue

                if published:
                    result.published += 1
                    SCHEDULED_PUBLISH_TOTAL.labels(outcome="published").inc()
                    log_info(logger, "Published scheduled video", video_id=str(video_id))

        if result.processed:
            log_info(
                logger,
                "Scheduled publish pass finished",
                processed=result.processed,
                published=result.published,
                failed=result.failed,
            )
        return result

    async def demote_stuck_schedules(self) -> int:
        """Return unsatisfiable due schedules to DRAFT.

        Returns:
            Number of videos demoted
        """
        now = self._clock()
        demoted = 0

        async with self.session_factory() as session:
            repo = self.repository_cls(session)
            videos = await repo.get_unpublishable_schedules(now)
            candidates = [
                (video.id, video.encoding_status, video.moderation_status) for video in videos
            ]

            for video_id, encoding_status, moderation_status in candidates:
                try:
                    changed = await repo.demote_schedule_to_draft(video_id, now)
                    await session.commit()
                except Exception as e:
                    await session.rollback()
                    SCHEDULED_PUBLISH_TOTAL.labels(outcome="error").inc()
                    log_error(logger, "Failed to demote stuck schedule", exception=e, video_id=str(video_id))
                    continue

                if changed:
                    demoted += 1
                    SCHEDULED_PUBLISH_TOTAL.labels(outcome="demoted").inc()
                    log_info(
                        logger,
                        "Demoted unpublishable schedule to DRAFT",
                        video_id=str(video_id),
                        encoding_status=getattr(encoding_status, "value", encoding_status),
                        moderation_status=getattr(moderation_status, "value", moderation_status),
                    )

        return demoted
