"""Encoding provider callback handling.

The callback is the primary signal that an encode finished. When it is lost
the watchdog repairs the video instead; both paths write through the same
conditional repository updates, so whichever lands second changes nothing
it should not.
"""

import logging
import uuid
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.logging import log_info, log_warning
from app.core.storage import build_manifest_url
from app.modules.encoding.schemas import ProviderWebhookPayload
from app.modules.video.models import EncodingTiersStatus
from app.modules.video.repository import VideoRepository

logger = logging.getLogger(__name__)

EVENT_JOB_COMPLETED = "job.completed"
EVENT_JOB_FAILED = "job.failed"


class EncodingCallbackService:
    """Applies provider callback events to the durable video record."""

    def __init__(
        self,
        session: AsyncSession,
        repository_cls=VideoRepository,
        clock: Callable = utcnow,
    ):
        self.session = session
        self.video_repo = repository_cls(session)
        self._clock = clock

    async def handle_event(self, payload: ProviderWebhookPayload) -> Optional[str]:
        """Apply one provider event.

        Returns:
            The resulting transition ("ready", "failed") or None when the
            event was informational or did not change the record
        """
        raw_video_id = payload.metadata.video_id
        if not raw_video_id:
            log_warning(logger, "Encoding webhook missing video_id", event=payload.event)
            return None

        try:
            video_id = uuid.UUID(raw_video_id)
        except ValueError:
            log_warning(logger, "Encoding webhook has malformed video_id", video_id=raw_video_id)
            return None

        log_info(
            logger,
            "Encoding webhook received",
            event=payload.event,
            provider_job_id=str(payload.id),
            video_id=raw_video_id,
        )

        if payload.event == EVENT_JOB_COMPLETED:
            return await self._handle_completed(video_id)
        if payload.event == EVENT_JOB_FAILED:
            return await self._handle_failed(video_id, payload)

        log_info(logger, "Ignoring encoding event", event=payload.event, video_id=raw_video_id)
        return None

    async def _handle_completed(self, video_id: uuid.UUID) -> Optional[str]:
        manifest_url = build_manifest_url(video_id)
        updated = await self.video_repo.mark_encoding_complete(
            video_id,
            manifest_url,
            EncodingTiersStatus.FULL,
            self._clock(),
        )
        await self.session.commit()
        if not updated:
            log_warning(logger, "Completion for video not awaiting encode", video_id=str(video_id))
            return None
        log_info(logger, "Encoding complete, video READY", video_id=str(video_id), hls_manifest_url=manifest_url)
        return "ready"

    async def _handle_failed(self, video_id: uuid.UUID, payload: ProviderWebhookPayload) -> Optional[str]:
        error = "Encoding provider reported failure"
        if payload.errors:
            error = f"{error}: {payload.errors}"
        updated = await self.video_repo.mark_provider_failure(video_id, error, self._clock())
        await self.session.commit()
        if not updated:
            log_warning(logger, "Failure for video not awaiting encode", video_id=str(video_id))
            return None
        log_warning(logger, "Encoding failed, video FAILED", video_id=str(video_id), error=error)
        return "failed"
