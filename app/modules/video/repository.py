"""Video repository for encoding and publish state transitions.

Reads are status-filtered selects. Writes are per-id conditional updates
(``UPDATE ... WHERE id = :id AND <expected state>``), so applying the same
transition twice is a no-op: the second update matches zero rows.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.video.models import (
    EncodingStatus,
    EncodingTiersStatus,
    ModerationStatus,
    PublishStatus,
    Video,
)


def _failed_values(error: str, completed_at: datetime) -> dict:
    return {
        "encoding_status": EncodingStatus.FAILED,
        "encoding_completed_at": completed_at,
        "encoding_error": error,
        "encoding_tiers_status": EncodingTiersStatus.NONE,
    }


class VideoRepository:
    """Repository for Video encoding/publish state."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def get_by_id(self, video_id: uuid.UUID) -> Optional[Video]:
        """Get a video by ID."""
        result = await self.session.execute(select(Video).where(Video.id == video_id))
        return result.scalar_one_or_none()

    async def _apply(self, video_id: uuid.UUID, conditions: list, values: dict) -> bool:
        stmt = (
            update(Video)
            .where(Video.id == video_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    # ==================== Encoding selects ====================

    async def get_stuck_encoding(self, started_before: datetime) -> list[Video]:
        """Non-deleted videos in ENCODING that started before the cutoff."""
        result = await self.session.execute(
            select(Video)
            .where(
                Video.encoding_status == EncodingStatus.ENCODING,
                Video.encoding_started_at < started_before,
                Video.deleted_at.is_(None),
            )
            .order_by(Video.encoding_started_at)
        )
        return list(result.scalars().all())

    async def get_orphaned_pending(self, created_before: datetime) -> list[Video]:
        """Non-deleted videos still PENDING that were created before the cutoff."""
        result = await self.session.execute(
            select(Video)
            .where(
                Video.encoding_status == EncodingStatus.PENDING,
                Video.created_at < created_before,
                Video.deleted_at.is_(None),
            )
            .order_by(Video.created_at)
        )
        return list(result.scalars().all())

    # ==================== Encoding transitions ====================

    async def mark_pending(self, video_id: uuid.UUID, original_blob_name: str) -> bool:
        """Reset a video to PENDING for a fresh encode."""
        return await self._apply(
            video_id,
            [Video.deleted_at.is_(None)],
            {
                "encoding_status": EncodingStatus.PENDING,
                "original_blob_name": original_blob_name,
                "encoding_started_at": None,
                "encoding_completed_at": None,
                "encoding_error": None,
                "encoding_tiers_status": EncodingTiersStatus.NONE,
            },
        )

    async def mark_encoding_started(self, video_id: uuid.UUID, started_at: datetime) -> bool:
        """Move a video to ENCODING when its job is dispatched."""
        return await self._apply(
            video_id,
            [
                Video.encoding_status.in_([EncodingStatus.PENDING, EncodingStatus.ENCODING]),
                Video.deleted_at.is_(None),
            ],
            {
                "encoding_status": EncodingStatus.ENCODING,
                "encoding_started_at": started_at,
                "encoding_error": None,
            },
        )

    async def set_provider_job_id(self, video_id: uuid.UUID, provider_job_id: str) -> bool:
        return await self._apply(video_id, [], {"provider_job_id": provider_job_id})

    async def mark_ready_from_storage(
        self,
        video_id: uuid.UUID,
        hls_manifest_url: str,
        completed_at: datetime,
    ) -> bool:
        """ENCODING -> READY after the manifest was found in storage.

        Only the default rendition is known to exist, so tiers are PARTIAL.
        """
        return await self._apply(
            video_id,
            [Video.encoding_status == EncodingStatus.ENCODING],
            {
                "encoding_status": EncodingStatus.READY,
                "encoding_completed_at": completed_at,
                "hls_manifest_url": hls_manifest_url,
                "mp4_url": None,
                "encoding_tiers_status": EncodingTiersStatus.PARTIAL,
            },
        )

    async def mark_encoding_timed_out(
        self,
        video_id: uuid.UUID,
        error: str,
        completed_at: datetime,
    ) -> bool:
        """ENCODING -> FAILED when neither callback nor output arrived."""
        return await self._apply(
            video_id,
            [Video.encoding_status == EncodingStatus.ENCODING],
            _failed_values(error, completed_at),
        )

    async def mark_encoding_failed(
        self,
        video_id: uuid.UUID,
        error: str,
        completed_at: datetime,
    ) -> bool:
        """PENDING/ENCODING -> FAILED when the queue gives up on a job."""
        return await self._apply(
            video_id,
            [Video.encoding_status.in_([EncodingStatus.PENDING, EncodingStatus.ENCODING])],
            _failed_values(error, completed_at),
        )

    async def mark_provider_failure(
        self,
        video_id: uuid.UUID,
        error: str,
        completed_at: datetime,
    ) -> bool:
        """ENCODING -> FAILED when the provider reports a failed job.

        A PENDING video is waiting on a fresh job, so a failure report can
        only belong to an earlier submission and is ignored.
        """
        return await self._apply(
            video_id,
            [Video.encoding_status == EncodingStatus.ENCODING],
            _failed_values(error, completed_at),
        )

    async def mark_encoding_complete(
        self,
        video_id: uuid.UUID,
        hls_manifest_url: str,
        tiers_status: EncodingTiersStatus,
        completed_at: datetime,
    ) -> bool:
        """Provider reported success.

        Accepted from ENCODING, and from a watchdog-repaired READY/PARTIAL
        whose tiers it upgrades. FAILED videos stay FAILED.
        """
        return await self._apply(
            video_id,
            [
                or_(
                    Video.encoding_status == EncodingStatus.ENCODING,
                    and_(
                        Video.encoding_status == EncodingStatus.READY,
                        Video.encoding_tiers_status == EncodingTiersStatus.PARTIAL,
                    ),
                )
            ],
            {
                "encoding_status": EncodingStatus.READY,
                "encoding_completed_at": completed_at,
                "hls_manifest_url": hls_manifest_url,
                "mp4_url": None,
                "encoding_error": None,
                "encoding_tiers_status": tiers_status,
            },
        )

    # ==================== Scheduled publishing ====================

    def _publishable_conditions(self, now: datetime) -> list:
        return [
            Video.publish_status == PublishStatus.SCHEDULED,
            Video.scheduled_publish_at <= now,
            Video.encoding_status == EncodingStatus.READY,
            Video.moderation_status == ModerationStatus.APPROVED,
            Video.deleted_at.is_(None),
        ]

    def _unpublishable_conditions(self, now: datetime) -> list:
        return [
            Video.publish_status == PublishStatus.SCHEDULED,
            Video.scheduled_publish_at <= now,
            or_(
                Video.encoding_status == EncodingStatus.FAILED,
                Video.moderation_status == ModerationStatus.REJECTED,
            ),
            Video.deleted_at.is_(None),
        ]

    async def get_due_for_publish(self, now: datetime) -> list[Video]:
        """Scheduled videos whose time has come and whose preconditions hold."""
        result = await self.session.execute(
            select(Video)
            .where(*self._publishable_conditions(now))
            .order_by(Video.scheduled_publish_at)
        )
        return list(result.scalars().all())

    async def publish_scheduled(self, video_id: uuid.UUID, now: datetime) -> bool:
        """SCHEDULED -> PUBLISHED, re-checking the preconditions in the update."""
        return await self._apply(
            video_id,
            self._publishable_conditions(now),
            {
                "publish_status": PublishStatus.PUBLISHED,
                "published_at": now,
                "is_active": True,
                "scheduled_publish_at": None,
            },
        )

    async def get_unpublishable_schedules(self, now: datetime) -> list[Video]:
        """Due scheduled videos that failed encoding or were rejected."""
        result = await self.session.execute(
            select(Video)
            .where(*self._unpublishable_conditions(now))
            .order_by(Video.scheduled_publish_at)
        )
        return list(result.scalars().all())

    async def demote_schedule_to_draft(self, video_id: uuid.UUID, now: datetime) -> bool:
        """SCHEDULED -> DRAFT for a schedule that can never be satisfied."""
        return await self._apply(
            video_id,
            self._unpublishable_conditions(now),
            {
                "publish_status": PublishStatus.DRAFT,
                "scheduled_publish_at": None,
            },
        )
