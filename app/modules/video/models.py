"""Video model for encoding and publish state.

The ``videos`` table is the durable record for everything the encoding
pipeline does. The in-memory encoding queue is lost on restart; this table
is not.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum as SQLEnum, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.database import Base


class EncodingStatus(str, Enum):
    """Encoding state of a video."""

    PENDING = "PENDING"
    ENCODING = "ENCODING"
    READY = "READY"
    FAILED = "FAILED"


class EncodingTiersStatus(str, Enum):
    """Whether all output renditions were produced."""

    NONE = "NONE"
    PARTIAL = "PARTIAL"
    FULL = "FULL"


class PublishStatus(str, Enum):
    """Publication state of a video."""

    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    PUBLISHED = "PUBLISHED"


class ModerationStatus(str, Enum):
    """Content moderation outcome."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    NEEDS_REVIEW = "NEEDS_REVIEW"


def _enum_column(enum_cls: type[Enum], name: str):
    return SQLEnum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


class Video(Base):
    """Uploaded video with encoding, moderation and publishing state."""

    __tablename__ = "videos"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Encoding
    encoding_status: Mapped[EncodingStatus] = mapped_column(
        _enum_column(EncodingStatus, "encodingstatus"),
        default=EncodingStatus.PENDING,
        nullable=False,
        index=True,
    )
    encoding_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    encoding_completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    encoding_tiers_status: Mapped[EncodingTiersStatus] = mapped_column(
        _enum_column(EncodingTiersStatus, "encodingtiersstatus"),
        default=EncodingTiersStatus.NONE,
        nullable=False,
    )
    encoding_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    provider_job_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Storage references
    original_blob_name: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    hls_manifest_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    mp4_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # Publishing
    publish_status: Mapped[PublishStatus] = mapped_column(
        _enum_column(PublishStatus, "publishstatus"),
        default=PublishStatus.DRAFT,
        nullable=False,
        index=True,
    )
    scheduled_publish_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    published_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Moderation
    moderation_status: Mapped[ModerationStatus] = mapped_column(
        _enum_column(ModerationStatus, "moderationstatus"),
        default=ModerationStatus.PENDING,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Video {self.id} - {self.encoding_status.value}/{self.publish_status.value}>"
