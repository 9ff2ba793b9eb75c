"""Video record module: encoding and publish state of uploaded videos."""

from app.modules.video.models import (
    EncodingStatus,
    EncodingTiersStatus,
    ModerationStatus,
    PublishStatus,
    Video,
)
from app.modules.video.repository import VideoRepository

__all__ = [
    "EncodingStatus",
    "EncodingTiersStatus",
    "ModerationStatus",
    "PublishStatus",
    "Video",
    "VideoRepository",
]
