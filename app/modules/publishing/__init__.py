"""Scheduled publishing module."""

from app.modules.publishing.service import PublishResult, ScheduledPublishCoordinator

__all__ = [
    "PublishResult",
    "ScheduledPublishCoordinator",
]
