"""Core module for configuration and utilities."""

from app.core.celery_app import celery_app
from app.core.config import settings
from app.core.database import Base, get_session
from app.core.redis import create_redis_client

__all__ = [
    "celery_app",
    "settings",
    "Base",
    "get_session",
    "create_redis_client",
]
