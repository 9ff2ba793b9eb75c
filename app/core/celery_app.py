"""Celery application configuration.

Celery beat drives the scheduled publishing passes. The beat schedule is
filled in by the task modules.
"""

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from app.core.config import settings
from app.core.logging import setup_logging

celery_app = Celery(
    "video_encoding",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=3600,
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # A run must finish before its Redis lock expires
    task_time_limit=settings.PERIODIC_TASK_LOCK_TTL_SECONDS,
    task_soft_time_limit=max(settings.PERIODIC_TASK_LOCK_TTL_SECONDS - 60, 30),
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    beat_schedule={},
)


@celery_setup_logging.connect
def _configure_logging(**kwargs) -> None:
    setup_logging(
        level=settings.LOG_LEVEL if not settings.DEBUG else "DEBUG",
        json_format=settings.LOG_JSON,
    )


celery_app.autodiscover_tasks(["app.modules.publishing"])
