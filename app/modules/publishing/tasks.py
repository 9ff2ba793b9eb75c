"""Celery tasks for scheduled publishing.

Beat fires these on every worker host's shared schedule, so each run first
takes a Redis lock; a run that finds the lock held is skipped.
"""

import asyncio
from dataclasses import asdict

from celery.schedules import crontab

from app.core.celery_app import celery_app
from app.core.config import settings
from app.core.redis import create_redis_client
from app.core.scheduler import redis_task_lock

PUBLISH_TASK_NAME = "publishing.publish_due_videos"
DEMOTE_TASK_NAME = "publishing.demote_stuck_schedules"


async def _run_locked(name: str, func):
    """Run ``func`` under the cross-process task lock.

    Returns the result, or None if another run holds the lock.
    """
    from app.core.database import engine

    client = create_redis_client()
    try:
        async with redis_task_lock(client, name, settings.PERIODIC_TASK_LOCK_TTL_SECONDS) as acquired:
            if not acquired:
                return None
            return await func()
    finally:
        await client.aclose()
        # Pooled connections are bound to this task's event loop
        await engine.dispose()


@celery_app.task(name=PUBLISH_TASK_NAME)
def publish_due_videos() -> dict:
    """Publish scheduled videos that are due, encoded and approved.

    Returns:
        dict: Publish result summary
    """
    from app.modules.publishing.service import ScheduledPublishCoordinator

    async def _publish():
        coordinator = ScheduledPublishCoordinator()
        return await coordinator.publish_due_videos()

    result = asyncio.run(_run_locked(PUBLISH_TASK_NAME, _publish))
    if result is None:
        return {"status": "skipped"}
    return {"status": "success", **asdict(result)}


@celery_app.task(name=DEMOTE_TASK_NAME)
def demote_stuck_schedules() -> dict:
    """Return unsatisfiable due schedules to DRAFT.

    Returns:
        dict: Number of demoted videos
    """
    from app.modules.publishing.service import ScheduledPublishCoordinator

    async def _demote():
        coordinator = ScheduledPublishCoordinator()
        return await coordinator.demote_stuck_schedules()

    demoted = asyncio.run(_run_locked(DEMOTE_TASK_NAME, _demote))
    if demoted is None:
        return {"status": "skipped"}
    return {"status": "success", "demoted": demoted}


# Merged into celery_app.conf.beat_schedule below
PUBLISHING_BEAT_SCHEDULE = {
    "publish-due-videos": {
        "task": PUBLISH_TASK_NAME,
        "schedule": crontab(minute="*"),
    },
    "demote-stuck-schedules": {
        "task": DEMOTE_TASK_NAME,
        "schedule": crontab(minute="*/15"),
    },
}

celery_app.conf.beat_schedule.update(PUBLISHING_BEAT_SCHEDULE)
