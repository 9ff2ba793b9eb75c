"""Redis connection factory."""

import redis.asyncio as redis

from app.core.config import settings


def create_redis_client() -> redis.Redis:
    """Open a Redis client for the current event loop.

    Clients are bound to the loop that first uses them. Celery tasks run each
    invocation in a fresh loop and open one client per run.
    """
    return redis.from_url(settings.REDIS_URL, decode_responses=True)
