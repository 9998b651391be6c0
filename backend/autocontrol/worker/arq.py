"""ARQ client helpers for enqueueing tasks."""

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from autocontrol.core.config import settings


def get_redis_settings() -> RedisSettings:
    """Redis connection settings for both the worker and producers."""
    return RedisSettings.from_dsn(settings.ARQ_REDIS_URL)


async def create_queue_pool() -> ArqRedis:
    """Open a connection pool to the task queue."""
    return await create_pool(
        get_redis_settings(),
        default_queue_name=settings.ARQ_QUEUE_NAME,
    )
