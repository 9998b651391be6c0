"""ARQ worker configuration for async task processing."""

import logging
from typing import Any

import httpx
from arq.worker import func

from autocontrol.core.config import settings
from autocontrol.core.logging import setup_logging
from autocontrol.worker.arq import get_redis_settings
from autocontrol.worker.tasks import send_email

logger = logging.getLogger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    """
    Worker startup hook.

    Initializes the shared HTTP client used to reach the email provider.
    """
    setup_logging()
    ctx["http"] = httpx.AsyncClient(timeout=settings.EMAIL_HTTP_TIMEOUT)
    logger.info("Worker started", extra={"queue": settings.ARQ_QUEUE_NAME})


async def shutdown(ctx: dict[str, Any]) -> None:
    """
    Worker shutdown hook.

    Clean up resources before worker exits.
    """
    client = ctx.get("http")
    if client is not None:
        await client.aclose()
    logger.info("Worker stopped")


class WorkerSettings:
    """ARQ worker settings."""

    # Redis connection
    redis_settings = get_redis_settings()

    # Worker configuration
    queue_name = settings.ARQ_QUEUE_NAME
    max_jobs = settings.ARQ_MAX_JOBS
    job_timeout = 60
    keep_result = 3600  # Keep job results for 1 hour

    # Retry configuration
    max_tries = 5
    retry_jobs = True

    # Lifecycle hooks
    on_startup = startup
    on_shutdown = shutdown

    # Task functions
    functions = [
        func(send_email, name="send_email"),
    ]
