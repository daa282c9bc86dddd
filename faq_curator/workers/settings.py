"""ARQ worker settings.

Start the worker with:
    arq faq_curator.workers.settings.WorkerSettings
"""

import asyncio
import logging

from arq.connections import RedisSettings

from faq_curator.config import get_settings
from faq_curator.workers.tasks import generate_faqs

logger = logging.getLogger(__name__)


async def on_startup(ctx: dict) -> None:
    """ARQ worker startup: initialize shared resources."""
    from faq_curator.core.logging import configure_logging
    from faq_curator.db.database import init_db
    from faq_curator.services.factory import create_vector_index, get_completion_gateway

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    init_db()

    ctx["settings"] = settings
    ctx["vector_index"] = await create_vector_index(settings)
    ctx["completion"] = get_completion_gateway(settings)
    ctx["shutdown_event"] = asyncio.Event()
    logger.info("ARQ worker started, FAQ vector index ready")


async def on_shutdown(ctx: dict) -> None:
    """ARQ worker shutdown: stop in-flight retries and close the index client."""
    logger.info("ARQ worker shutting down")
    if "shutdown_event" in ctx:
        ctx["shutdown_event"].set()
    if "vector_index" in ctx:
        await ctx["vector_index"].close()


def get_worker_settings() -> dict:
    """Build WorkerSettings configuration dict."""
    settings = get_settings()

    return {
        "functions": [generate_faqs],
        "redis_settings": RedisSettings.from_dsn(settings.redis_url),
        "max_jobs": settings.arq_max_jobs,
        "job_timeout": settings.arq_job_timeout,
        "health_check_interval": settings.arq_health_check_interval,
        "on_startup": on_startup,
        "on_shutdown": on_shutdown,
    }


class WorkerSettings:
    """ARQ WorkerSettings for `arq faq_curator.workers.settings.WorkerSettings`."""

    settings = get_settings()

    functions = [generate_faqs]
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    max_jobs = settings.arq_max_jobs
    job_timeout = settings.arq_job_timeout
    health_check_interval = settings.arq_health_check_interval
    on_startup = on_startup
    on_shutdown = on_shutdown
