"""FastAPI application entry point."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from faq_curator.api import faqs, health
from faq_curator.config import get_settings
from faq_curator.core.error_handlers import register_error_handlers
from faq_curator.core.logging import configure_logging
from faq_curator.core.redis import REDIS_ERRORS, close_redis_pool, get_redis_pool
from faq_curator.db.database import init_db
from faq_curator.middleware.request_logging import RequestLoggingMiddleware
from faq_curator.services.factory import create_vector_index, get_completion_gateway
from faq_curator.workers.arq_worker import EmbeddedArqWorker

settings = get_settings()
configure_logging(settings.log_level, settings.log_format)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize and cleanup services."""
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"  Vector index: {settings.qdrant_url}/{settings.faq_index_name}")
    logger.info(f"  Embedding model: {settings.embedding_model} ({settings.embedding_dimension}d)")
    logger.info(f"  Completion model: {settings.completion_model}")
    logger.info(f"  Duplicate detection: {settings.faq_duplicate_detection_enabled}")
    logger.info("=" * 60)

    app.state.start_time = time.time()

    # Store settings in app.state for Depends() access
    app.state.settings = settings

    init_db()

    # Provision the FAQ index once; fails startup if Qdrant never becomes ready
    vector_index = await create_vector_index(settings)
    app.state.vector_index = vector_index
    app.state.completion = get_completion_gateway(settings)
    logger.info("FAQVectorIndex initialized and shared via app.state")

    # Initialize Redis connection pool (None if unavailable: degraded mode)
    redis_pool = await get_redis_pool() if settings.use_arq_worker else None
    arq_worker: EmbeddedArqWorker | None = None
    if redis_pool:
        logger.info("Redis connected, ARQ task queue available")
        # Stale queue entries from a previous run would replay old generation jobs
        try:
            stale_keys = []
            for pattern in ("arq:job:*", "arq:result:*", "arq:in-progress:*", "arq:retry:*"):
                stale_keys.extend(await redis_pool.keys(pattern))
            stale_keys.append("arq:queue")
            await redis_pool.delete(*stale_keys)
            logger.info(f"Cleared {len(stale_keys)} stale ARQ keys")
        except REDIS_ERRORS as e:
            logger.warning(f"Failed to clear stale ARQ keys: {e}")

        arq_worker = EmbeddedArqWorker(redis_pool, settings, vector_index, app.state.completion)
        await arq_worker.start()
    else:
        logger.warning("Redis unavailable, running in degraded mode (BackgroundTasks fallback)")
    app.state.arq_worker = arq_worker

    yield

    # Shutdown
    if arq_worker:
        await arq_worker.stop()
    await close_redis_pool()
    await vector_index.close()
    logger.info("Shutting down...")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="FAQ generation and duplicate curation over processed conversations",
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Register global error handlers (AppError -> JSON responses)
register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request logging middleware (adds X-Request-ID, logs method/path/latency)
app.add_middleware(RequestLoggingMiddleware)

# API Routes
app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(faqs.router, prefix="/api/faqs", tags=["FAQs"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/api/docs" if settings.debug else "disabled",
        "health": "/api/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "faq_curator.main:app", host=settings.host, port=settings.port, reload=settings.debug
    )
