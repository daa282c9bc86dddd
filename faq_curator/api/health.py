"""Health check endpoints."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from faq_curator.config import get_settings
from faq_curator.core.redis import is_redis_available
from faq_curator.db.database import get_db
from faq_curator.services.factory import build_faq_service

logger = logging.getLogger(__name__)
router = APIRouter()
settings = get_settings()


@router.get("/health")
async def health_check(request: Request, db: Session = Depends(get_db)):
    """Health check endpoint: FAQ store, vector index, Redis and the embedded worker."""
    redis_ok = await is_redis_available()
    state = request.app.state

    service = build_faq_service(db, state.settings, state.vector_index, completion=state.completion)
    engine_health = await service.health_check()

    arq_worker = getattr(state, "arq_worker", None)
    worker_status = {
        "enabled": settings.use_arq_worker,
        "running": arq_worker.running if arq_worker else False,
    }

    return {
        "status": "healthy" if engine_health["is_healthy"] else "degraded",
        "version": settings.app_version,
        "database": "sqlite" if settings.database_url.startswith("sqlite") else "sql",
        "redis": "connected" if redis_ok else "unavailable",
        "worker": worker_status,
        "faq_engine": engine_health,
    }


@router.get("/version")
async def version():
    """Get version info."""
    return {"name": settings.app_name, "version": settings.app_version}
