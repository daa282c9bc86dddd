"""FAQ generation ARQ task.

Runs the whole generate, deduplicate and record pipeline for one processed
document as a persistent background job via ARQ + Redis.
"""

import logging

from faq_curator.config import get_settings
from faq_curator.core.exceptions import AppError, OperationCancelledError
from faq_curator.core.logging import job_id_var

logger = logging.getLogger(__name__)


async def generate_faqs(
    ctx: dict,
    document_id: str,
    category_override: str | None = None,
    user_id: str | None = None,
) -> dict:
    """ARQ task: generate FAQs for one processed document.

    Args:
        ctx: ARQ context dict (settings, vector_index, completion and
            shutdown_event from on_startup)
        document_id: ProcessedDocument id
        category_override: Category forced onto every candidate
        user_id: Recorded as ``generated_by`` on provenance edges

    Returns:
        Dict with success flag and generation counts, or the error.
    """
    from faq_curator.db.database import SessionLocal
    from faq_curator.services.factory import build_faq_service, create_vector_index

    job_id_var.set(ctx.get("job_id"))
    settings = ctx.get("settings") or get_settings()
    logger.info(f"[ARQ] Starting FAQ generation for document {document_id}")

    index = ctx.get("vector_index")
    owns_index = index is None
    if owns_index:
        index = await create_vector_index(settings)
    index = index.with_cancel(ctx.get("shutdown_event"))

    db = SessionLocal()
    try:
        service = build_faq_service(db, settings, index, completion=ctx.get("completion"))
        result = await service.generate_faqs_from_document(
            document_id, category_override=category_override, user_id=user_id
        )
        return {
            "success": True,
            "document_id": document_id,
            "faq_ids": [faq.id for faq in result.faqs],
            "duplicates_found": result.duplicates_found,
            "enhanced_existing": result.enhanced_existing,
            "failed_candidates": result.failed_candidates,
            "processing_time_ms": result.processing_time_ms,
        }
    except OperationCancelledError as e:
        logger.warning(f"[ARQ] FAQ generation for {document_id} cancelled: {e}")
        return {"success": False, "document_id": document_id, "error": "cancelled"}
    except AppError as e:
        logger.error(f"[ARQ] FAQ generation for {document_id} failed: {e.detail}")
        return {"success": False, "document_id": document_id, "error": e.detail}
    finally:
        db.close()
        if owns_index:
            await index.close()
        job_id_var.set(None)
