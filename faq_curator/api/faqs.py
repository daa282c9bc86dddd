"""FAQ generation, curation and search endpoints."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from sqlalchemy.orm import Session

from faq_curator.config import get_settings
from faq_curator.core.exceptions import EntityNotFound, ValidationError
from faq_curator.core.redis import REDIS_ERRORS, get_redis_pool
from faq_curator.db.database import get_db
from faq_curator.db.models import ProcessedDocument
from faq_curator.schemas.faq import (
    BulkGenerateFAQsRequest,
    BulkGenerationResponse,
    CleanupResponse,
    DuplicateGroupResponse,
    EnhanceFAQRequest,
    FAQCreateRequest,
    FAQListResponse,
    FAQResponse,
    FAQSourcesResponse,
    FAQStatsResponse,
    FAQUpdateRequest,
    GenerateFAQsRequest,
    GenerateFAQsResponse,
    GenerationResultResponse,
    ReviewFAQRequest,
    SimilarFAQListResponse,
    SimilarFAQResponse,
    SourceDocumentResponse,
    SourceMessageResponse,
)
from faq_curator.services.factory import build_faq_service
from faq_curator.services.faq_service import FAQGenerationResult, FAQGeneratorService
from faq_curator.services.faq_types import EnhancementInput
from faq_curator.workers.tasks import generate_faqs

logger = logging.getLogger(__name__)
router = APIRouter()


def get_faq_service(request: Request, db: Session = Depends(get_db)) -> FAQGeneratorService:
    """FAQ service bound to the request session and the app's shared index."""
    state = request.app.state
    return build_faq_service(
        db, state.settings, state.vector_index, completion=state.completion
    )


def _worker_ctx(request: Request) -> dict:
    """ARQ-style ctx for running the generation task in-process."""
    state = request.app.state
    return {
        "settings": state.settings,
        "vector_index": state.vector_index,
        "completion": state.completion,
    }


async def enqueue_faq_generation(
    request: Request,
    background_tasks: BackgroundTasks,
    document_id: str,
    category_override: str | None = None,
    user_id: str | None = None,
) -> str | None:
    """Enqueue FAQ generation via ARQ if available, else BackgroundTasks.

    Returns the ARQ job_id if enqueued via ARQ, None if using BackgroundTasks fallback.
    """
    settings = get_settings()
    redis = await get_redis_pool() if settings.use_arq_worker else None
    if redis:
        try:
            job = await redis.enqueue_job(
                "generate_faqs", document_id, category_override, user_id
            )
            logger.info(f"Enqueued FAQ generation for {document_id} via ARQ (job: {job.job_id})")
            return job.job_id
        except REDIS_ERRORS as e:
            logger.warning(f"ARQ enqueue failed, falling back to BackgroundTasks: {e}")

    # Degraded mode: fall back to in-process BackgroundTasks
    background_tasks.add_task(
        generate_faqs, _worker_ctx(request), document_id, category_override, user_id
    )
    logger.info(f"Queued FAQ generation for {document_id} via BackgroundTasks (degraded mode)")
    return None


def _result_response(result: FAQGenerationResult) -> GenerationResultResponse:
    return GenerationResultResponse(
        document_id=result.document_id,
        faqs=[FAQResponse.model_validate(faq) for faq in result.faqs],
        duplicates_found=result.duplicates_found,
        enhanced_existing=result.enhanced_existing,
        failed_candidates=result.failed_candidates,
        processing_time_ms=result.processing_time_ms,
    )


# -----------------------------------------------------------------------------
# Generation
# -----------------------------------------------------------------------------


@router.post(
    "/generate", response_model=GenerateFAQsResponse, status_code=status.HTTP_202_ACCEPTED
)
async def generate_document_faqs(
    request: Request,
    body: GenerateFAQsRequest,
    background_tasks: BackgroundTasks,
    user_id: str | None = Query(None),
    db: Session = Depends(get_db),
):
    """Queue FAQ generation for one processed document."""
    if db.get(ProcessedDocument, body.document_id) is None:
        raise EntityNotFound("ProcessedDocument not found", context={"id": body.document_id})

    job_id = await enqueue_faq_generation(
        request, background_tasks, body.document_id, body.category_override, user_id
    )
    return GenerateFAQsResponse(
        document_id=body.document_id,
        queued=job_id is not None,
        job_id=job_id,
        message="FAQ generation queued" if job_id else "FAQ generation scheduled in-process",
    )


@router.post("/generate-bulk", response_model=BulkGenerationResponse)
async def generate_bulk_faqs(
    body: BulkGenerateFAQsRequest,
    user_id: str | None = Query(None),
    service: FAQGeneratorService = Depends(get_faq_service),
):
    """Generate FAQs for several documents synchronously.

    Failed documents are reported, not raised.
    """
    bulk = await service.generate_faqs_from_multiple_documents(
        body.document_ids, category_override=body.category_override, user_id=user_id
    )
    return BulkGenerationResponse(
        results=[_result_response(r) for r in bulk.results],
        total_faqs=bulk.total_faqs,
        total_duplicates=bulk.total_duplicates,
        failed_document_ids=bulk.failed_document_ids,
    )


# -----------------------------------------------------------------------------
# Listing, search and stats
# -----------------------------------------------------------------------------


@router.get("", response_model=FAQListResponse)
async def list_faqs(
    category: str | None = Query(None),
    status_filter: str | None = Query(None, alias="status"),
    search: str | None = Query(None),
    min_confidence: float | None = Query(None, ge=0.0, le=1.0),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: FAQGeneratorService = Depends(get_faq_service),
):
    faqs, total = service.list_faqs(
        category=category,
        status=status_filter,
        search=search,
        min_confidence=min_confidence,
        page=page,
        limit=limit,
    )
    return FAQListResponse(
        faqs=[FAQResponse.model_validate(f) for f in faqs], total=total, page=page, limit=limit
    )


@router.get("/similar", response_model=SimilarFAQListResponse)
async def find_similar_faqs(
    query: str = Query(..., min_length=1),
    category: str | None = Query(None),
    status_filter: list[str] | None = Query(None, alias="status"),
    top_k: int = Query(10, ge=1, le=100),
    min_score: float | None = Query(None, ge=0.0, le=1.0),
    service: FAQGeneratorService = Depends(get_faq_service),
):
    """Semantic search over indexed FAQs."""
    results = await service.find_similar_faqs(
        query, category=category, status=status_filter, top_k=top_k, min_score=min_score
    )
    return SimilarFAQListResponse(
        results=[
            SimilarFAQResponse(faq=FAQResponse.model_validate(r.faq), similarity=r.similarity)
            for r in results
        ],
        total=len(results),
    )


@router.get("/stats", response_model=FAQStatsResponse)
async def get_faq_stats(service: FAQGeneratorService = Depends(get_faq_service)):
    stats = service.get_faq_stats()
    return FAQStatsResponse(
        total_faqs=stats.total_faqs,
        by_status=stats.by_status,
        by_category=stats.by_category,
        average_confidence=stats.average_confidence,
        pending_review=stats.pending_review,
    )


@router.post("/clean-duplicates", response_model=CleanupResponse)
async def clean_duplicates(service: FAQGeneratorService = Depends(get_faq_service)):
    """Remove semantic duplicates across the FAQ base, keeping the oldest of each group."""
    result = await service.clean_duplicates()
    return CleanupResponse(
        duplicates_removed=result.duplicates_removed,
        total_faqs=result.total_faqs,
        duplicate_groups=[
            DuplicateGroupResponse(
                question=g.question,
                kept_faq_id=g.kept_faq_id,
                removed_faq_ids=g.removed_faq_ids,
                duplicate_count=g.duplicate_count,
            )
            for g in result.duplicate_groups
        ],
    )


# -----------------------------------------------------------------------------
# Single FAQ lifecycle
# -----------------------------------------------------------------------------


@router.post("", response_model=FAQResponse, status_code=status.HTTP_201_CREATED)
async def create_faq(
    body: FAQCreateRequest,
    user_id: str | None = Query(None),
    service: FAQGeneratorService = Depends(get_faq_service),
):
    """Create a FAQ by hand. 409 if a similar FAQ already exists in the category."""
    return await service.create_faq(body.question, body.answer, body.category, user_id=user_id)


@router.get("/{faq_id}", response_model=FAQResponse)
async def get_faq(faq_id: str, service: FAQGeneratorService = Depends(get_faq_service)):
    return service.get_or_raise(faq_id)


@router.patch("/{faq_id}", response_model=FAQResponse)
async def update_faq(
    faq_id: str,
    body: FAQUpdateRequest,
    service: FAQGeneratorService = Depends(get_faq_service),
):
    return await service.update_faq(
        faq_id, question=body.question, answer=body.answer, category=body.category
    )


@router.post("/{faq_id}/review", response_model=FAQResponse)
async def review_faq(
    faq_id: str,
    body: ReviewFAQRequest,
    service: FAQGeneratorService = Depends(get_faq_service),
):
    return await service.review_faq(faq_id, body.status, body.reviewed_by, body.feedback)


@router.post("/{faq_id}/enhance", response_model=FAQResponse)
async def enhance_faq(
    faq_id: str,
    body: EnhanceFAQRequest,
    service: FAQGeneratorService = Depends(get_faq_service),
):
    """Merge new question/answer content into an existing FAQ."""
    if not body.question and not body.answer:
        raise ValidationError("question or answer is required")
    return await service.enhance_faq(
        faq_id,
        EnhancementInput(
            question=body.question,
            answer=body.answer,
            source_document_id=body.source_document_id,
        ),
        body.user_id,
    )


@router.post("/{faq_id}/archive", response_model=FAQResponse)
async def archive_faq(faq_id: str, service: FAQGeneratorService = Depends(get_faq_service)):
    return await service.archive_faq(faq_id)


@router.get("/{faq_id}/sources", response_model=FAQSourcesResponse)
async def get_faq_sources(faq_id: str, service: FAQGeneratorService = Depends(get_faq_service)):
    """Source documents and messages a FAQ was generated from."""
    sources = service.get_faq_sources(faq_id)
    return FAQSourcesResponse(
        faq=FAQResponse.model_validate(sources.faq),
        documents=[SourceDocumentResponse.model_validate(d) for d in sources.documents],
        messages=[
            SourceMessageResponse(
                id=s.message.id,
                text=s.message.text,
                username=s.message.username,
                channel=s.message.channel,
                timestamp=s.message.timestamp,
                contribution_type=s.contribution_type,
            )
            for s in sources.messages
        ],
    )


@router.delete("/{faq_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_faq(faq_id: str, service: FAQGeneratorService = Depends(get_faq_service)):
    await service.delete_faq(faq_id)
