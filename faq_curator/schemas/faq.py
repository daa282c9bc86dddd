"""FAQ curation schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class FAQResponse(BaseModel):
    id: str
    question: str
    answer: str
    category: str
    status: str
    confidence_score: float
    approved_by: str | None
    approved_at: datetime | None
    created_at: datetime | None
    updated_at: datetime | None

    class Config:
        from_attributes = True


class FAQListResponse(BaseModel):
    faqs: list[FAQResponse]
    total: int
    page: int
    limit: int


class FAQCreateRequest(BaseModel):
    """Manually authored FAQ."""

    question: str = Field(..., min_length=1, max_length=4000)
    answer: str = Field(..., min_length=1, max_length=20000)
    category: str = Field(..., min_length=1, max_length=200)


class FAQUpdateRequest(BaseModel):
    """Partial edit; omitted fields are left unchanged."""

    question: str | None = Field(default=None, min_length=1, max_length=4000)
    answer: str | None = Field(default=None, min_length=1, max_length=20000)
    category: str | None = Field(default=None, min_length=1, max_length=200)


# Generation
class GenerateFAQsRequest(BaseModel):
    document_id: str
    category_override: str | None = None


class BulkGenerateFAQsRequest(BaseModel):
    document_ids: list[str] = Field(..., min_length=1, max_length=100)
    category_override: str | None = None


class GenerationResultResponse(BaseModel):
    """Outcome of a synchronous generation run for one document."""

    document_id: str
    faqs: list[FAQResponse]
    duplicates_found: int
    enhanced_existing: int
    failed_candidates: int
    processing_time_ms: float


class GenerateFAQsResponse(BaseModel):
    """Generation was either queued (job_id set) or scheduled in-process."""

    document_id: str
    queued: bool
    job_id: str | None = None
    message: str


class BulkGenerationResponse(BaseModel):
    results: list[GenerationResultResponse]
    total_faqs: int
    total_duplicates: int
    failed_document_ids: list[str]


# Review / enhancement
class ReviewFAQRequest(BaseModel):
    status: Literal["APPROVED", "REJECTED"]
    reviewed_by: str = Field(..., min_length=1)
    feedback: str | None = None


class EnhanceFAQRequest(BaseModel):
    """New content to merge into an existing FAQ. At least one of question/answer."""

    question: str | None = None
    answer: str | None = None
    source_document_id: str | None = None
    user_id: str = "system"


# Search
class SimilarFAQResponse(BaseModel):
    faq: FAQResponse
    similarity: float


class SimilarFAQListResponse(BaseModel):
    results: list[SimilarFAQResponse]
    total: int


# Sources
class SourceDocumentResponse(BaseModel):
    id: str
    title: str
    description: str | None
    category: str | None

    class Config:
        from_attributes = True


class SourceMessageResponse(BaseModel):
    id: str
    text: str
    username: str | None
    channel: str | None
    timestamp: datetime
    contribution_type: str | None = None


class FAQSourcesResponse(BaseModel):
    faq: FAQResponse
    documents: list[SourceDocumentResponse]
    messages: list[SourceMessageResponse]


# Stats / maintenance
class FAQStatsResponse(BaseModel):
    total_faqs: int
    by_status: dict[str, int]
    by_category: dict[str, int]
    average_confidence: float
    pending_review: int


class DuplicateGroupResponse(BaseModel):
    question: str
    kept_faq_id: str
    removed_faq_ids: list[str]
    duplicate_count: int


class CleanupResponse(BaseModel):
    duplicates_removed: int
    total_faqs: int
    duplicate_groups: list[DuplicateGroupResponse]
