"""FAQ generation, review and lifecycle service.

Orchestrates the completion gateway, duplicate resolution, enhancement and
provenance tracking for processed documents, and exposes the review and
maintenance operations used by the API.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from faq_curator.config import Settings
from faq_curator.core.exceptions import (
    AppError,
    CompletionError,
    DuplicateFAQError,
    EntityNotFound,
    FAQGenerationError,
    OperationCancelledError,
    ValidationError,
    VectorServiceError,
)
from faq_curator.db.models import FAQ, FAQStatus, Message, ProcessedDocument
from faq_curator.db.repositories import (
    DocumentFAQRepository,
    DocumentRepository,
    FAQRepository,
    MessageFAQRepository,
)
from faq_curator.services.base import BaseService
from faq_curator.services.duplicate_resolver import DuplicateResolver, select_candidates
from faq_curator.services.enhancement import FAQEnhancer
from faq_curator.services.faq_types import (
    Candidate,
    CandidateRequest,
    EnhancementInput,
    PromptMessage,
)
from faq_curator.services.protocols import CompletionGateway, EmbeddingGateway
from faq_curator.services.relationships import RelationshipTracker
from faq_curator.services.vector_index import FAQMetadata, FAQVectorIndex, IndexFilter

logger = logging.getLogger(__name__)

REVIEW_STATUSES = frozenset({FAQStatus.APPROVED.value, FAQStatus.REJECTED.value})
DEFAULT_CATEGORY = "General"


@dataclass
class FAQGenerationResult:
    document_id: str
    faqs: list[FAQ] = field(default_factory=list)
    duplicates_found: int = 0
    enhanced_existing: int = 0
    failed_candidates: int = 0
    processing_time_ms: float = 0.0


@dataclass
class BulkGenerationResult:
    results: list[FAQGenerationResult] = field(default_factory=list)
    total_faqs: int = 0
    total_duplicates: int = 0
    failed_document_ids: list[str] = field(default_factory=list)


@dataclass
class SimilarFAQ:
    faq: FAQ
    similarity: float
    metadata: FAQMetadata


@dataclass
class SourceMessage:
    message: Message
    contribution_type: str | None = None


@dataclass
class FAQSources:
    faq: FAQ
    documents: list[ProcessedDocument]
    messages: list[SourceMessage]


@dataclass
class FAQStats:
    total_faqs: int
    by_status: dict[str, int]
    by_category: dict[str, int]
    average_confidence: float
    pending_review: int


@dataclass
class DuplicateGroup:
    question: str
    kept_faq_id: str
    removed_faq_ids: list[str]

    @property
    def duplicate_count(self) -> int:
        return len(self.removed_faq_ids)


@dataclass
class CleanupResult:
    duplicates_removed: int = 0
    total_faqs: int = 0
    duplicate_groups: list[DuplicateGroup] = field(default_factory=list)


class FAQGeneratorService(BaseService[FAQ, FAQRepository]):
    """Entry point for FAQ generation and curation.

    Example:
        >>> service = FAQGeneratorService(db, index=index, embedder=embedder,
        ...     completion=completion, settings=get_settings())
        >>> result = await service.generate_faqs_from_document(doc_id)
    """

    repository_class = FAQRepository

    def __init__(
        self,
        db: Session,
        *,
        index: FAQVectorIndex,
        embedder: EmbeddingGateway,
        completion: CompletionGateway,
        settings: Settings,
    ) -> None:
        super().__init__(db)
        self.index = index
        self.embedder = embedder
        self.completion = completion
        self.settings = settings
        self.documents = DocumentRepository(db)
        self.document_faqs = DocumentFAQRepository(db)
        self.message_faqs = MessageFAQRepository(db)
        self.enhancer = FAQEnhancer(db, completion, index)
        self.resolver = DuplicateResolver(
            db,
            index,
            embedder,
            self.enhancer,
            similarity_threshold=settings.faq_similarity_threshold,
            enhancement_threshold=settings.faq_enhancement_threshold,
            top_k=settings.faq_duplicate_top_k,
            detection_enabled=settings.faq_duplicate_detection_enabled,
        )
        self.tracker = RelationshipTracker(db, settings.contribution_type_strategy)

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    async def generate_faqs_from_document(
        self,
        document_id: str,
        category_override: str | None = None,
        user_id: str | None = None,
    ) -> FAQGenerationResult:
        """Generate, deduplicate and record FAQs for one processed document.

        Raises:
            EntityNotFound: The document does not exist.
            FAQGenerationError: Persistence or index failure outside the
                per-candidate error handling.
        """
        start = time.perf_counter()
        document = self.documents.get(document_id)
        if document is None:
            raise EntityNotFound("ProcessedDocument not found", context={"id": document_id})

        try:
            messages = self.documents.list_ordered_messages(document_id)
            candidates = await self._generate_candidates(document, messages, category_override)
            summary = await self.resolver.resolve(
                candidates, document_id=document_id, user_id=user_id
            )
            if summary.resolved:
                self.tracker.track(document_id, summary.resolved, messages, user_id)
        except OperationCancelledError:
            raise
        except (SQLAlchemyError, VectorServiceError) as e:
            logger.error(f"FAQ generation failed for document {document_id}: {e}")
            raise FAQGenerationError(
                f"FAQ generation failed: {e}", context={"document_id": document_id}
            ) from e

        result = FAQGenerationResult(
            document_id=document_id,
            faqs=summary.faqs,
            duplicates_found=summary.duplicates_found,
            enhanced_existing=summary.enhanced_existing,
            failed_candidates=summary.failed_candidates,
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )
        logger.info(
            f"Generated {len(result.faqs)} FAQs from document {document_id}: "
            f"{result.duplicates_found} duplicates, {result.enhanced_existing} enhanced, "
            f"{result.failed_candidates} failed ({result.processing_time_ms:.0f}ms)"
        )
        return result

    async def _generate_candidates(
        self,
        document: ProcessedDocument,
        messages: list[tuple[Message, str]],
        category_override: str | None,
    ) -> list[Candidate]:
        if not messages:
            logger.warning(f"Document {document.id} has no messages, nothing to generate")
            return []

        category = category_override or document.category or DEFAULT_CATEGORY
        request = CandidateRequest(
            title=document.title,
            description=document.description or "",
            category=category,
            messages=[
                PromptMessage(text=m.text, username=m.username or "unknown", role=role)
                for m, role in messages
            ],
        )

        try:
            proposed = await self.completion.generate_candidates(request)
        except CompletionError as e:
            logger.error(f"Candidate generation failed for document {document.id}: {e}")
            return []

        if category_override:
            for candidate in proposed:
                candidate.category = category_override

        selected = select_candidates(
            proposed,
            self.settings.faq_confidence_threshold,
            self.settings.faq_max_per_document,
        )
        logger.info(
            f"Selected {len(selected)} FAQ candidates from {len(proposed)} proposed "
            f"for document {document.id}"
        )
        return selected

    async def generate_faqs_from_multiple_documents(
        self,
        document_ids: list[str],
        category_override: str | None = None,
        user_id: str | None = None,
    ) -> BulkGenerationResult:
        """Run generation for several documents; a failing document is skipped."""
        bulk = BulkGenerationResult()
        for document_id in document_ids:
            try:
                result = await self.generate_faqs_from_document(
                    document_id, category_override=category_override, user_id=user_id
                )
            except OperationCancelledError:
                raise
            except (AppError, VectorServiceError, CompletionError) as e:
                logger.warning(f"Skipping document {document_id} in bulk generation: {e}")
                bulk.failed_document_ids.append(document_id)
                continue
            bulk.results.append(result)
            bulk.total_faqs += len(result.faqs)
            bulk.total_duplicates += result.duplicates_found

        logger.info(
            f"Bulk generation over {len(document_ids)} documents: {bulk.total_faqs} FAQs, "
            f"{bulk.total_duplicates} duplicates, {len(bulk.failed_document_ids)} failed"
        )
        return bulk

    # -------------------------------------------------------------------------
    # Curation
    # -------------------------------------------------------------------------

    async def enhance_faq(
        self, existing_faq_id: str, new_content: EnhancementInput, user_id: str
    ) -> FAQ:
        return await self.enhancer.enhance(existing_faq_id, new_content, user_id)

    async def review_faq(
        self,
        faq_id: str,
        status: str,
        reviewed_by: str,
        feedback: str | None = None,
    ) -> FAQ:
        """Approve or reject a FAQ and refresh its index payload.

        Raises:
            ValidationError: ``status`` is not APPROVED or REJECTED.
            EntityNotFound: No FAQ with that id.
        """
        status = str(status).upper()
        if status not in REVIEW_STATUSES:
            raise ValidationError(
                "Review status must be APPROVED or REJECTED", context={"status": status}
            )

        faq = self.get_or_raise(faq_id)
        faq = self.update(
            faq,
            status=status,
            approved_by=reviewed_by,
            approved_at=datetime.utcnow(),
        )

        try:
            await self.index.update_metadata(faq.id, FAQMetadata.from_faq(faq))
        except VectorServiceError as e:
            logger.error(f"Failed to refresh index status for FAQ {faq.id}: {e}")

        if feedback:
            logger.info(f"FAQ {faq.id} {status.lower()} by {reviewed_by}: {feedback}")
        else:
            logger.info(f"FAQ {faq.id} {status.lower()} by {reviewed_by}")
        return faq

    async def create_faq(
        self, question: str, answer: str, category: str, user_id: str | None = None
    ) -> FAQ:
        """Create a FAQ by hand. Manual FAQs get full confidence and start PENDING.

        Raises:
            ValidationError: An empty field.
            DuplicateFAQError: A similar FAQ already exists in the category.
        """
        question, answer, category = question.strip(), answer.strip(), category.strip()
        for name, value in (("question", question), ("answer", answer), ("category", category)):
            if not value:
                raise ValidationError(f"{name} is required and cannot be empty")

        check, vector = await self.resolver.check_for_duplicates(question, answer, category)
        if check.is_duplicate:
            best = check.best_match
            raise DuplicateFAQError(
                "Similar FAQ already exists",
                context={"existing_faq_id": best.id, "similarity": best.score},
            )

        faq = self.create(
            FAQ(
                question=question,
                answer=answer,
                category=category,
                status=FAQStatus.PENDING.value,
                confidence_score=1.0,
            )
        )
        try:
            await self.index.store_embedding(faq.id, vector, FAQMetadata.from_faq(faq))
        except VectorServiceError:
            logger.error(f"Indexing manual FAQ {faq.id} failed, removing record")
            self.delete(faq)
            raise
        logger.info(f"Created manual FAQ {faq.id} by {user_id or 'system'}")
        return faq

    async def update_faq(
        self,
        faq_id: str,
        question: str | None = None,
        answer: str | None = None,
        category: str | None = None,
    ) -> FAQ:
        """Edit FAQ content.

        Changed text is re-embedded; a category change refreshes the payload.
        """
        faq = self.get_or_raise(faq_id)
        content_changed = (question is not None and question.strip() != faq.question) or (
            answer is not None and answer.strip() != faq.answer
        )
        category_changed = category is not None and category.strip() != faq.category

        faq = self.update(
            faq,
            question=question.strip() if question is not None else None,
            answer=answer.strip() if answer is not None else None,
            category=category.strip() if category is not None else None,
        )

        try:
            if content_changed:
                await self.index.index_faq(faq)
            elif category_changed:
                await self.index.update_metadata(faq.id, FAQMetadata.from_faq(faq))
        except VectorServiceError as e:
            logger.error(f"Failed to refresh index for updated FAQ {faq.id}: {e}")

        logger.info(f"Updated FAQ {faq.id}")
        return faq

    async def archive_faq(self, faq_id: str) -> FAQ:
        """Retire a FAQ. Archived FAQs are no longer duplicate targets."""
        faq = self.update(self.get_or_raise(faq_id), status=FAQStatus.ARCHIVED.value)
        try:
            await self.index.update_metadata(faq.id, FAQMetadata.from_faq(faq))
        except VectorServiceError as e:
            logger.error(f"Failed to refresh index status for FAQ {faq.id}: {e}")
        logger.info(f"Archived FAQ {faq.id}")
        return faq

    async def delete_faq(self, faq_id: str) -> None:
        """Delete a FAQ (edges cascade), then its embedding.

        A failed embedding delete is logged; the stale point is later purged
        by ``clean_duplicates`` or ignored by searches.
        """
        faq = self.get_or_raise(faq_id)
        self.delete(faq)
        try:
            await self.index.delete_embedding(faq_id)
        except VectorServiceError as e:
            logger.warning(f"Failed to delete embedding for FAQ {faq_id}: {e}")
        logger.info(f"Deleted FAQ {faq_id}")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def list_faqs(
        self,
        category: str | None = None,
        status: str | None = None,
        search: str | None = None,
        min_confidence: float | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[FAQ], int]:
        page = max(1, page)
        limit = min(100, max(1, limit))
        return self.repo.list_filtered(
            category=category,
            status=status.upper() if status else None,
            search=search,
            min_confidence=min_confidence,
            offset=(page - 1) * limit,
            limit=limit,
        )

    async def find_similar_faqs(
        self,
        query: str,
        category: str | None = None,
        status: list[str] | None = None,
        top_k: int = 10,
        min_score: float | None = None,
    ) -> list[SimilarFAQ]:
        """Semantic search over FAQs.

        Index hits without a persisted FAQ are dropped.
        """
        if min_score is None:
            min_score = self.settings.faq_search_min_score
        vector = await self.embedder.embed(query)
        matches = await self.index.query(
            vector,
            top_k=top_k,
            index_filter=IndexFilter(
                category=category,
                status_in=tuple(s.upper() for s in status or ()),
            ),
        )
        matches = [m for m in matches if m.score >= min_score]
        faqs = self.repo.get_many([m.id for m in matches])

        results = []
        for match in matches:
            faq = faqs.get(match.id)
            if faq is None:
                logger.debug(f"Dropping index hit {match.id} with no FAQ record")
                continue
            results.append(SimilarFAQ(faq=faq, similarity=match.score, metadata=match.metadata))
        logger.info(f"Found {len(results)} similar FAQs for query {query[:50]!r}")
        return results

    def get_faq_sources(self, faq_id: str) -> FAQSources:
        """Source documents of a FAQ and the messages of those documents.

        Messages are unique and in timestamp order; those with a MessageFAQ
        edge carry its contribution type.
        """
        faq = self.get_or_raise(faq_id)
        documents = [doc for _, doc in self.document_faqs.list_documents_for_faq(faq_id)]
        contributions = {
            edge.message_id: edge.contribution_type
            for edge, _ in self.message_faqs.list_messages_for_faq(faq_id)
        }

        seen: dict[str, SourceMessage] = {}
        for document in documents:
            for message, _ in self.documents.list_ordered_messages(document.id):
                if message.id not in seen:
                    seen[message.id] = SourceMessage(
                        message=message, contribution_type=contributions.get(message.id)
                    )
        messages = sorted(seen.values(), key=lambda s: s.message.timestamp)
        logger.info(
            f"Fetched sources for FAQ {faq_id}: {len(documents)} documents, "
            f"{len(messages)} messages"
        )
        return FAQSources(faq=faq, documents=documents, messages=messages)

    def get_faq_stats(self) -> FAQStats:
        by_status = {s.value: 0 for s in FAQStatus}
        by_status.update(self.repo.count_by_status())
        return FAQStats(
            total_faqs=sum(by_status.values()),
            by_status=by_status,
            by_category=self.repo.count_by_category(),
            average_confidence=self.repo.average_confidence(),
            pending_review=by_status[FAQStatus.PENDING.value],
        )

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def clean_duplicates(self) -> CleanupResult:
        """Remove semantic duplicates, keeping the oldest FAQ of each group.

        Index ids without a FAQ record found along the way are purged from
        the index only.
        """
        faqs = self.repo.list_oldest_first()
        result = CleanupResult(total_faqs=len(faqs))
        processed: set[str] = set()
        logger.info(f"Starting duplicate cleanup over {len(faqs)} FAQs")

        for faq in faqs:
            if faq.id in processed:
                continue
            processed.add(faq.id)
            try:
                check, _ = await self.resolver.check_for_duplicates(
                    faq.question, faq.answer, faq.category
                )
            except OperationCancelledError:
                raise
            except VectorServiceError as e:
                logger.warning(f"Failed to check duplicates for FAQ {faq.id}: {e}")
                continue

            group_ids = [m.id for m in check.matches if m.id not in processed]
            if not group_ids:
                continue

            removed = []
            for duplicate_id in group_ids:
                processed.add(duplicate_id)
                if await self._remove_duplicate(duplicate_id):
                    removed.append(duplicate_id)

            if removed:
                result.duplicates_removed += len(removed)
                result.duplicate_groups.append(
                    DuplicateGroup(
                        question=faq.question[:100],
                        kept_faq_id=faq.id,
                        removed_faq_ids=removed,
                    )
                )

        logger.info(
            f"Duplicate cleanup removed {result.duplicates_removed} FAQs "
            f"in {len(result.duplicate_groups)} groups"
        )
        return result

    async def _remove_duplicate(self, faq_id: str) -> bool:
        """Delete a duplicate FAQ and its embedding. Returns True if a record was deleted."""
        duplicate = self.repo.get(faq_id)
        if duplicate is None:
            logger.warning(f"FAQ {faq_id} not found in database, purging stale embedding only")
            try:
                await self.index.delete_embedding(faq_id)
            except VectorServiceError as e:
                logger.warning(f"Failed to purge stale embedding {faq_id}: {e}")
            return False

        try:
            self.delete(duplicate)
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete duplicate FAQ {faq_id}: {e}")
            return False

        try:
            await self.index.delete_embedding(faq_id)
        except VectorServiceError as e:
            logger.warning(f"Failed to delete embedding for duplicate FAQ {faq_id}: {e}")
        logger.info(f"Deleted duplicate FAQ {faq_id}")
        return True

    async def health_check(self) -> dict:
        """FAQ statistics plus vector index health. Never raises."""
        index_health = await self.index.health_check()
        try:
            stats = self.get_faq_stats()
        except SQLAlchemyError as e:
            logger.warning(f"FAQ health check failed: {e}")
            return {"is_healthy": False, "error": str(e)}

        if not index_health["is_healthy"]:
            return {"is_healthy": False, "error": index_health["error"]}

        return {
            "is_healthy": True,
            "stats": {
                "faqs": {
                    "total_faqs": stats.total_faqs,
                    "by_status": stats.by_status,
                    "pending_review": stats.pending_review,
                    "average_confidence": stats.average_confidence,
                },
                "index": index_health["stats"],
            },
        }
