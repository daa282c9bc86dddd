"""Duplicate resolution for FAQ candidates.

Each qualified candidate ends up CREATED (new PENDING FAQ), ENHANCED (merged
into a near-identical existing FAQ) or SKIPPED (duplicate, left alone).
Candidates are handled one at a time and every created FAQ is upserted
before the next candidate is checked, so later candidates in the same run
see it.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from faq_curator.core.exceptions import (
    AppError,
    CompletionError,
    OperationCancelledError,
    VectorServiceError,
)
from faq_curator.db.models import FAQ, FAQStatus
from faq_curator.db.repositories import FAQRepository
from faq_curator.services.enhancement import FAQEnhancer
from faq_curator.services.faq_types import (
    Candidate,
    EnhancementInput,
    Outcome,
    ResolvedCandidate,
)
from faq_curator.services.protocols import EmbeddingGateway
from faq_curator.services.vector_index import (
    FAQMetadata,
    FAQVectorIndex,
    IndexFilter,
    IndexMatch,
)
from faq_curator.services.vector_utils import embedding_text

logger = logging.getLogger(__name__)


@dataclass
class DuplicateCheckResult:
    """Matches at or above the similarity threshold, best first."""

    is_duplicate: bool
    matches: list[IndexMatch] = field(default_factory=list)

    @property
    def best_match(self) -> IndexMatch | None:
        return self.matches[0] if self.matches else None


@dataclass
class ResolutionSummary:
    resolved: list[ResolvedCandidate] = field(default_factory=list)
    duplicates_found: int = 0
    enhanced_existing: int = 0
    failed_candidates: int = 0
    unindexed_faq_ids: list[str] = field(default_factory=list)

    @property
    def faqs(self) -> list[FAQ]:
        return [r.faq for r in self.resolved]


def select_candidates(
    candidates: list[Candidate], confidence_threshold: float, max_candidates: int
) -> list[Candidate]:
    """Drop low-confidence candidates, then cap the count (first come first kept)."""
    qualified = [c for c in candidates if c.confidence >= confidence_threshold]
    return qualified[:max_candidates]


def decide(
    check: DuplicateCheckResult, enhancement_threshold: float = 0.90
) -> tuple[Outcome, IndexMatch | None]:
    """Map a duplicate check to an outcome and the match it applies to."""
    best = check.best_match
    if not check.is_duplicate or best is None:
        return Outcome.CREATED, None
    if best.score >= enhancement_threshold:
        return Outcome.ENHANCED, best
    return Outcome.SKIPPED, best


class DuplicateResolver:
    """Runs candidates through embed, query, decide and apply.

    Args:
        db: Session used to persist created FAQs.
        index: Vector index holding existing FAQ embeddings.
        embedder: Embedding gateway for candidate text.
        enhancer: Merger used for ENHANCED outcomes.
        similarity_threshold: Minimum score for a match to count as a duplicate.
        enhancement_threshold: Minimum best-match score to enhance instead of skip.
        top_k: Matches requested from the index per candidate.
        detection_enabled: False bypasses duplicate checks and always creates.
    """

    def __init__(
        self,
        db: Session,
        index: FAQVectorIndex,
        embedder: EmbeddingGateway,
        enhancer: FAQEnhancer,
        *,
        similarity_threshold: float = 0.85,
        enhancement_threshold: float = 0.90,
        top_k: int = 10,
        detection_enabled: bool = True,
    ) -> None:
        self.db = db
        self.faqs = FAQRepository(db)
        self.index = index
        self.embedder = embedder
        self.enhancer = enhancer
        self.similarity_threshold = similarity_threshold
        self.enhancement_threshold = enhancement_threshold
        self.top_k = top_k
        self.detection_enabled = detection_enabled

    async def check_for_duplicates(
        self, question: str, answer: str, category: str
    ) -> tuple[DuplicateCheckResult, list[float]]:
        """Embed a question/answer pair and find duplicate FAQs in its category.

        Returns the check together with the vector so a CREATED outcome can
        store it without embedding twice.
        """
        vector = await self.embedder.embed(embedding_text(question, answer))
        return await self.check_vector(vector, category), vector

    async def check_vector(self, vector: list[float], category: str) -> DuplicateCheckResult:
        matches = await self.index.query(
            vector,
            top_k=self.top_k,
            index_filter=IndexFilter.duplicate_targets(category),
        )
        duplicates = [m for m in matches if m.score >= self.similarity_threshold]
        return DuplicateCheckResult(is_duplicate=bool(duplicates), matches=duplicates)

    async def resolve(
        self,
        candidates: list[Candidate],
        *,
        document_id: str | None = None,
        user_id: str | None = None,
    ) -> ResolutionSummary:
        """Resolve already-qualified candidates in order.

        A candidate that fails is logged and counted; the rest still run.
        FAQs whose upsert failed are retried once as a batch at the end.
        """
        summary = ResolutionSummary()
        pending_index: list[FAQ] = []

        for candidate in candidates:
            position = len(summary.resolved)
            try:
                resolved = await self._resolve_one(
                    candidate, position, summary, pending_index, document_id, user_id
                )
            except OperationCancelledError:
                raise
            except (VectorServiceError, CompletionError, AppError, SQLAlchemyError) as e:
                summary.failed_candidates += 1
                logger.warning(f"Failed to process FAQ candidate {candidate.question[:50]!r}: {e}")
                continue
            if resolved is not None:
                summary.resolved.append(resolved)

        if pending_index:
            retry = await self.index.store_embeddings_batch(pending_index)
            summary.unindexed_faq_ids = list(retry.failed_ids)
            if retry.failed_ids:
                logger.error(
                    f"{len(retry.failed_ids)} FAQs remain unindexed after batch retry: "
                    f"{retry.failed_ids}"
                )

        return summary

    async def _resolve_one(
        self,
        candidate: Candidate,
        position: int,
        summary: ResolutionSummary,
        pending_index: list[FAQ],
        document_id: str | None,
        user_id: str | None,
    ) -> ResolvedCandidate | None:
        if not self.detection_enabled:
            faq = self._create_faq(candidate)
            try:
                await self.index.index_faq(faq)
            except VectorServiceError as e:
                logger.warning(f"Upsert for FAQ {faq.id} failed, will retry in batch: {e}")
                pending_index.append(faq)
            return ResolvedCandidate(faq, candidate, Outcome.CREATED, position)

        check, vector = await self.check_for_duplicates(
            candidate.question, candidate.answer, candidate.category
        )
        outcome, match = decide(check, self.enhancement_threshold)

        if outcome is Outcome.SKIPPED:
            summary.duplicates_found += 1
            logger.info(
                f"Skipped duplicate FAQ candidate {candidate.question[:50]!r} "
                f"(matches {match.id} at {match.score:.3f})"
            )
            return None

        if outcome is Outcome.ENHANCED:
            summary.duplicates_found += 1
            faq = await self.enhancer.enhance(
                match.id,
                EnhancementInput(
                    question=candidate.question,
                    answer=candidate.answer,
                    source_document_id=document_id,
                ),
                user_id or "system",
            )
            summary.enhanced_existing += 1
            logger.info(f"Enhanced existing FAQ {match.id} (score {match.score:.3f})")
            return ResolvedCandidate(faq, candidate, Outcome.ENHANCED, position)

        faq = self._create_faq(candidate)
        try:
            await self.index.store_embedding(faq.id, vector, FAQMetadata.from_faq(faq))
        except VectorServiceError as e:
            logger.warning(f"Upsert for FAQ {faq.id} failed, will retry in batch: {e}")
            pending_index.append(faq)
        return ResolvedCandidate(faq, candidate, Outcome.CREATED, position)

    def _create_faq(self, candidate: Candidate) -> FAQ:
        faq = FAQ(
            question=candidate.question,
            answer=candidate.answer,
            category=candidate.category,
            status=FAQStatus.PENDING.value,
            confidence_score=candidate.confidence,
        )
        self.faqs.add(faq)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.faqs.refresh(faq)
        logger.info(f"Created new FAQ {faq.id}")
        return faq
