"""Merge a near-duplicate candidate into an existing FAQ."""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from faq_curator.core.exceptions import CompletionError, VectorServiceError
from faq_curator.db.models import FAQ, DocumentFAQ, FAQStatus, GenerationMethod
from faq_curator.db.repositories import DocumentFAQRepository, FAQRepository
from faq_curator.services.base import BaseService
from faq_curator.services.faq_types import EnhancementInput
from faq_curator.services.protocols import CompletionGateway
from faq_curator.services.vector_index import FAQVectorIndex

logger = logging.getLogger(__name__)


class FAQEnhancer(BaseService[FAQ, FAQRepository]):
    """Rewrites an existing FAQ with merged content and sends it back to review.

    The FAQ update is committed before the index is touched; a failed
    re-embed leaves the record updated and the old vector in place.
    """

    repository_class = FAQRepository

    def __init__(self, db: Session, completion: CompletionGateway, index: FAQVectorIndex) -> None:
        super().__init__(db)
        self.completion = completion
        self.index = index
        self.document_faqs = DocumentFAQRepository(db)

    async def enhance(self, existing_faq_id: str, new: EnhancementInput, user_id: str) -> FAQ:
        """Merge ``new`` into the FAQ ``existing_faq_id``.

        Raises:
            EntityNotFound: No FAQ with that id.
            CompletionError: The completion gateway failed.
        """
        faq = self.get_or_raise(existing_faq_id)

        try:
            enhanced = await self.completion.enhance(
                (faq.question, faq.answer),
                (new.question or faq.question, new.answer or faq.answer),
            )
        except CompletionError:
            logger.warning(f"Enhancement of FAQ {faq.id} failed in completion gateway")
            raise

        faq = self.update(
            faq,
            question=enhanced.enhanced_question,
            answer=enhanced.enhanced_answer,
            confidence_score=enhanced.confidence,
            status=FAQStatus.PENDING.value,
            updated_at=datetime.utcnow(),
        )
        logger.info(f"Enhanced FAQ {faq.id} (confidence {enhanced.confidence:.2f})")

        try:
            await self.index.index_faq(faq)
        except VectorServiceError as e:
            logger.error(f"Re-embedding enhanced FAQ {faq.id} failed: {e}")

        if new.source_document_id:
            self._record_hybrid_edge(faq, new.source_document_id, user_id)

        return faq

    def _record_hybrid_edge(self, faq: FAQ, document_id: str, user_id: str) -> None:
        try:
            edge = self.document_faqs.get_for_pair(document_id, faq.id)
            if edge is None:
                self.document_faqs.add(
                    DocumentFAQ(
                        document_id=document_id,
                        faq_id=faq.id,
                        generation_method=GenerationMethod.HYBRID.value,
                        source_message_ids=[],
                        confidence_score=faq.confidence_score,
                        generated_by=user_id,
                    )
                )
            else:
                edge.generation_method = GenerationMethod.HYBRID.value
                edge.confidence_score = faq.confidence_score
            self.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to record HYBRID edge for FAQ {faq.id}: {e}")
