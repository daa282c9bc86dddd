"""Provenance edges from FAQs back to source documents and messages."""

import logging
from typing import Literal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from faq_curator.db.models import (
    ContributionType,
    DocumentFAQ,
    GenerationMethod,
    Message,
    MessageFAQ,
    MessageRole,
)
from faq_curator.db.repositories import DocumentFAQRepository, MessageFAQRepository
from faq_curator.services.faq_types import ResolvedCandidate

logger = logging.getLogger(__name__)

ContributionStrategy = Literal["position", "role"]

_ROLE_CONTRIBUTIONS = {
    MessageRole.QUESTION.value: ContributionType.PRIMARY_QUESTION,
    MessageRole.ANSWER.value: ContributionType.PRIMARY_ANSWER,
    MessageRole.CONTEXT.value: ContributionType.SUPPORTING_CONTEXT,
}


def _parse_index(raw: str) -> int | None:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def resolve_message_ids(raw_indices: list[str], messages: list[tuple[Message, str]]) -> list[str]:
    """Map message indices to message ids.

    Indices that are not integers or fall outside the list pass through as
    the raw string.
    """
    resolved = []
    for raw in raw_indices:
        idx = _parse_index(raw)
        if idx is not None and 0 <= idx < len(messages):
            resolved.append(messages[idx][0].id)
        else:
            resolved.append(raw)
    return resolved


def positional_contribution(raw_index: str, faq_position: int) -> ContributionType:
    """Legacy heuristic keyed on the message index and the FAQ's position in the run."""
    index = _parse_index(raw_index) or 0
    if index == 0 or faq_position == 0:
        return ContributionType.PRIMARY_QUESTION
    if index == 1 or faq_position == 1:
        return ContributionType.PRIMARY_ANSWER
    return ContributionType.SUPPORTING_CONTEXT


class RelationshipTracker:
    """Writes DocumentFAQ and MessageFAQ edges for one generation run.

    Edge writes are best-effort: any failure rolls back the edge writes and
    is logged. FAQs were committed earlier and are unaffected.
    """

    def __init__(self, db: Session, strategy: ContributionStrategy = "position") -> None:
        self.db = db
        self.strategy = strategy
        self.document_faqs = DocumentFAQRepository(db)
        self.message_faqs = MessageFAQRepository(db)

    def contribution_type(self, raw_index: str, faq_position: int, role: str) -> ContributionType:
        if self.strategy == "role":
            return _ROLE_CONTRIBUTIONS.get(role, ContributionType.SUPPORTING_CONTEXT)
        return positional_contribution(raw_index, faq_position)

    def track(
        self,
        document_id: str,
        resolved: list[ResolvedCandidate],
        messages: list[tuple[Message, str]],
        user_id: str | None = None,
    ) -> int:
        """Create provenance edges. Returns the number of MessageFAQ edges written."""
        message_edges = 0
        try:
            for item in resolved:
                message_edges += self._track_one(document_id, item, messages, user_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create FAQ relationships for document {document_id}: {e}")
            return 0

        logger.info(
            f"Created relationships for {len(resolved)} FAQs "
            f"({message_edges} message edges) from document {document_id}"
        )
        return message_edges

    def _track_one(
        self,
        document_id: str,
        item: ResolvedCandidate,
        messages: list[tuple[Message, str]],
        user_id: str | None,
    ) -> int:
        faq = item.faq
        source_ids = resolve_message_ids(item.candidate.source_message_ids, messages)

        edge = self.document_faqs.get_for_pair(document_id, faq.id)
        if edge is not None:
            edge.source_message_ids = source_ids
        else:
            self.document_faqs.add(
                DocumentFAQ(
                    document_id=document_id,
                    faq_id=faq.id,
                    generation_method=GenerationMethod.AI_GENERATED.value,
                    source_message_ids=source_ids,
                    confidence_score=faq.confidence_score,
                    generated_by=user_id,
                )
            )

        written = 0
        seen: set[str] = set()
        for raw in item.candidate.source_message_ids:
            idx = _parse_index(raw)
            if idx is None or not 0 <= idx < len(messages):
                continue
            message, role = messages[idx]
            if message.id in seen or self.message_faqs.exists(message_id=message.id, faq_id=faq.id):
                continue
            seen.add(message.id)
            self.message_faqs.add(
                MessageFAQ(
                    message_id=message.id,
                    faq_id=faq.id,
                    contribution_type=self.contribution_type(raw, item.position, role).value,
                    document_id=document_id,
                )
            )
            written += 1
        self.db.flush()
        return written
