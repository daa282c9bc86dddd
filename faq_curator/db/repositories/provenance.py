"""Repositories for FAQ provenance edges."""

from sqlalchemy import select

from faq_curator.db.models import DocumentFAQ, Message, MessageFAQ, ProcessedDocument
from faq_curator.db.repositories.base import BaseRepository


class DocumentFAQRepository(BaseRepository[DocumentFAQ]):
    model = DocumentFAQ

    def get_for_pair(self, document_id: str, faq_id: str) -> DocumentFAQ | None:
        return self.first_by(document_id=document_id, faq_id=faq_id)

    def list_documents_for_faq(self, faq_id: str) -> list[tuple[DocumentFAQ, ProcessedDocument]]:
        stmt = (
            select(DocumentFAQ, ProcessedDocument)
            .join(ProcessedDocument, ProcessedDocument.id == DocumentFAQ.document_id)
            .where(DocumentFAQ.faq_id == faq_id)
            .order_by(DocumentFAQ.created_at.asc())
        )
        return [(edge, doc) for edge, doc in self.db.execute(stmt).all()]


class MessageFAQRepository(BaseRepository[MessageFAQ]):
    model = MessageFAQ

    def list_messages_for_faq(self, faq_id: str) -> list[tuple[MessageFAQ, Message]]:
        stmt = (
            select(MessageFAQ, Message)
            .join(Message, Message.id == MessageFAQ.message_id)
            .where(MessageFAQ.faq_id == faq_id)
            .order_by(Message.timestamp.asc())
        )
        return [(edge, message) for edge, message in self.db.execute(stmt).all()]
