"""Processed document repository."""

from sqlalchemy import select

from faq_curator.db.models import DocumentMessage, Message, ProcessedDocument
from faq_curator.db.repositories.base import BaseRepository


class DocumentRepository(BaseRepository[ProcessedDocument]):
    model = ProcessedDocument

    def list_ordered_messages(self, document_id: str) -> list[tuple[Message, str]]:
        """Messages of a document in timestamp order, paired with their role.

        The position of a message in this list is the index the completion
        gateway refers to in ``source_message_ids``.
        """
        stmt = (
            select(Message, DocumentMessage.message_role)
            .join(DocumentMessage, DocumentMessage.message_id == Message.id)
            .where(DocumentMessage.document_id == document_id)
            .order_by(Message.timestamp.asc(), Message.id.asc())
        )
        return [(message, role) for message, role in self.db.execute(stmt).all()]
