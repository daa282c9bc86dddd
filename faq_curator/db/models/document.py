"""Upstream document and message models read by the FAQ engine.

Ingestion of these rows happens elsewhere; only the shape the generator
needs is modelled here.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from faq_curator.db.database import Base
from faq_curator.db.models.base import MessageRole, TimestampMixin, generate_uuid


class ProcessedDocument(TimestampMixin, Base):
    __tablename__ = "processed_documents"

    id = Column(String, primary_key=True, default=generate_uuid)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)

    message_links = relationship(
        "DocumentMessage",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Message(Base):
    __tablename__ = "messages"

    id = Column(String, primary_key=True, default=generate_uuid)
    text = Column(Text, nullable=False)
    username = Column(String, nullable=True)
    channel = Column(String, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)


class DocumentMessage(Base):
    """Membership of a message in a processed document, with its role."""

    __tablename__ = "document_messages"
    __table_args__ = (
        UniqueConstraint("document_id", "message_id", name="uq_document_messages"),
        Index("idx_document_messages_document", "document_id"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    document_id = Column(
        String, ForeignKey("processed_documents.id", ondelete="CASCADE"), nullable=False
    )
    message_id = Column(String, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False)
    message_role = Column(String, nullable=False, default=MessageRole.CONTEXT.value)
    processing_confidence = Column(Float, nullable=True)

    document = relationship("ProcessedDocument", back_populates="message_links")
    message = relationship("Message")
