"""Provenance edges linking FAQs to source documents and messages."""

import json

from sqlalchemy import Column, Float, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from faq_curator.db.database import Base
from faq_curator.db.models.base import GenerationMethod, TimestampMixin, generate_uuid


class DocumentFAQ(TimestampMixin, Base):
    __tablename__ = "document_faqs"
    __table_args__ = (
        UniqueConstraint("document_id", "faq_id", name="uq_document_faqs"),
        Index("idx_document_faqs_faq", "faq_id"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    document_id = Column(
        String, ForeignKey("processed_documents.id", ondelete="CASCADE"), nullable=False
    )
    faq_id = Column(String, ForeignKey("faqs.id", ondelete="CASCADE"), nullable=False)
    generation_method = Column(String, nullable=False, default=GenerationMethod.AI_GENERATED.value)
    source_message_ids_json = Column(
        "source_message_ids", Text, nullable=False, default="[]"
    )  # JSON array of message ids
    confidence_score = Column(Float, nullable=True)
    generated_by = Column(String, nullable=True)

    faq = relationship("FAQ", back_populates="document_links")
    document = relationship("ProcessedDocument")

    @property
    def source_message_ids(self) -> list[str]:
        return json.loads(self.source_message_ids_json or "[]")

    @source_message_ids.setter
    def source_message_ids(self, value: list[str]) -> None:
        self.source_message_ids_json = json.dumps(list(value))


class MessageFAQ(TimestampMixin, Base):
    __tablename__ = "message_faqs"
    __table_args__ = (
        UniqueConstraint("message_id", "faq_id", name="uq_message_faqs"),
        Index("idx_message_faqs_faq", "faq_id"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    message_id = Column(String, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False)
    faq_id = Column(String, ForeignKey("faqs.id", ondelete="CASCADE"), nullable=False)
    contribution_type = Column(String, nullable=False)
    document_id = Column(
        String, ForeignKey("processed_documents.id", ondelete="SET NULL"), nullable=True
    )

    faq = relationship("FAQ", back_populates="message_links")
    message = relationship("Message")
