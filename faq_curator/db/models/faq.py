"""FAQ model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Float, Index, String, Text
from sqlalchemy.orm import relationship

from faq_curator.db.database import Base
from faq_curator.db.models.base import FAQStatus, TimestampMixin, generate_uuid


class FAQ(TimestampMixin, Base):
    """A curated question/answer pair.

    Created PENDING by the generator; only review moves it to APPROVED or
    REJECTED, and enhancement always puts it back to PENDING.
    """

    __tablename__ = "faqs"
    __table_args__ = (
        Index("idx_faqs_category_status", "category", "status"),
        Index("idx_faqs_created_at", "created_at"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    category = Column(String, nullable=False)
    status = Column(String, nullable=False, default=FAQStatus.PENDING.value)
    confidence_score = Column(Float, nullable=False, default=0.0)
    approved_by = Column(String, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    document_links = relationship(
        "DocumentFAQ", back_populates="faq", cascade="all, delete-orphan", passive_deletes=True
    )
    message_links = relationship(
        "MessageFAQ", back_populates="faq", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<FAQ {self.id} [{self.status}] {self.question[:40]!r}>"
