"""SQLAlchemy ORM models.

Import from here: ``from faq_curator.db.models import FAQ, DocumentFAQ``
"""

from faq_curator.db.models.base import (
    ContributionType,
    FAQStatus,
    GenerationMethod,
    MessageRole,
    TimestampMixin,
    generate_uuid,
)
from faq_curator.db.models.document import DocumentMessage, Message, ProcessedDocument
from faq_curator.db.models.faq import FAQ
from faq_curator.db.models.provenance import DocumentFAQ, MessageFAQ

__all__ = [
    "TimestampMixin",
    "generate_uuid",
    "FAQStatus",
    "GenerationMethod",
    "ContributionType",
    "MessageRole",
    "FAQ",
    "ProcessedDocument",
    "Message",
    "DocumentMessage",
    "DocumentFAQ",
    "MessageFAQ",
]
