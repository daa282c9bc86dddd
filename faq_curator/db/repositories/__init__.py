"""Repository layer: standardized data access for all models."""

from faq_curator.db.repositories.base import BaseRepository
from faq_curator.db.repositories.document import DocumentRepository
from faq_curator.db.repositories.faq import FAQRepository
from faq_curator.db.repositories.provenance import DocumentFAQRepository, MessageFAQRepository

__all__ = [
    "BaseRepository",
    "FAQRepository",
    "DocumentRepository",
    "DocumentFAQRepository",
    "MessageFAQRepository",
]
