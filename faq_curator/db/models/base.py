"""Shared model utilities, mixins, and enums."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Column, DateTime


def generate_uuid() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    """Provides a standard ``created_at`` column."""

    created_at = Column(DateTime, default=datetime.utcnow)


class FAQStatus(StrEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ARCHIVED = "ARCHIVED"


class GenerationMethod(StrEnum):
    AI_GENERATED = "AI_GENERATED"
    USER_CREATED = "USER_CREATED"
    HYBRID = "HYBRID"


class ContributionType(StrEnum):
    PRIMARY_QUESTION = "PRIMARY_QUESTION"
    PRIMARY_ANSWER = "PRIMARY_ANSWER"
    SUPPORTING_CONTEXT = "SUPPORTING_CONTEXT"


class MessageRole(StrEnum):
    QUESTION = "QUESTION"
    ANSWER = "ANSWER"
    CONTEXT = "CONTEXT"
