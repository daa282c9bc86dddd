"""Transient value types shared by the FAQ engine and its gateways."""

from dataclasses import dataclass, field
from enum import StrEnum

from faq_curator.db.models import FAQ


@dataclass
class PromptMessage:
    """One upstream message as shown to the completion model."""

    text: str
    username: str
    role: str


@dataclass
class CandidateRequest:
    """Document content handed to the completion gateway."""

    title: str
    description: str
    category: str
    messages: list[PromptMessage]


@dataclass
class Candidate:
    """AI-proposed question/answer pair.

    ``source_message_ids`` are message *indices* into the document's ordered
    message list, kept as strings exactly as the model returned them.
    """

    question: str
    answer: str
    category: str
    confidence: float
    source_message_ids: list[str] = field(default_factory=list)


@dataclass
class EnhancedFAQ:
    enhanced_question: str
    enhanced_answer: str
    confidence: float


@dataclass
class EnhancementInput:
    """New content to merge into an existing FAQ."""

    question: str | None = None
    answer: str | None = None
    source_document_id: str | None = None


class Outcome(StrEnum):
    CREATED = "CREATED"
    ENHANCED = "ENHANCED"
    SKIPPED = "SKIPPED"


@dataclass
class ResolvedCandidate:
    """A candidate that produced or changed a FAQ, with its position in the run."""

    faq: FAQ
    candidate: Candidate
    outcome: Outcome
    position: int
