"""Utility functions for the FAQ vector index.

Point id mapping, payload construction and batch chunking.
"""

import uuid
from collections.abc import Iterator, Sequence

# Namespace for ids that are not already UUIDs (Qdrant accepts UUIDs or integers only)
FAQ_POINT_NAMESPACE = uuid.UUID("5d3c0d6e-2f8b-4b61-9a54-6f2f0c1e7a90")

QUESTION_PREVIEW_CHARS = 200


def to_point_id(faq_id: str) -> str:
    """Map a FAQ id to a Qdrant point id.

    UUID-shaped ids are used as-is so the point id equals the FAQ id. Any
    other string is mapped deterministically through UUIDv5, so re-storing
    the same FAQ always hits the same point.
    """
    try:
        return str(uuid.UUID(faq_id))
    except ValueError:
        return str(uuid.uuid5(FAQ_POINT_NAMESPACE, faq_id))


def embedding_text(question: str, answer: str) -> str:
    """Text embedded for a FAQ or candidate."""
    return f"{question} {answer}"


def question_preview(question: str) -> str:
    return question[:QUESTION_PREVIEW_CHARS]


def chunked[T](items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start : start + size]
