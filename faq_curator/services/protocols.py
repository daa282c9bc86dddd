"""Gateway protocols (interfaces) for swappable model backends.

Uses typing.Protocol for structural subtyping. The Ollama clients satisfy
these, and tests pass in small fakes with the same methods.
"""

from typing import Protocol

from faq_curator.services.faq_types import Candidate, CandidateRequest, EnhancedFAQ


class EmbeddingGateway(Protocol):
    """Text to fixed-dimension vector."""

    async def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Raises:
            EmbeddingError: If the backend fails or returns no vector.
        """
        ...


class CompletionGateway(Protocol):
    """LLM calls used by the FAQ engine."""

    async def generate_candidates(self, request: CandidateRequest) -> list[Candidate]:
        """Propose FAQ candidates for a document.

        Raises:
            CompletionError: If the model call or response parsing fails.
        """
        ...

    async def enhance(self, existing: tuple[str, str], new: tuple[str, str]) -> EnhancedFAQ:
        """Merge an existing (question, answer) with a new one.

        Raises:
            CompletionError: If the model call or response parsing fails.
        """
        ...
