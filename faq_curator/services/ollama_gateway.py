"""Ollama-backed embedding and completion gateways.

Both are thin httpx clients. The embedding gateway feeds the vector index;
the completion gateway proposes FAQ candidates for a document and merges a
near-duplicate candidate into an existing FAQ.
"""

import json
import logging
import re
from typing import Any

import httpx

from faq_curator.core.exceptions import CompletionError, EmbeddingError
from faq_curator.services.faq_types import Candidate, CandidateRequest, EnhancedFAQ, PromptMessage

logger = logging.getLogger(__name__)

# Large documents are split into overlapping message windows
CHUNK_MESSAGE_THRESHOLD = 150
CHUNK_CHAR_THRESHOLD = 50_000
CHUNK_SIZE = 100
CHUNK_OVERLAP = 20

# Questions from different windows with higher word overlap are the same FAQ
QUESTION_SIMILARITY_THRESHOLD = 0.85

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\}|\[[\s\S]*?\])\s*```", re.IGNORECASE)
_BARE_JSON = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")
_THINK_BLOCK = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)
_QUESTION_PUNCT = re.compile(r"[?!.,]")


class OllamaEmbeddingGateway:
    """Embeds text with an Ollama embedding model (``/api/embeddings``)."""

    def __init__(
        self,
        ollama_url: str,
        model: str = "nomic-embed-text",
        dimension: int = 768,
        max_tokens: int = 8192,
        timeout_seconds: float = 60,
    ):
        self.ollama_url = ollama_url
        self.model = model
        self.dimension = dimension
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds

    async def embed(self, text: str) -> list[float]:
        """Generate an embedding vector for text.

        Text longer than roughly ``max_tokens`` (4 chars per token) is
        truncated from the end.

        Raises:
            EmbeddingError: If Ollama is unavailable, returns no vector, or
                returns a vector of the wrong dimension.
        """
        max_chars = self.max_tokens * 4
        if len(text) > max_chars:
            logger.warning(f"Text truncated from {len(text)} to {max_chars} chars")
            text = text[:max_chars]

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    f"{self.ollama_url}/api/embeddings",
                    json={"model": self.model, "prompt": text},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            raise EmbeddingError(f"Ollama request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Ollama HTTP error: {e}") from e
        except ValueError as e:
            raise EmbeddingError(f"Ollama returned a non-JSON body: {e}") from e

        if not isinstance(data, dict):
            raise EmbeddingError(f"Unexpected embedding response shape from {self.model}")

        embedding = data.get("embedding")
        if not embedding:
            raise EmbeddingError(f"No embedding in response from {self.model}")
        if len(embedding) != self.dimension:
            raise EmbeddingError(
                f"Embedding dimension {len(embedding)} does not match expected {self.dimension}"
            )
        return embedding


class OllamaCompletionGateway:
    """FAQ candidate generation and enhancement via ``/api/generate``."""

    def __init__(
        self,
        ollama_url: str,
        model: str = "qwen3:8b",
        temperature: float = 0.1,
        timeout_seconds: float = 180,
    ):
        self.ollama_url = ollama_url
        self.model = model
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds

    async def generate_candidates(self, request: CandidateRequest) -> list[Candidate]:
        """Propose FAQ candidates for a document.

        Documents with more than 150 messages or 50k characters of message
        text are processed in windows of 100 messages (plus 20 overlap).
        Window-local message indices are shifted to document indices and
        near-identical questions across windows are collapsed.

        Raises:
            CompletionError: Single-window call or parse failure. In windowed
                mode a failing window is logged and skipped.
        """
        total_chars = len(" ".join(m.text for m in request.messages))
        if len(request.messages) > CHUNK_MESSAGE_THRESHOLD or total_chars > CHUNK_CHAR_THRESHOLD:
            logger.info(
                f"Large document '{request.title}' ({len(request.messages)} messages, "
                f"{total_chars} chars), generating in windows"
            )
            return await self._generate_windowed(request)
        return await self._generate_single(request)

    async def _generate_windowed(self, request: CandidateRequest) -> list[Candidate]:
        windows = [
            request.messages[start : start + CHUNK_SIZE + CHUNK_OVERLAP]
            for start in range(0, len(request.messages), CHUNK_SIZE)
        ]

        collected: list[Candidate] = []
        for i, window in enumerate(windows):
            window_request = CandidateRequest(
                title=f"{request.title} (Part {i + 1}/{len(windows)})",
                description=request.description,
                category=request.category,
                messages=window,
            )
            try:
                candidates = await self._generate_single(window_request)
            except CompletionError as e:
                logger.warning(f"Window {i + 1}/{len(windows)} failed, skipping: {e}")
                continue

            offset = i * CHUNK_SIZE
            for candidate in candidates:
                candidate.source_message_ids = [
                    shift_message_index(idx, offset) for idx in candidate.source_message_ids
                ]
            collected.extend(candidates)

        return deduplicate_candidates(collected)

    async def _generate_single(self, request: CandidateRequest) -> list[Candidate]:
        text = await self._complete(build_candidate_prompt(request))
        try:
            data = parse_json_response(text)
        except ValueError as e:
            logger.error(f"Unparseable FAQ generation response: {text[:500]!r}")
            raise CompletionError(f"Failed to parse FAQ generation response: {e}") from e

        if isinstance(data, dict):
            data = data.get("faqs", [])
        if not isinstance(data, list):
            return []

        candidates = []
        for item in data:
            candidate = _candidate_from_json(item, default_category=request.category)
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    async def enhance(self, existing: tuple[str, str], new: tuple[str, str]) -> EnhancedFAQ:
        """Merge two (question, answer) pairs into one FAQ."""
        text = await self._complete(build_enhancement_prompt(existing, new))
        try:
            data = parse_json_response(text)
        except ValueError as e:
            logger.error(f"Unparseable FAQ enhancement response: {text[:500]!r}")
            raise CompletionError(f"Failed to parse FAQ enhancement response: {e}") from e

        if not isinstance(data, dict):
            raise CompletionError("FAQ enhancement response is not a JSON object")

        question = data.get("enhancedQuestion") or data.get("enhanced_question")
        answer = data.get("enhancedAnswer") or data.get("enhanced_answer")
        if not question or not answer:
            raise CompletionError("FAQ enhancement response missing question or answer")

        return EnhancedFAQ(
            enhanced_question=str(question).strip(),
            enhanced_answer=str(answer).strip(),
            confidence=_clamp_confidence(data.get("confidence", 0.0)),
        )

    async def _complete(self, prompt: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    f"{self.ollama_url}/api/generate",
                    json={
                        "model": self.model,
                        "prompt": prompt,
                        "stream": False,
                        "options": {"temperature": self.temperature},
                    },
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            raise CompletionError(f"Ollama timed out after {self.timeout_seconds}s") from e
        except httpx.HTTPError as e:
            raise CompletionError(f"Ollama HTTP error: {e}") from e
        except ValueError as e:
            raise CompletionError(f"Ollama returned a non-JSON body: {e}") from e

        if not isinstance(data, dict):
            raise CompletionError("Unexpected completion response shape")
        text = _THINK_BLOCK.sub("", str(data.get("response") or "")).strip()
        if not text:
            raise CompletionError("Empty completion response")
        return text


# ---------------------------------------------------------------------------
# Prompt construction
# ---------------------------------------------------------------------------


def _format_message(idx: int, msg: PromptMessage) -> str:
    return f"[{idx}] {msg.username} ({msg.role}): {msg.text}"


def build_candidate_prompt(request: CandidateRequest) -> str:
    messages = "\n".join(_format_message(i, m) for i, m in enumerate(request.messages))
    return f"""Generate FAQs from the following document about "{request.title}":

Description: {request.description}
Category: {request.category}

Messages:
{messages}

Create comprehensive FAQs that:
1. Extract clear question-answer pairs, including simple definitional ones
2. Synthesize information from multiple messages
3. Use natural, helpful language with complete, actionable answers

For each FAQ, provide:
- question: Clear, searchable question
- answer: Complete, helpful answer
- category: Appropriate category (inherit from the document or suggest a better one)
- confidence: 0-1 score for FAQ quality
- sourceMessageIds: Array of message indices (the numbers in brackets) that contributed

Respond with a JSON array only:
[
  {{
    "question": "How do I reset my password?",
    "answer": "To reset your password: 1. Go to settings...",
    "category": "Account Management",
    "confidence": 0.95,
    "sourceMessageIds": [0, 1, 3]
  }}
]"""


def build_enhancement_prompt(existing: tuple[str, str], new: tuple[str, str]) -> str:
    return f"""Enhance the existing FAQ by merging it with new information.

EXISTING FAQ:
Q: {existing[0]}
A: {existing[1]}

NEW CANDIDATE:
Q: {new[0]}
A: {new[1]}

Create an enhanced FAQ that combines the best of both, removes redundancy,
and preserves important details from each source.

Respond with a JSON object only:
{{
  "enhancedQuestion": "Improved question text",
  "enhancedAnswer": "Enhanced answer with merged information",
  "confidence": 0.85
}}"""


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def parse_json_response(text: str) -> Any:
    """Parse model output that may wrap its JSON in markdown fences or prose.

    Tries, in order: the whole text, the first fenced ```json block, then the
    widest ``{...}`` or ``[...]`` span.

    Raises:
        ValueError: If no attempt yields valid JSON.
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError as direct_error:
        first_error = direct_error

    fenced = _FENCED_JSON.search(text)
    if fenced:
        try:
            return json.loads(fenced.group(1))
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse JSON from code block: {e}")

    bare = _BARE_JSON.search(text)
    if bare:
        try:
            return json.loads(bare.group(1))
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse JSON from pattern match: {e}")

    raise ValueError(str(first_error))


def _clamp_confidence(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(1.0, score))


def _candidate_from_json(item: Any, default_category: str) -> Candidate | None:
    if not isinstance(item, dict):
        return None
    question = str(item.get("question") or "").strip()
    answer = str(item.get("answer") or "").strip()
    if not question or not answer:
        return None

    raw_ids = item.get("sourceMessageIds", item.get("source_message_ids")) or []
    if not isinstance(raw_ids, list):
        raw_ids = [raw_ids]

    return Candidate(
        question=question,
        answer=answer,
        category=str(item.get("category") or default_category),
        confidence=_clamp_confidence(item.get("confidence", 0.0)),
        source_message_ids=[str(i) for i in raw_ids],
    )


def shift_message_index(idx: str, offset: int) -> str:
    """Shift a window-local message index to a document index.

    Non-numeric values pass through unchanged.
    """
    try:
        return str(int(idx) + offset)
    except ValueError:
        return idx


def normalize_question(question: str) -> str:
    return " ".join(_QUESTION_PUNCT.sub("", question.lower()).split())


def question_similarity(a: str, b: str) -> float:
    """Jaccard overlap of the word sets of two normalized questions."""
    words_a = set(a.split(" "))
    words_b = set(b.split(" "))
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def deduplicate_candidates(candidates: list[Candidate]) -> list[Candidate]:
    """Drop candidates whose question nearly repeats an earlier one.

    First occurrence wins; the result is sorted by confidence, highest first.
    """
    kept: list[Candidate] = []
    seen: list[str] = []
    for candidate in candidates:
        normalized = normalize_question(candidate.question)
        if any(question_similarity(normalized, s) > QUESTION_SIMILARITY_THRESHOLD for s in seen):
            continue
        seen.append(normalized)
        kept.append(candidate)
    return sorted(kept, key=lambda c: c.confidence, reverse=True)
