"""Tests for the Ollama embedding and completion gateways."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from faq_curator.core.exceptions import CompletionError, EmbeddingError
from faq_curator.services.faq_types import Candidate, CandidateRequest, PromptMessage
from faq_curator.services.ollama_gateway import (
    OllamaCompletionGateway,
    OllamaEmbeddingGateway,
    build_candidate_prompt,
    deduplicate_candidates,
    normalize_question,
    parse_json_response,
    question_similarity,
    shift_message_index,
)

HTTPX_CLIENT = "faq_curator.services.ollama_gateway.httpx.AsyncClient"


def _mock_httpx_response(body: dict | list, status_code: int = 200) -> MagicMock:
    """Create a mock httpx.Response."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = body
    resp.raise_for_status.return_value = None
    return resp


def _html_response() -> httpx.Response:
    """A proxy error page served with status 200."""
    return httpx.Response(
        200,
        text="<html>502 upstream</html>",
        request=httpx.Request("POST", "http://ollama:11434"),
    )


def _mock_client(response=None, side_effect=None) -> AsyncMock:
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


def _request(count: int, text: str = "short message") -> CandidateRequest:
    return CandidateRequest(
        title="Support thread",
        description="Exported chat",
        category="Billing",
        messages=[
            PromptMessage(text=f"{text} {i}", username="alice", role="CONTEXT")
            for i in range(count)
        ],
    )


def _candidate(question: str, confidence: float = 0.9) -> Candidate:
    return Candidate(question=question, answer="A.", category="Billing", confidence=confidence)


def _item(question: str, confidence: float, source_ids: list) -> dict:
    return {
        "question": question,
        "answer": "A.",
        "confidence": confidence,
        "sourceMessageIds": source_ids,
    }


class TestJsonParsing:
    """parse_json_response with the output shapes models actually produce."""

    def test_parse_valid_json(self):
        assert parse_json_response('[{"question": "Q?"}]') == [{"question": "Q?"}]

    def test_parse_markdown_fenced_json(self):
        raw = 'Here you go:\n```json\n{"enhancedQuestion": "Q?"}\n```\nDone.'
        assert parse_json_response(raw) == {"enhancedQuestion": "Q?"}

    def test_parse_fence_without_language(self):
        assert parse_json_response("```\n[1, 2]\n```") == [1, 2]

    def test_parse_json_embedded_in_prose(self):
        raw = 'Sure! [{"question": "Q?", "answer": "A."}] Hope that helps.'
        assert parse_json_response(raw) == [{"question": "Q?", "answer": "A."}]

    def test_unparseable_raises_value_error(self):
        with pytest.raises(ValueError):
            parse_json_response("no json here")


class TestQuestionDedup:
    def test_normalize_question(self):
        normalized = normalize_question("  How do I, reset my PASSWORD?! ")
        assert normalized == "how do i reset my password"

    def test_question_similarity(self):
        assert question_similarity("a b c", "a b c") == 1.0
        assert question_similarity("a b", "c d") == 0.0
        assert question_similarity("a b c d", "a b c") == 0.75

    def test_deduplicate_keeps_first_and_sorts_by_confidence(self):
        candidates = [
            _candidate("How do I reset my password?", 0.7),
            _candidate("How do I reset my password", 0.99),
            _candidate("Where is the billing page?", 0.8),
        ]

        result = deduplicate_candidates(candidates)

        assert [c.question for c in result] == [
            "Where is the billing page?",
            "How do I reset my password?",
        ]

    def test_shift_message_index(self):
        assert shift_message_index("5", 100) == "105"
        assert shift_message_index("msg-7", 100) == "msg-7"


class TestPrompts:
    def test_candidate_prompt_numbers_messages(self):
        prompt = build_candidate_prompt(_request(2))
        assert "[0] alice (CONTEXT): short message 0" in prompt
        assert "[1] alice (CONTEXT): short message 1" in prompt
        assert "Category: Billing" in prompt


class TestEmbeddingGateway:
    @pytest.mark.asyncio
    async def test_embed_returns_vector(self):
        gateway = OllamaEmbeddingGateway("http://ollama:11434", dimension=3)
        mock_client = _mock_client(_mock_httpx_response({"embedding": [0.1, 0.2, 0.3]}))

        with patch(HTTPX_CLIENT, return_value=mock_client):
            vector = await gateway.embed("hello")

        assert vector == [0.1, 0.2, 0.3]
        url = mock_client.post.call_args.args[0]
        assert url == "http://ollama:11434/api/embeddings"
        assert mock_client.post.call_args.kwargs["json"]["model"] == "nomic-embed-text"

    @pytest.mark.asyncio
    async def test_long_text_is_truncated(self):
        gateway = OllamaEmbeddingGateway("http://ollama:11434", dimension=1, max_tokens=10)
        mock_client = _mock_client(_mock_httpx_response({"embedding": [0.1]}))

        with patch(HTTPX_CLIENT, return_value=mock_client):
            await gateway.embed("x" * 100)

        assert len(mock_client.post.call_args.kwargs["json"]["prompt"]) == 40

    @pytest.mark.asyncio
    async def test_dimension_mismatch_raises(self):
        gateway = OllamaEmbeddingGateway("http://ollama:11434", dimension=768)
        mock_client = _mock_client(_mock_httpx_response({"embedding": [0.1, 0.2]}))

        with patch(HTTPX_CLIENT, return_value=mock_client), pytest.raises(EmbeddingError):
            await gateway.embed("hello")

    @pytest.mark.asyncio
    async def test_missing_embedding_raises(self):
        gateway = OllamaEmbeddingGateway("http://ollama:11434")
        mock_client = _mock_client(_mock_httpx_response({}))

        with patch(HTTPX_CLIENT, return_value=mock_client), pytest.raises(EmbeddingError):
            await gateway.embed("hello")

    @pytest.mark.asyncio
    async def test_timeout_raises_embedding_error(self):
        gateway = OllamaEmbeddingGateway("http://ollama:11434")
        mock_client = _mock_client(side_effect=httpx.TimeoutException("timeout"))

        with patch(HTTPX_CLIENT, return_value=mock_client), pytest.raises(EmbeddingError):
            await gateway.embed("hello")

    @pytest.mark.asyncio
    async def test_non_json_body_raises_embedding_error(self):
        gateway = OllamaEmbeddingGateway("http://ollama:11434")
        mock_client = _mock_client(_html_response())

        with patch(HTTPX_CLIENT, return_value=mock_client), pytest.raises(EmbeddingError):
            await gateway.embed("hello")

    @pytest.mark.asyncio
    async def test_non_object_body_raises_embedding_error(self):
        gateway = OllamaEmbeddingGateway("http://ollama:11434", dimension=2)
        mock_client = _mock_client(_mock_httpx_response([0.1, 0.2]))

        with patch(HTTPX_CLIENT, return_value=mock_client), pytest.raises(EmbeddingError):
            await gateway.embed("hello")


class TestCompletionGateway:
    @pytest.mark.asyncio
    async def test_generate_candidates_parses_response(self):
        gateway = OllamaCompletionGateway("http://ollama:11434")
        body = [
            {
                "question": "How do I update my card?",
                "answer": "Go to Billing.",
                "confidence": 0.92,
                "sourceMessageIds": [0, 1],
            },
            {"question": "", "answer": "dropped"},
            {
                "question": "Refund window?",
                "answer": "30 days.",
                "confidence": 3,
                "category": "Refunds",
            },
        ]
        raw = f"<think>planning...</think>```json\n{json.dumps(body)}\n```"
        mock_client = _mock_client(_mock_httpx_response({"response": raw}))

        with patch(HTTPX_CLIENT, return_value=mock_client):
            candidates = await gateway.generate_candidates(_request(3))

        assert len(candidates) == 2
        assert candidates[0].category == "Billing"
        assert candidates[0].source_message_ids == ["0", "1"]
        assert candidates[1].category == "Refunds"
        assert candidates[1].confidence == 1.0
        payload = mock_client.post.call_args.kwargs["json"]
        assert payload["stream"] is False
        assert payload["options"]["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_object_wrapped_faqs_are_accepted(self):
        gateway = OllamaCompletionGateway("http://ollama:11434")
        raw = json.dumps({"faqs": [{"question": "Q?", "answer": "A.", "confidence": 0.9}]})
        mock_client = _mock_client(_mock_httpx_response({"response": raw}))

        with patch(HTTPX_CLIENT, return_value=mock_client):
            candidates = await gateway.generate_candidates(_request(1))

        assert [c.question for c in candidates] == ["Q?"]

    @pytest.mark.asyncio
    async def test_unparseable_response_raises_completion_error(self):
        gateway = OllamaCompletionGateway("http://ollama:11434")
        mock_client = _mock_client(_mock_httpx_response({"response": "I cannot help with that."}))

        with patch(HTTPX_CLIENT, return_value=mock_client), pytest.raises(CompletionError):
            await gateway.generate_candidates(_request(1))

    @pytest.mark.asyncio
    async def test_http_error_raises_completion_error(self):
        gateway = OllamaCompletionGateway("http://ollama:11434")
        mock_client = _mock_client(side_effect=httpx.ConnectError("refused"))

        with patch(HTTPX_CLIENT, return_value=mock_client), pytest.raises(CompletionError):
            await gateway.generate_candidates(_request(1))

    @pytest.mark.asyncio
    async def test_non_json_body_raises_completion_error(self):
        gateway = OllamaCompletionGateway("http://ollama:11434")
        mock_client = _mock_client(_html_response())

        with patch(HTTPX_CLIENT, return_value=mock_client), pytest.raises(CompletionError):
            await gateway.generate_candidates(_request(1))

    @pytest.mark.asyncio
    async def test_non_object_body_raises_completion_error(self):
        gateway = OllamaCompletionGateway("http://ollama:11434")
        mock_client = _mock_client(_mock_httpx_response(["not", "an", "object"]))

        with patch(HTTPX_CLIENT, return_value=mock_client), pytest.raises(CompletionError):
            await gateway.enhance(("Q?", "A."), ("Q2?", "A2."))

    @pytest.mark.asyncio
    async def test_large_document_is_windowed(self):
        gateway = OllamaCompletionGateway("http://ollama:11434")
        first_window = [_item("How do I reset my password?", 0.8, [0, 5])]
        second_window = [
            _item("How do I reset my password", 0.95, [1]),
            _item("Where are invoices stored?", 0.9, [5, "msg-x"]),
        ]
        responses = [json.dumps(first_window), json.dumps(second_window), "not json at all"]

        with patch.object(gateway, "_complete", AsyncMock(side_effect=responses)) as complete:
            candidates = await gateway.generate_candidates(_request(250))

        # 250 messages -> windows at 0, 100, 200; the last window fails and is skipped
        assert complete.await_count == 3
        assert [c.question for c in candidates] == [
            "Where are invoices stored?",
            "How do I reset my password?",
        ]
        assert candidates[0].source_message_ids == ["105", "msg-x"]
        assert candidates[1].source_message_ids == ["0", "5"]

    @pytest.mark.asyncio
    async def test_character_threshold_triggers_windowing(self):
        gateway = OllamaCompletionGateway("http://ollama:11434")

        with patch.object(gateway, "_complete", AsyncMock(return_value="[]")) as complete:
            await gateway.generate_candidates(_request(10, text="x" * 6000))

        assert complete.await_count == 1
        prompt = complete.call_args.args[0]
        assert "(Part 1/1)" in prompt

    @pytest.mark.asyncio
    async def test_enhance_returns_merged_faq(self):
        gateway = OllamaCompletionGateway("http://ollama:11434")
        raw = json.dumps(
            {
                "enhancedQuestion": "How do I update my card?",
                "enhancedAnswer": "Merged.",
                "confidence": 0.88,
            }
        )

        with patch.object(gateway, "_complete", AsyncMock(return_value=raw)):
            enhanced = await gateway.enhance(("Q1?", "A1."), ("Q2?", "A2."))

        assert enhanced.enhanced_question == "How do I update my card?"
        assert enhanced.enhanced_answer == "Merged."
        assert enhanced.confidence == 0.88

    @pytest.mark.asyncio
    async def test_enhance_missing_fields_raises(self):
        gateway = OllamaCompletionGateway("http://ollama:11434")

        with (
            patch.object(gateway, "_complete", AsyncMock(return_value='{"confidence": 0.9}')),
            pytest.raises(CompletionError),
        ):
            await gateway.enhance(("Q1?", "A1."), ("Q2?", "A2."))

    @pytest.mark.asyncio
    async def test_empty_response_after_think_block_raises(self):
        gateway = OllamaCompletionGateway("http://ollama:11434")
        body = {"response": "<think>only thoughts</think>"}
        mock_client = _mock_client(_mock_httpx_response(body))

        with patch(HTTPX_CLIENT, return_value=mock_client), pytest.raises(CompletionError):
            await gateway.enhance(("Q1?", "A1."), ("Q2?", "A2."))
