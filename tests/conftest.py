"""Pytest configuration and fixtures."""

import asyncio
import dataclasses
import hashlib
import math
import random
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from qdrant_client import AsyncQdrantClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from faq_curator.config import Settings
from faq_curator.core.exceptions import CompletionError, EmbeddingError
from faq_curator.db.database import Base, get_db
from faq_curator.db.models import (
    FAQ,
    DocumentMessage,
    FAQStatus,
    Message,
    MessageRole,
    ProcessedDocument,
)
from faq_curator.main import app
from faq_curator.services.faq_service import FAQGeneratorService
from faq_curator.services.faq_types import Candidate, EnhancedFAQ
from faq_curator.services.vector_index import FAQMetadata, FAQVectorIndex
from faq_curator.services.vector_utils import embedding_text

DIMENSION = 16
COLLECTION = "test-faqs"


class Vectors:
    """Hand-built vectors with known cosine similarities."""

    @staticmethod
    def unit(axis: int = 0) -> list[float]:
        vector = [0.0] * DIMENSION
        vector[axis] = 1.0
        return vector

    @staticmethod
    def similar_to(base_axis: int, score: float, other_axis: int = 1) -> list[float]:
        """Vector whose cosine similarity to ``unit(base_axis)`` is ``score``."""
        vector = [0.0] * DIMENSION
        vector[base_axis] = score
        vector[other_axis] = math.sqrt(max(0.0, 1.0 - score * score))
        return vector


class FakeEmbedder:
    """Deterministic embeddings; pinned texts return fixed vectors."""

    def __init__(self, dimension: int = DIMENSION):
        self.dimension = dimension
        self.pinned: dict[str, list[float]] = {}
        self.calls: list[str] = []
        self.fail = False
        self.fail_texts: set[str] = set()

    def pin(self, question: str, answer: str, vector: list[float]) -> None:
        self.pinned[embedding_text(question, answer)] = vector

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail or text in self.fail_texts:
            raise EmbeddingError("embedding backend unavailable")
        if text in self.pinned:
            return list(self.pinned[text])
        # Spread unpinned texts over the upper axes so they never collide with pinned ones
        rng = random.Random(hashlib.sha256(text.encode()).hexdigest())
        vector = [0.0] * self.dimension
        for i in range(4, self.dimension):
            vector[i] = rng.gauss(0.0, 1.0)
        return vector


class FakeCompletion:
    """Returns queued candidates and a merge of both answers on enhance."""

    def __init__(self):
        self.candidates: list[Candidate] = []
        self.requests = []
        self.enhance_calls: list[tuple] = []
        self.fail_generate = False
        self.fail_enhance = False

    async def generate_candidates(self, request):
        self.requests.append(request)
        if self.fail_generate:
            raise CompletionError("model unavailable")
        return [
            dataclasses.replace(c, source_message_ids=list(c.source_message_ids))
            for c in self.candidates
        ]

    async def enhance(self, existing, new):
        self.enhance_calls.append((existing, new))
        if self.fail_enhance:
            raise CompletionError("model unavailable")
        return EnhancedFAQ(
            enhanced_question=new[0],
            enhanced_answer=f"{existing[1]} {new[1]}",
            confidence=0.93,
        )


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def engine():
    """Fresh in-memory SQLite per test; services commit on their own sessions."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite:///:memory:",
        embedding_dimension=DIMENSION,
        faq_index_name=COLLECTION,
        retry_base_delay_seconds=0.0,
        use_arq_worker=False,
    )


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def completion() -> FakeCompletion:
    return FakeCompletion()


@pytest_asyncio.fixture
async def index(embedder):
    """FAQ index over an in-process Qdrant with retries that never sleep."""
    index = FAQVectorIndex(
        AsyncQdrantClient(location=":memory:"),
        embedder,
        collection_name=COLLECTION,
        dimension=DIMENSION,
        sleep=no_sleep,
    )
    await index.ensure_index_exists()
    yield index
    await index.close()


@pytest.fixture
def service(db, index, embedder, completion, settings) -> FAQGeneratorService:
    return FAQGeneratorService(
        db, index=index, embedder=embedder, completion=completion, settings=settings
    )


# -----------------------------------------------------------------------------
# Data builders
# -----------------------------------------------------------------------------


@pytest.fixture
def vectors() -> type[Vectors]:
    return Vectors


@pytest.fixture
def make_document(db):
    """Persist a document with (text, username, role) messages in timestamp order."""

    def _make(
        messages: list[tuple[str, str, str]] | None = None,
        title: str = "Support thread",
        category: str | None = "Billing",
    ) -> tuple[ProcessedDocument, list[Message]]:
        if messages is None:
            messages = [
                ("How do I update my card?", "alice", MessageRole.QUESTION.value),
                ("Go to Billing > Payment methods.", "bob", MessageRole.ANSWER.value),
                ("Thanks, that worked.", "alice", MessageRole.CONTEXT.value),
            ]
        document = ProcessedDocument(title=title, description="Exported chat", category=category)
        db.add(document)
        db.flush()

        start = datetime(2024, 1, 1, 9, 0, 0)
        created = []
        for i, (text, username, role) in enumerate(messages):
            message = Message(
                text=text,
                username=username,
                channel="support",
                timestamp=start + timedelta(minutes=i),
            )
            db.add(message)
            db.flush()
            db.add(
                DocumentMessage(document_id=document.id, message_id=message.id, message_role=role)
            )
            created.append(message)
        db.commit()
        return document, created

    return _make


@pytest.fixture
def make_faq(db):
    def _make(
        question: str = "How do I update my card?",
        answer: str = "Go to Billing > Payment methods.",
        category: str = "Billing",
        status: str = FAQStatus.PENDING.value,
        confidence: float = 0.9,
        created_at: datetime | None = None,
    ) -> FAQ:
        faq = FAQ(
            question=question,
            answer=answer,
            category=category,
            status=status,
            confidence_score=confidence,
        )
        if created_at is not None:
            faq.created_at = created_at
        db.add(faq)
        db.commit()
        db.refresh(faq)
        return faq

    return _make


@pytest.fixture
def store_vector(index):
    """Index a FAQ under a hand-picked vector."""

    async def _store(faq: FAQ, vector: list[float]) -> None:
        await index.store_embedding(faq.id, vector, FAQMetadata.from_faq(faq))

    return _store


@pytest.fixture
def client(db, settings, embedder, completion):
    """Test client without the lifespan: in-memory index, no Redis, shared session.

    The embedded worker is off and Redis is reported unavailable, so
    generation requests take the BackgroundTasks path unless a test patches
    ``get_redis_pool``.
    """
    index = asyncio.run(
        FAQVectorIndex.connect(settings, embedder, client=AsyncQdrantClient(location=":memory:"))
    )
    app.state.settings = settings
    app.state.vector_index = index
    app.state.completion = completion
    app.state.arq_worker = None

    def override_get_db():
        try:
            yield db
        finally:
            pass  # Do not close - managed by db fixture

    app.dependency_overrides[get_db] = override_get_db

    with (
        patch("faq_curator.api.faqs.get_redis_pool", AsyncMock(return_value=None)),
        patch("faq_curator.api.health.is_redis_available", AsyncMock(return_value=False)),
    ):
        yield TestClient(app)

    app.dependency_overrides.clear()
    asyncio.run(index.close())
