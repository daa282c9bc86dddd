"""FAQ vector index over Qdrant.

One point per FAQ: the point id is derived from the FAQ id and the payload
is a snapshot of ``{faq_id, category, status, question}`` used for
filtering. Callers refresh the snapshot with ``update_metadata`` whenever a
FAQ's status or category changes.
"""

import asyncio
import copy
import logging
from dataclasses import dataclass, field

from qdrant_client import AsyncQdrantClient
from qdrant_client.http import models

from faq_curator.core.exceptions import (
    EmbeddingError,
    IndexProvisioningError,
    VectorIndexError,
)
from faq_curator.core.retry import RetryPolicy, SleepFn, with_retry
from faq_curator.db.models import FAQ, FAQStatus
from faq_curator.services.protocols import EmbeddingGateway
from faq_curator.services.vector_utils import (
    chunked,
    embedding_text,
    question_preview,
    to_point_id,
)

logger = logging.getLogger(__name__)

QDRANT_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class FAQMetadata:
    """Payload snapshot stored alongside each FAQ vector."""

    category: str
    status: str
    question: str

    @classmethod
    def from_faq(cls, faq: FAQ) -> "FAQMetadata":
        return cls(
            category=faq.category,
            status=faq.status,
            question=question_preview(faq.question),
        )

    @classmethod
    def from_payload(cls, payload: dict | None) -> "FAQMetadata":
        payload = payload or {}
        return cls(
            category=str(payload.get("category", "")),
            status=str(payload.get("status", "")),
            question=str(payload.get("question", "")),
        )

    def to_payload(self, faq_id: str) -> dict:
        return {
            "faq_id": faq_id,
            "category": self.category,
            "status": self.status,
            "question": question_preview(self.question),
        }


@dataclass(frozen=True)
class IndexFilter:
    """Predicate on the payload snapshot: category equality and status membership."""

    category: str | None = None
    status_in: tuple[str, ...] = ()

    @classmethod
    def duplicate_targets(cls, category: str) -> "IndexFilter":
        """FAQs a new candidate may duplicate: same category, not rejected or archived."""
        return cls(
            category=category,
            status_in=(FAQStatus.PENDING.value, FAQStatus.APPROVED.value),
        )

    def to_qdrant(self) -> models.Filter | None:
        conditions: list[models.Condition] = []
        if self.category is not None:
            conditions.append(
                models.FieldCondition(key="category", match=models.MatchValue(value=self.category))
            )
        if self.status_in:
            conditions.append(
                models.FieldCondition(key="status", match=models.MatchAny(any=list(self.status_in)))
            )
        return models.Filter(must=conditions) if conditions else None


@dataclass(frozen=True)
class IndexMatch:
    id: str
    score: float
    metadata: FAQMetadata


@dataclass
class IndexStats:
    total_vectors: int
    dimension: int
    index_fullness: float


@dataclass
class BatchResult:
    """Outcome of a chunked batch write or delete."""

    succeeded: int = 0
    failed_ids: list[str] = field(default_factory=list)


class FAQVectorIndex:
    """Stores, queries and deletes FAQ embeddings.

    Built explicitly with its collaborators; use ``connect`` to build the
    Qdrant client from settings and provision the collection in one step.

    Example:
        >>> index = await FAQVectorIndex.connect(settings, embedder)
        >>> matches = await index.query(vector, top_k=10,
        ...     index_filter=IndexFilter.duplicate_targets("Billing"))
    """

    def __init__(
        self,
        client: AsyncQdrantClient,
        embedder: EmbeddingGateway,
        *,
        collection_name: str = "faq-duplicates",
        dimension: int = 768,
        capacity: int = 1_000_000,
        retry_policy: RetryPolicy | None = None,
        batch_size: int = 100,
        ready_max_attempts: int = 30,
        ready_poll_seconds: float = 2.0,
        sleep: SleepFn = asyncio.sleep,
        cancel: asyncio.Event | None = None,
    ):
        self._client = client
        self.embedder = embedder
        self.collection_name = collection_name
        self.dimension = dimension
        self.capacity = capacity
        self.retry_policy = retry_policy or RetryPolicy()
        self.batch_size = batch_size
        self.ready_max_attempts = ready_max_attempts
        self.ready_poll_seconds = ready_poll_seconds
        self._sleep = sleep
        self._cancel = cancel

    @classmethod
    async def connect(
        cls,
        settings,
        embedder: EmbeddingGateway,
        *,
        client: AsyncQdrantClient | None = None,
        **overrides,
    ) -> "FAQVectorIndex":
        """Build an index from settings and make sure its collection exists.

        Raises:
            IndexProvisioningError: The collection could not be created or
                never became ready.
        """
        if client is None:
            client = AsyncQdrantClient(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                timeout=QDRANT_TIMEOUT_SECONDS,
            )
        options = {
            "collection_name": settings.faq_index_name,
            "dimension": settings.embedding_dimension,
            "capacity": settings.faq_index_capacity,
            "retry_policy": RetryPolicy.from_settings(settings),
            "batch_size": settings.faq_batch_size,
            "ready_max_attempts": settings.index_ready_max_attempts,
            "ready_poll_seconds": settings.index_ready_poll_seconds,
        }
        options.update(overrides)
        index = cls(client, embedder, **options)
        await index.ensure_index_exists()
        return index

    def with_cancel(self, cancel: asyncio.Event | None) -> "FAQVectorIndex":
        """Copy sharing the same client whose retries observe ``cancel``."""
        bound = copy.copy(self)
        bound._cancel = cancel
        return bound

    async def close(self) -> None:
        await self._client.close()

    async def _retry(self, operation: str, fn):
        return await with_retry(
            operation, fn, self.retry_policy, sleep=self._sleep, cancel=self._cancel
        )

    # -------------------------------------------------------------------------
    # Provisioning
    # -------------------------------------------------------------------------

    async def ensure_index_exists(self) -> None:
        """Create the collection if missing and wait until it is ready.

        Idempotent; safe to call on every cold start.
        """
        try:
            collections = await self._client.get_collections()
            names = [c.name for c in collections.collections]
            if self.collection_name in names:
                logger.debug(f"Collection {self.collection_name} already exists")
                return

            logger.info(f"Creating collection: {self.collection_name}")
            await self._client.create_collection(
                collection_name=self.collection_name,
                vectors_config=models.VectorParams(
                    size=self.dimension,
                    distance=models.Distance.COSINE,
                ),
            )
            for field_name in ("category", "status"):
                await self._client.create_payload_index(
                    collection_name=self.collection_name,
                    field_name=field_name,
                    field_schema=models.PayloadSchemaType.KEYWORD,
                )
        except Exception as e:
            raise IndexProvisioningError(
                f"Failed to provision collection {self.collection_name}: {e}"
            ) from e

        await self._wait_until_ready()

    async def _wait_until_ready(self) -> None:
        for attempt in range(1, self.ready_max_attempts + 1):
            try:
                info = await self._client.get_collection(self.collection_name)
                if info.status == models.CollectionStatus.GREEN:
                    logger.info(f"Collection {self.collection_name} ready (poll {attempt})")
                    return
                logger.debug(f"Collection {self.collection_name} status {info.status}")
            except Exception as e:
                logger.debug(f"Readiness poll {attempt} failed: {e}")
            if attempt < self.ready_max_attempts:
                await self._sleep(self.ready_poll_seconds)

        raise IndexProvisioningError(
            f"Collection {self.collection_name} not ready after {self.ready_max_attempts} polls"
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _point(self, faq_id: str, vector: list[float], metadata: FAQMetadata) -> models.PointStruct:
        if len(vector) != self.dimension:
            raise ValueError(
                f"Vector for {faq_id} has dimension {len(vector)}, expected {self.dimension}"
            )
        return models.PointStruct(
            id=to_point_id(faq_id),
            vector=vector,
            payload=metadata.to_payload(faq_id),
        )

    async def store_embedding(
        self, faq_id: str, vector: list[float], metadata: FAQMetadata
    ) -> None:
        """Upsert one FAQ vector. Re-storing the same id overwrites it.

        Raises:
            VectorIndexError: Upsert failed after retries.
        """
        point = self._point(faq_id, vector, metadata)

        async def upsert():
            await self._client.upsert(
                collection_name=self.collection_name, points=[point], wait=True
            )

        await self._retry("store_embedding", upsert)
        logger.debug(f"Stored embedding for FAQ {faq_id}")

    async def index_faq(self, faq: FAQ) -> None:
        """Embed a FAQ's question and answer and store it.

        Raises:
            EmbeddingError: Embedding failed.
            VectorIndexError: Upsert failed after retries.
        """
        vector = await self.embedder.embed(embedding_text(faq.question, faq.answer))
        await self.store_embedding(faq.id, vector, FAQMetadata.from_faq(faq))

    async def store_embeddings_batch(self, faqs: list[FAQ]) -> BatchResult:
        """Embed and upsert many FAQs in chunks of ``batch_size``.

        A FAQ whose embedding fails is dropped from its chunk; a chunk whose
        upsert fails after retries is reported as failed and the remaining
        chunks still run.
        """
        result = BatchResult()
        for chunk in chunked(faqs, self.batch_size):
            points = []
            for faq in chunk:
                try:
                    vector = await self.embedder.embed(embedding_text(faq.question, faq.answer))
                    points.append(self._point(faq.id, vector, FAQMetadata.from_faq(faq)))
                except (EmbeddingError, ValueError) as e:
                    logger.warning(f"Skipping FAQ {faq.id} in batch, embedding failed: {e}")
                    result.failed_ids.append(faq.id)

            if not points:
                continue

            async def upsert(points=points):
                await self._client.upsert(
                    collection_name=self.collection_name, points=points, wait=True
                )

            try:
                await self._retry("store_embeddings_batch", upsert)
                result.succeeded += len(points)
            except VectorIndexError as e:
                logger.error(f"Batch upsert of {len(points)} FAQs failed: {e}")
                result.failed_ids.extend(p.payload["faq_id"] for p in points)

        logger.info(
            f"Batch stored {result.succeeded} embeddings, {len(result.failed_ids)} failed"
        )
        return result

    async def update_metadata(self, faq_id: str, metadata: FAQMetadata) -> None:
        """Refresh the payload snapshot without re-embedding."""
        payload = metadata.to_payload(faq_id)

        async def set_payload():
            await self._client.set_payload(
                collection_name=self.collection_name,
                payload=payload,
                points=[to_point_id(faq_id)],
                wait=True,
            )

        await self._retry("update_metadata", set_payload)

    async def delete_embedding(self, faq_id: str) -> None:
        async def delete():
            await self._client.delete(
                collection_name=self.collection_name,
                points_selector=models.PointIdsList(points=[to_point_id(faq_id)]),
                wait=True,
            )

        await self._retry("delete_embedding", delete)
        logger.debug(f"Deleted embedding for FAQ {faq_id}")

    async def delete_embeddings_batch(self, faq_ids: list[str]) -> BatchResult:
        result = BatchResult()
        for chunk in chunked(faq_ids, self.batch_size):
            selector = models.PointIdsList(points=[to_point_id(i) for i in chunk])

            async def delete(selector=selector):
                await self._client.delete(
                    collection_name=self.collection_name,
                    points_selector=selector,
                    wait=True,
                )

            try:
                await self._retry("delete_embeddings_batch", delete)
                result.succeeded += len(chunk)
            except VectorIndexError as e:
                logger.error(f"Batch delete of {len(chunk)} embeddings failed: {e}")
                result.failed_ids.extend(chunk)
        return result

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def query(
        self,
        vector: list[float],
        top_k: int = 10,
        index_filter: IndexFilter | None = None,
    ) -> list[IndexMatch]:
        """Nearest FAQs to ``vector``, highest score first.

        Raises:
            VectorIndexError: Query failed after retries.
        """
        query_filter = index_filter.to_qdrant() if index_filter else None

        async def run_query():
            return await self._client.query_points(
                collection_name=self.collection_name,
                query=vector,
                query_filter=query_filter,
                limit=top_k,
                with_payload=True,
            )

        response = await self._retry("query", run_query)
        matches = [
            IndexMatch(
                id=str((point.payload or {}).get("faq_id", point.id)),
                score=float(point.score),
                metadata=FAQMetadata.from_payload(point.payload),
            )
            for point in response.points
        ]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches

    async def get_stats(self) -> IndexStats:
        """Vector count, dimension and fullness against the configured capacity.

        Raises:
            VectorIndexError: Collection info could not be read after retries.
        """
        info = await self._retry(
            "get_stats", lambda: self._client.get_collection(self.collection_name)
        )
        total = info.points_count or 0
        vectors = info.config.params.vectors
        dimension = vectors.size if isinstance(vectors, models.VectorParams) else self.dimension
        return IndexStats(
            total_vectors=total,
            dimension=dimension,
            index_fullness=total / self.capacity if self.capacity else 0.0,
        )

    async def health_check(self) -> dict:
        """Report index health. Never raises."""
        try:
            stats = await self.get_stats()
            return {
                "is_healthy": True,
                "stats": {
                    "total_vectors": stats.total_vectors,
                    "dimension": stats.dimension,
                    "index_fullness": stats.index_fullness,
                },
            }
        except Exception as e:
            logger.warning(f"Vector index health check failed: {e}")
            return {"is_healthy": False, "error": str(e)}
