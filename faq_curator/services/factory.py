"""Service factories wiring gateways and the vector index from settings.

Everything is built explicitly and passed down; nothing here caches a
process-wide instance. The FastAPI lifespan and the ARQ worker each build
their own set on startup.
"""

import logging

from sqlalchemy.orm import Session

from faq_curator.config import Settings
from faq_curator.services.faq_service import FAQGeneratorService
from faq_curator.services.ollama_gateway import OllamaCompletionGateway, OllamaEmbeddingGateway
from faq_curator.services.protocols import CompletionGateway, EmbeddingGateway
from faq_curator.services.vector_index import FAQVectorIndex

logger = logging.getLogger(__name__)


def get_embedding_gateway(settings: Settings) -> EmbeddingGateway:
    logger.info(f"Creating OllamaEmbeddingGateway: {settings.embedding_model}")
    return OllamaEmbeddingGateway(
        ollama_url=settings.ollama_base_url,
        model=settings.embedding_model,
        dimension=settings.embedding_dimension,
        max_tokens=settings.embedding_max_tokens,
        timeout_seconds=settings.embedding_timeout_seconds,
    )


def get_completion_gateway(settings: Settings) -> CompletionGateway:
    logger.info(f"Creating OllamaCompletionGateway: {settings.completion_model}")
    return OllamaCompletionGateway(
        ollama_url=settings.ollama_base_url,
        model=settings.completion_model,
        temperature=settings.completion_temperature,
        timeout_seconds=settings.completion_timeout_seconds,
    )


async def create_vector_index(
    settings: Settings, embedder: EmbeddingGateway | None = None
) -> FAQVectorIndex:
    """Connect to Qdrant and provision the FAQ collection.

    Raises:
        IndexProvisioningError: Collection could not be created or never became ready.
    """
    embedder = embedder or get_embedding_gateway(settings)
    logger.info(f"Connecting FAQVectorIndex: {settings.qdrant_url}/{settings.faq_index_name}")
    return await FAQVectorIndex.connect(settings, embedder)


def build_faq_service(
    db: Session,
    settings: Settings,
    index: FAQVectorIndex,
    completion: CompletionGateway | None = None,
) -> FAQGeneratorService:
    """FAQ service bound to a session, reusing the index's embedding gateway."""
    return FAQGeneratorService(
        db,
        index=index,
        embedder=index.embedder,
        completion=completion or get_completion_gateway(settings),
        settings=settings,
    )
