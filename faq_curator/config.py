"""Configuration management using Pydantic settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    app_name: str = "FAQ Curator"
    app_version: str = "0.3.0"
    debug: bool = False
    log_level: str = "INFO"
    log_format: str = "json"  # "json" for production, "console" for dev

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Database
    database_url: str = "sqlite:///./data/faq_curator.db"
    db_pool_size: int = 5
    db_pool_max_overflow: int = 10
    db_pool_timeout: int = 30

    # Redis / ARQ Task Queue
    redis_url: str = "redis://localhost:6379"
    arq_job_timeout: int = 900  # Whole-document FAQ generation budget
    arq_max_jobs: int = 1  # One document at a time per worker
    arq_health_check_interval: int = 60
    use_arq_worker: bool = True  # Set False to bypass ARQ and use BackgroundTasks

    # Vector Index (Qdrant)
    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: str | None = None
    faq_index_name: str = "faq-duplicates"
    embedding_dimension: int = 768
    faq_index_capacity: int = 1_000_000  # Used to report index fullness
    index_ready_max_attempts: int = 30
    index_ready_poll_seconds: float = 2.0

    # Ollama gateways
    ollama_base_url: str = "http://localhost:11434"
    embedding_model: str = "nomic-embed-text"
    embedding_max_tokens: int = 8192
    embedding_timeout_seconds: int = 60
    completion_model: str = "qwen3:8b"
    completion_temperature: float = 0.1
    completion_timeout_seconds: int = 180

    # Retry policy for remote calls
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_exponential_base: float = 2.0

    # FAQ engine thresholds
    faq_confidence_threshold: float = 0.8
    faq_max_per_document: int = 20
    faq_similarity_threshold: float = 0.85
    faq_enhancement_threshold: float = 0.90
    faq_duplicate_top_k: int = 10
    faq_batch_size: int = 100
    faq_search_min_score: float = 0.5

    # Set False to always create FAQs without duplicate checks (fallback mode)
    faq_duplicate_detection_enabled: bool = True

    # "position" keeps the legacy index heuristic, "role" uses the upstream message role
    contribution_type_strategy: Literal["position", "role"] = "position"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
