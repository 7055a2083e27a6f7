from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # Storage
    database_path: str = "meeting_rag.db"

    # Models
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    llm_model: str = "claude-sonnet-4-20250514"
    generation_max_tokens: int = 1024

    # Chunking (token counts are ceil(chars / 4) estimates)
    chunk_max_tokens: int = 400

    # Retrieval
    retrieval_max_tokens: int = 1500
    retrieval_top_k: int = 8
    retrieval_recency_weight: float = 0.3
    retrieval_min_similarity: float = 0.25

    # Embedding queue
    embedding_max_retries: int = 3
    embedding_retry_base_delay: float = 2.0

    # External call timeouts (seconds)
    embedding_timeout_seconds: float = 30.0
    generation_timeout_seconds: float = 60.0

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
