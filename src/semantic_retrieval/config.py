"""
Runtime settings loaded from environment variables.

Environment Variables:
    DATABASE_URL: Postgres connection string
    USE_POSTGRES: Use Postgres stores instead of in-memory (default: false)
    USE_MOCK_EMBEDDINGS: Use the deterministic mock backend (default: false)
    OPENAI_API_KEY: API key for the OpenAI backend
    EMBEDDING_MODEL: Embedding model (default: text-embedding-3-small)
    EMBEDDING_DIMENSIONS: Vector size D (default: 1536)
    EMBEDDING_MAX_INPUT_CHARS: Input bound before InputTooLarge (default: 8000)
    SIMILARITY_THRESHOLD: Recommendation cutoff (default: 0.7)
    INDEX_CONCURRENCY: Parallel chunk embeddings per document (default: 4)
    BACKFILL_CONCURRENCY: Parallel documents per backfill batch (default: 4)
    BACKFILL_MAX_RETRIES: Attempts for transient failures (default: 3)
    QUERY_CACHE_TTL_SECONDS: Query embedding cache TTL, 0 disables (default: 3600)
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    """Process-wide settings. Built once at the entry point and injected."""

    database_url: str = "postgresql://localhost/semantic_retrieval"
    use_postgres: bool = False
    use_mock_embeddings: bool = False
    openai_api_key: str | None = None
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    max_input_chars: int = 8000
    similarity_threshold: float = 0.7
    index_concurrency: int = 4
    backfill_concurrency: int = 4
    backfill_max_retries: int = 3
    query_cache_ttl_seconds: float = 3600.0

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            database_url=os.environ.get("DATABASE_URL", "postgresql://localhost/semantic_retrieval"),
            use_postgres=_env_bool("USE_POSTGRES"),
            use_mock_embeddings=_env_bool("USE_MOCK_EMBEDDINGS"),
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            embedding_model=os.environ.get("EMBEDDING_MODEL", "text-embedding-3-small"),
            embedding_dimensions=int(os.environ.get("EMBEDDING_DIMENSIONS", "1536")),
            max_input_chars=int(os.environ.get("EMBEDDING_MAX_INPUT_CHARS", "8000")),
            similarity_threshold=float(os.environ.get("SIMILARITY_THRESHOLD", "0.7")),
            index_concurrency=int(os.environ.get("INDEX_CONCURRENCY", "4")),
            backfill_concurrency=int(os.environ.get("BACKFILL_CONCURRENCY", "4")),
            backfill_max_retries=int(os.environ.get("BACKFILL_MAX_RETRIES", "3")),
            query_cache_ttl_seconds=float(os.environ.get("QUERY_CACHE_TTL_SECONDS", "3600")),
        )


# Lazily loaded from env on first access
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the process settings (lazy-loaded from env)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
