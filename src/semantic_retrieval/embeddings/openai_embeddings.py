"""
Embedding backends - Single Responsibility: turn one text into one raw vector.

No validation, no normalization, no retries: that is EmbeddingClient's job.
A backend's only extra duty is translating its SDK's exceptions onto the
pipeline's error taxonomy so the client never sees vendor types.

Backends:
1. OpenAIEmbeddings - production (text-embedding-3-*)
2. MockEmbeddings - deterministic pseudo-embeddings for tests
3. get_embedding_backend() - factory
"""

from __future__ import annotations

import hashlib
import os

import numpy as np
import openai
from openai import OpenAI

from semantic_retrieval.chunking.splitter import estimate_tokens
from semantic_retrieval.core.errors import (
    EmbeddingError,
    InvalidInput,
    QuotaExceeded,
    UpstreamUnavailable,
)
from semantic_retrieval.core.models import RawEmbedding
from semantic_retrieval.core.protocols import EmbeddingBackend

MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

# Models that accept the ``dimensions`` request parameter
_SHORTENABLE_MODELS = frozenset({"text-embedding-3-small", "text-embedding-3-large"})


def translate_openai_error(exc: Exception) -> EmbeddingError:
    """Map an OpenAI SDK exception onto the error taxonomy."""
    if isinstance(exc, openai.RateLimitError):
        return QuotaExceeded(f"Embedding quota exceeded: {exc}", cause=exc)
    if isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError)):
        return UpstreamUnavailable(f"Embedding backend unreachable: {exc}", cause=exc)
    if isinstance(exc, openai.APIStatusError):
        if exc.status_code >= 500:
            return UpstreamUnavailable(f"Embedding backend error {exc.status_code}: {exc}", cause=exc)
        if exc.status_code in (400, 422):
            return InvalidInput(f"Embedding request rejected: {exc}", cause=exc)
        # 401/403/404 are configuration problems, not retryable
        return EmbeddingError(f"Embedding request failed ({exc.status_code}): {exc}", cause=exc)
    return UpstreamUnavailable(f"Failed to generate embedding: {exc}", cause=exc)


class OpenAIEmbeddings:
    """
    OpenAI-based embedding backend.

    Uses text-embedding-3-small by default (1536 dimensions).

    Purpose routing: OpenAI models are symmetric, but the backend still
    honours per-input-type model and prefix overrides so an asymmetric
    model served behind an OpenAI-compatible endpoint (``base_url``) can
    get its ``search_query:`` / ``search_document:`` markers.
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: str | None = None,
        dimensions: int | None = None,
        base_url: str | None = None,
        query_model: str | None = None,
        document_prefix: str = "",
        query_prefix: str = "",
        timeout: float = 30.0,
    ):
        self.model = model
        self.query_model = query_model or model
        self.document_prefix = document_prefix
        self.query_prefix = query_prefix
        self._dimensions = dimensions or MODEL_DIMENSIONS.get(model, 1536)
        self._client = OpenAI(
            api_key=api_key or os.environ.get("OPENAI_API_KEY"),
            base_url=base_url,
            timeout=timeout,
            max_retries=0,  # callers own the retry policy
        )

    @property
    def model_id(self) -> str:
        return self.model

    @property
    def dimensions(self) -> int:
        """Return embedding dimensions for the model."""
        return self._dimensions

    def _route(self, text: str, input_type: str) -> tuple[str, str]:
        if input_type == "query":
            return self.query_model, f"{self.query_prefix}{text}"
        return self.model, f"{self.document_prefix}{text}"

    def embed_text(self, text: str, input_type: str = "document") -> RawEmbedding:
        """Generate a raw embedding for a single text."""
        model, payload = self._route(text, input_type)
        kwargs = {"input": payload, "model": model}
        if model in _SHORTENABLE_MODELS and self._dimensions != MODEL_DIMENSIONS[model]:
            kwargs["dimensions"] = self._dimensions

        try:
            response = self._client.embeddings.create(**kwargs)
        except openai.OpenAIError as e:
            raise translate_openai_error(e) from e

        return RawEmbedding(
            vector=np.array(response.data[0].embedding, dtype=np.float32),
            token_count=response.usage.total_tokens,
            model_id=response.model or model,
        )


class MockEmbeddings:
    """
    Mock embedding backend for testing without API calls.

    Generates deterministic pseudo-embeddings seeded from a text hash.
    Query and document sides share one encoder, so a query identical to a
    document's text scores 1.0 against it.
    NOT for production use - only for testing/development.
    """

    def __init__(self, dimensions: int = 1536, model: str = "mock-embedding"):
        self._dimensions = dimensions
        self._model = model

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed_text(self, text: str, input_type: str = "document") -> RawEmbedding:
        """Generate deterministic pseudo-embedding from text hash."""
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        rng = np.random.default_rng(seed)
        vector = rng.standard_normal(self._dimensions).astype(np.float32)
        return RawEmbedding(vector=vector, token_count=estimate_tokens(text), model_id=self._model)


def get_embedding_backend(
    use_mock: bool = False,
    model: str = "text-embedding-3-small",
    dimensions: int | None = None,
    api_key: str | None = None,
) -> EmbeddingBackend:
    """
    Factory function to get the appropriate embedding backend.

    Args:
        use_mock: If True, return MockEmbeddings (for testing)
        model: OpenAI model name
        dimensions: Override vector size
        api_key: OpenAI API key (falls back to OPENAI_API_KEY)
    """
    if use_mock:
        return MockEmbeddings(dimensions=dimensions or MODEL_DIMENSIONS.get(model, 1536))
    return OpenAIEmbeddings(model=model, api_key=api_key, dimensions=dimensions)
