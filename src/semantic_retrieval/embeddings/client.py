"""
Embedding Client - validated, normalized embeddings over any backend.

Contract: embed(text, purpose, normalize) -> EmbeddingResult

What the client adds on top of a raw backend:
1. Input validation (empty -> InvalidInput, oversized -> InputTooLarge)
2. Purpose routing (summary -> "document", query -> "query")
3. Vector checks (size D, finite) and unit normalization
4. Error mapping onto the taxonomy
5. A tracing span per call

It does NOT retry. Retry policy belongs to callers (see BackfillReconciler).
"""

from __future__ import annotations

import logging

import numpy as np

from semantic_retrieval.core.errors import (
    DegenerateVector,
    EmbeddingError,
    InputTooLarge,
    InvalidInput,
    UpstreamUnavailable,
)
from semantic_retrieval.core.models import EmbeddingPurpose, EmbeddingResult
from semantic_retrieval.core.protocols import EmbeddingBackend
from semantic_retrieval.core.vectors import normalize as normalize_vector
from semantic_retrieval.embeddings.cache import QueryEmbeddingCache
from semantic_retrieval.observability import get_tracer
from semantic_retrieval.observability.attributes import (
    EMBEDDING_CACHE_HIT,
    EMBEDDING_DIMENSIONS,
    EMBEDDING_INPUT_TEXT,
    EMBEDDING_NORMALIZED,
    GEN_AI_USAGE_INPUT_TOKENS,
    embedding_attributes,
)

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 8000

# How each purpose is presented to the backend
INPUT_TYPES: dict[EmbeddingPurpose, str] = {
    EmbeddingPurpose.SUMMARY: "document",
    EmbeddingPurpose.QUERY: "query",
}


def coerce_purpose(purpose: EmbeddingPurpose | str) -> EmbeddingPurpose:
    try:
        return EmbeddingPurpose(purpose)
    except ValueError:
        raise InvalidInput(f"Unknown embedding purpose: {purpose!r}") from None


class EmbeddingClient:
    """
    Dependency-injected embedding client.

    Args:
        backend: Raw embedding backend (OpenAIEmbeddings, MockEmbeddings)
        max_input_chars: Inputs longer than this raise InputTooLarge
        query_cache: Optional TTL cache consulted for normalized query embeddings
    """

    def __init__(
        self,
        backend: EmbeddingBackend,
        max_input_chars: int = MAX_TEXT_LENGTH,
        query_cache: QueryEmbeddingCache | None = None,
    ):
        self._backend = backend
        self.max_input_chars = max_input_chars
        self._query_cache = query_cache

    @property
    def model_id(self) -> str:
        return self._backend.model_id

    @property
    def dimensions(self) -> int:
        return self._backend.dimensions

    @property
    def system(self) -> str:
        return type(self._backend).__name__

    def validate(self, text: str) -> None:
        """Raise InvalidInput / InputTooLarge for unusable text."""
        if not isinstance(text, str) or not text.strip():
            raise InvalidInput("Text cannot be empty")
        if len(text) > self.max_input_chars:
            raise InputTooLarge(len(text), self.max_input_chars)

    def embed(
        self,
        text: str,
        purpose: EmbeddingPurpose | str = EmbeddingPurpose.SUMMARY,
        normalize: bool = True,
    ) -> EmbeddingResult:
        """
        Generate an embedding for a single text.

        Raises:
            InvalidInput: empty text or unknown purpose
            InputTooLarge: text longer than max_input_chars
            UpstreamUnavailable: transient backend failure (retryable)
            QuotaExceeded: backend rate limit / quota
            DegenerateVector: unusable vector from the backend
        """
        purpose = coerce_purpose(purpose)
        self.validate(text)

        use_cache = self._query_cache is not None and purpose is EmbeddingPurpose.QUERY and normalize
        if use_cache:
            cached = self._query_cache.get(text)
            if cached is not None:
                return cached

        tracer = get_tracer()
        attrs = embedding_attributes(self.system, self.model_id, purpose.value, len(text))
        with tracer.start_span("embedding.embed", attributes=attrs) as span:
            span.set_attribute(EMBEDDING_CACHE_HIT, False)
            span.set_text(EMBEDDING_INPUT_TEXT, text)
            # failures propagate; the span records them with their error code
            result = self._embed_uncached(text, purpose, normalize)
            span.set_attribute(EMBEDDING_DIMENSIONS, result.dimensions)
            span.set_attribute(EMBEDDING_NORMALIZED, normalize)
            span.set_attribute(GEN_AI_USAGE_INPUT_TOKENS, result.token_count)
            span.set_status("ok")

        if use_cache:
            self._query_cache.set(text, result)
        return result

    def _embed_uncached(self, text: str, purpose: EmbeddingPurpose, normalize: bool) -> EmbeddingResult:
        try:
            raw = self._backend.embed_text(text, INPUT_TYPES[purpose])
        except EmbeddingError:
            raise
        except (ConnectionError, TimeoutError, OSError) as e:
            raise UpstreamUnavailable(f"Embedding backend unreachable: {e}", cause=e) from e
        except Exception as e:
            logger.error(f"Unexpected embedding backend failure: {e!r}")
            raise UpstreamUnavailable(f"Failed to generate embedding: {e}", cause=e) from e

        vector = np.asarray(raw.vector, dtype=np.float32)
        if vector.ndim != 1 or vector.shape[0] != self.dimensions:
            raise DegenerateVector(
                f"Backend returned {vector.shape} vector, expected ({self.dimensions},)"
            )
        if not np.all(np.isfinite(vector)):
            raise DegenerateVector("Backend returned non-finite values")

        if normalize:
            vector = normalize_vector(vector)

        return EmbeddingResult(vector=vector, model_id=raw.model_id, token_count=int(raw.token_count))

    def embed_many(
        self,
        texts: list[str],
        purpose: EmbeddingPurpose | str = EmbeddingPurpose.SUMMARY,
        normalize: bool = True,
    ) -> list[EmbeddingResult | EmbeddingError]:
        """
        Embed several texts, one outcome per input.

        Failures are returned in place rather than raised so one bad text
        does not hide the others.
        """
        outcomes: list[EmbeddingResult | EmbeddingError] = []
        for text in texts:
            try:
                outcomes.append(self.embed(text, purpose, normalize))
            except EmbeddingError as e:
                outcomes.append(e)
        return outcomes
