"""
Similarity Search Engine - "more like this" over summary embeddings.

All lookups are scoped to one owner: a document never appears in another
owner's results, and asking for recommendations from somebody else's
document looks exactly like asking about a document that does not exist.

ORDERING:
---------
similarity desc, then document created_at desc (newer first), then
document id. The same corpus and query always give the same list.

Errors propagate to the caller; nothing here is recovered locally.
"""

from __future__ import annotations

import logging

import numpy as np

from semantic_retrieval.core.errors import NoEmbedding
from semantic_retrieval.core.models import EmbeddingPurpose, PassageMatch, SimilarityMatch
from semantic_retrieval.core.protocols import VectorStore
from semantic_retrieval.core.vectors import validate_dimensions
from semantic_retrieval.embeddings.client import EmbeddingClient
from semantic_retrieval.observability import get_tracer
from semantic_retrieval.observability.attributes import (
    SEARCH_QUERY_TEXT,
    SEARCH_RESULT_COUNT,
    search_attributes,
)

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.7
DEFAULT_LIMIT = 5


class SimilaritySearchEngine:
    """Owner-scoped nearest-neighbour search over stored vectors."""

    def __init__(
        self,
        store: VectorStore,
        client: EmbeddingClient | None = None,
        default_threshold: float = DEFAULT_THRESHOLD,
    ):
        self.store = store
        self.client = client
        self.default_threshold = default_threshold

    def recommend(
        self,
        document_id: str,
        owner_id: str,
        k: int = DEFAULT_LIMIT,
        threshold: float | None = None,
    ) -> list[SimilarityMatch]:
        """
        Documents most similar to ``document_id``, excluding itself.

        Raises:
            NoEmbedding: no summary vector for this document under this owner
        """
        threshold = self.default_threshold if threshold is None else threshold
        tracer = get_tracer()
        attrs = search_attributes(owner_id, threshold, k, source_document_id=document_id)

        with tracer.start_span("search.recommend", attributes=attrs) as span:
            source = self.store.get_summary_embedding(document_id)
            if source is None or source.owner_id != owner_id:
                raise NoEmbedding(document_id)

            if k <= 0:
                return []
            # One extra so dropping the self-match still leaves k
            candidates = self.store.search_summaries(source.vector, owner_id, threshold, k + 1)
            matches = [m for m in candidates if m.document_id != document_id][:k]

            span.set_attribute(SEARCH_RESULT_COUNT, len(matches))
            span.set_status("ok")

        logger.debug(f"recommend({document_id}) -> {len(matches)} matches")
        return matches

    def search_by_vector(
        self,
        vector: np.ndarray,
        owner_id: str,
        threshold: float | None = None,
        k: int = DEFAULT_LIMIT,
    ) -> list[SimilarityMatch]:
        """Top-k documents for an arbitrary query vector."""
        threshold = self.default_threshold if threshold is None else threshold
        if k <= 0:
            return []
        vector = np.asarray(vector, dtype=np.float32)
        if self.client is not None:
            validate_dimensions(vector, self.client.dimensions)

        tracer = get_tracer()
        with tracer.start_span("search.by_vector", attributes=search_attributes(owner_id, threshold, k)) as span:
            matches = self.store.search_summaries(vector, owner_id, threshold, k)
            span.set_attribute(SEARCH_RESULT_COUNT, len(matches))
            span.set_status("ok")
        return matches

    def search_text(
        self,
        query: str,
        owner_id: str,
        threshold: float | None = None,
        k: int = DEFAULT_LIMIT,
    ) -> list[SimilarityMatch]:
        """Embed an ad-hoc query and search summaries with it."""
        threshold = self.default_threshold if threshold is None else threshold
        tracer = get_tracer()
        with tracer.start_span("search.text", attributes=search_attributes(owner_id, threshold, k)) as span:
            span.set_text(SEARCH_QUERY_TEXT, query)
            result = self._client().embed(query, EmbeddingPurpose.QUERY)
            return self.search_by_vector(result.vector, owner_id, threshold, k)

    def search_passages(
        self,
        query: str,
        owner_id: str,
        threshold: float | None = None,
        k: int = DEFAULT_LIMIT,
    ) -> list[PassageMatch]:
        """Embed an ad-hoc query and search chunk vectors with it."""
        threshold = self.default_threshold if threshold is None else threshold
        if k <= 0:
            return []
        result = self._client().embed(query, EmbeddingPurpose.QUERY)

        tracer = get_tracer()
        with tracer.start_span("search.passages", attributes=search_attributes(owner_id, threshold, k)) as span:
            span.set_text(SEARCH_QUERY_TEXT, query)
            matches = self.store.search_chunks(result.vector, owner_id, threshold, k)
            span.set_attribute(SEARCH_RESULT_COUNT, len(matches))
            span.set_status("ok")
        return matches

    def _client(self) -> EmbeddingClient:
        if self.client is None:
            raise RuntimeError("Text search needs an EmbeddingClient")
        return self.client
