"""
Embeddings module - text embedding generation.

It follows the project's standard pattern:
1. Protocol (EmbeddingBackend, in core.protocols) defines the interface
2. Production implementation (OpenAIEmbeddings)
3. Test double (MockEmbeddings) for fast testing
4. Factory function (get_embedding_backend)

EmbeddingClient wraps any backend with validation, normalization and
error mapping; it is what the rest of the pipeline depends on.
"""

from semantic_retrieval.embeddings.openai_embeddings import (
    OpenAIEmbeddings,
    MockEmbeddings,
    get_embedding_backend,
    translate_openai_error,
)
from semantic_retrieval.embeddings.client import (
    EmbeddingClient,
    MAX_TEXT_LENGTH,
)
from semantic_retrieval.embeddings.cache import QueryEmbeddingCache
from semantic_retrieval.embeddings.pricing import (
    estimate_embedding_cost,
    estimate_corpus_cost,
)

__all__ = [
    "OpenAIEmbeddings",
    "MockEmbeddings",
    "get_embedding_backend",
    "translate_openai_error",
    "EmbeddingClient",
    "MAX_TEXT_LENGTH",
    "QueryEmbeddingCache",
    "estimate_embedding_cost",
    "estimate_corpus_cost",
]
