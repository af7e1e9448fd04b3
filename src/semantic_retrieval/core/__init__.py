"""
Core module - shared protocols, records and errors for the entire system.

This module provides the foundational contracts that enable:
- Dependency injection throughout the codebase
- Easy testing with in-memory implementations
- Clear separation of concerns

USAGE:
------
from semantic_retrieval.core import VectorStore, EmbeddingBackend

class MyVectorStore:
    '''Implements VectorStore protocol.'''
    ...
"""

from semantic_retrieval.core.errors import (
    SemanticRetrievalError,
    EmbeddingError,
    InvalidInput,
    InputTooLarge,
    UpstreamUnavailable,
    QuotaExceeded,
    DegenerateVector,
    NoEmbedding,
    DocumentNotFound,
)
from semantic_retrieval.core.models import (
    EmbeddingPurpose,
    Document,
    Chunk,
    SummaryEmbedding,
    RawEmbedding,
    EmbeddingResult,
    SimilarityMatch,
    PassageMatch,
    IndexOutcome,
    BackfillFailure,
    BackfillResult,
    ChunkBackfillResult,
    BackfillStatus,
)
from semantic_retrieval.core.protocols import (
    EmbeddingBackend,
    VectorStore,
    DocumentRepository,
    iter_all_documents,
)

__all__ = [
    # Errors
    "SemanticRetrievalError",
    "EmbeddingError",
    "InvalidInput",
    "InputTooLarge",
    "UpstreamUnavailable",
    "QuotaExceeded",
    "DegenerateVector",
    "NoEmbedding",
    "DocumentNotFound",
    # Records
    "EmbeddingPurpose",
    "Document",
    "Chunk",
    "SummaryEmbedding",
    "RawEmbedding",
    "EmbeddingResult",
    "SimilarityMatch",
    "PassageMatch",
    "IndexOutcome",
    "BackfillFailure",
    "BackfillResult",
    "ChunkBackfillResult",
    "BackfillStatus",
    # Protocols
    "EmbeddingBackend",
    "VectorStore",
    "DocumentRepository",
    "iter_all_documents",
]
