"""
Error taxonomy for the embedding and retrieval pipeline.

Every failure the core can surface maps to one of these classes. Each
carries a stable ``code`` and an ``http_status`` hint so the inbound
layer (CLI, HTTP adapter) can translate it without string matching.

PROPAGATION POLICY:
-------------------
- Chunker / ChunkIndexer: recovered locally, logged, reported in IndexOutcome
- BackfillReconciler: recovered per document, counted under ``failed``
- SimilaritySearchEngine: propagated to the caller uncaught
"""

from __future__ import annotations


class SemanticRetrievalError(Exception):
    """Base class for all pipeline errors."""

    code = "internal_error"
    http_status = 500
    retryable = False

    def __init__(self, message: str, *, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


# ---------------------------------------------------------------------------
# EMBEDDING ERRORS
# ---------------------------------------------------------------------------


class EmbeddingError(SemanticRetrievalError):
    """Any failure producing an embedding."""

    code = "embedding_error"


class InvalidInput(EmbeddingError):
    """Empty or otherwise unusable input text. User-correctable."""

    code = "invalid_input"
    http_status = 400


class InputTooLarge(InvalidInput):
    """Input exceeds the backend bound. Never silently truncated."""

    code = "input_too_large"

    def __init__(self, length: int, limit: int):
        super().__init__(f"Text length {length} exceeds max length of {limit} characters")
        self.length = length
        self.limit = limit


class UpstreamUnavailable(EmbeddingError):
    """Transient backend failure (network, timeout, 5xx)."""

    code = "upstream_unavailable"
    http_status = 503
    retryable = True


class QuotaExceeded(EmbeddingError):
    """Rate limit or billing quota hit. Fatal for the current item."""

    code = "quota_exceeded"
    http_status = 429


class DegenerateVector(EmbeddingError):
    """Backend returned a vector that cannot be used (zero, NaN, wrong size)."""

    code = "degenerate_vector"
    http_status = 502


# ---------------------------------------------------------------------------
# RETRIEVAL ERRORS
# ---------------------------------------------------------------------------


class NoEmbedding(SemanticRetrievalError):
    """The source document has no summary embedding visible to this owner."""

    code = "no_embedding"
    http_status = 404

    def __init__(self, document_id: str):
        super().__init__(f"Document {document_id} not found or has no embedding")
        self.document_id = document_id


class DocumentNotFound(SemanticRetrievalError):
    """Document does not exist in the document repository."""

    code = "document_not_found"
    http_status = 404

    def __init__(self, document_id: str):
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id
