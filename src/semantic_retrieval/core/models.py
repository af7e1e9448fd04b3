"""
Typed records for every entity the pipeline reads or writes.

Documents are owned by the external document store; the pipeline only
reads them. Chunks and summary embeddings are derived artifacts keyed by
document id and are deleted along with their document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

import numpy as np


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmbeddingPurpose(str, Enum):
    """Which side of an asymmetric encoder a text belongs to."""

    SUMMARY = "summary"  # corpus / document side
    QUERY = "query"  # ad-hoc search text


# ---------------------------------------------------------------------------
# SOURCE RECORDS
# ---------------------------------------------------------------------------


@dataclass
class Document:
    """A user document as handed to the pipeline by the document store."""

    id: str
    owner_id: str
    title: str
    content_type: str
    text: str
    created_at: datetime = field(default_factory=utcnow)
    url: str | None = None
    summary_text: str | None = None
    key_topics: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# DERIVED RECORDS
# ---------------------------------------------------------------------------


@dataclass
class Chunk:
    """
    A contiguous span of a document's text.

    ``text == document.text[char_start:char_end]``. ``vector`` is None when
    the chunk was stored but its embedding failed.
    """

    document_id: str
    sequence_index: int
    text: str
    char_start: int
    char_end: int
    vector: np.ndarray | None = None
    model_id: str | None = None
    token_count: int = 0
    boundary: str = "paragraph"  # paragraph | sentence | word | hard | end
    page_number: int | None = None

    @property
    def embedded(self) -> bool:
        return self.vector is not None


@dataclass
class SummaryEmbedding:
    """The single whole-document vector used for recommendations."""

    document_id: str
    owner_id: str
    vector: np.ndarray
    model_id: str
    token_count: int
    document_created_at: datetime = field(default_factory=utcnow)


@dataclass
class RawEmbedding:
    """What a backend returns before validation and normalization."""

    vector: np.ndarray
    token_count: int
    model_id: str


@dataclass
class EmbeddingResult:
    """Output of one embedding call."""

    vector: np.ndarray
    model_id: str
    token_count: int

    @property
    def dimensions(self) -> int:
        return int(self.vector.shape[0])


# ---------------------------------------------------------------------------
# QUERY RESULTS
# ---------------------------------------------------------------------------


@dataclass
class SimilarityMatch:
    """A document scored against a query vector."""

    document_id: str
    similarity: float
    created_at: datetime | None = None

    def to_dict(self) -> dict:
        return {"document_id": self.document_id, "similarity": self.similarity}


@dataclass
class PassageMatch:
    """A chunk scored against a query vector."""

    document_id: str
    sequence_index: int
    text: str
    similarity: float
    char_start: int
    char_end: int
    page_number: int | None = None


# ---------------------------------------------------------------------------
# OPERATION OUTCOMES
# ---------------------------------------------------------------------------


@dataclass
class IndexOutcome:
    """
    Result of indexing one document.

    Indexing never raises to its caller; failures land in ``error``.
    """

    document_id: str
    chunks_created: int = 0
    chunks_embedded: int = 0
    chunks_failed: int = 0
    tags: list[str] = field(default_factory=list)
    error: str | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BackfillFailure:
    document_id: str
    error: str


@dataclass
class BackfillResult:
    """Per-run statistics for a summary-embedding backfill."""

    processed: int = 0
    failed: int = 0
    skipped: int = 0
    duration_ms: float = 0.0
    failures: list[BackfillFailure] = field(default_factory=list)
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0
    batches: int = 0
    interrupted: bool = False
    dry_run: bool = False
    last_document_id: str | None = None
    last_created_at: datetime | None = None

    @property
    def cursor(self) -> tuple[datetime, str] | None:
        """Resume point: pass as ``after`` to continue past the last batch."""
        if self.last_document_id is None or self.last_created_at is None:
            return None
        return (self.last_created_at, self.last_document_id)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "duration_ms": round(self.duration_ms, 2),
            "failures": [{"document_id": f.document_id, "error": f.error} for f in self.failures],
            "total_tokens": self.total_tokens,
            "estimated_cost_usd": self.estimated_cost_usd,
            "batches": self.batches,
            "interrupted": self.interrupted,
            "dry_run": self.dry_run,
            "last_document_id": self.last_document_id,
            "last_created_at": self.last_created_at,
        }


@dataclass
class ChunkBackfillResult:
    documents_processed: int = 0
    chunks_created: int = 0
    chunks_embedded: int = 0
    failed: int = 0
    duration_ms: float = 0.0


@dataclass
class BackfillStatus:
    pending: int
    completed: int

    @property
    def total(self) -> int:
        return self.pending + self.completed
