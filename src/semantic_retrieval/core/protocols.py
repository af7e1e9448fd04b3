"""
Core protocols defining contracts for the entire system.

All infrastructure components implement these protocols,
enabling dependency injection and easy testing.

PATTERN: Every seam follows the same structure
- Protocol defines the contract
- Production implementation (OpenAI, Postgres)
- Test double / in-memory implementation
- Factory function for instantiation

The core never imports a concrete backend or store. The process entry
point builds them and passes them in.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Iterator, Protocol, Sequence, runtime_checkable

import numpy as np

from semantic_retrieval.core.models import (
    Chunk,
    Document,
    PassageMatch,
    RawEmbedding,
    SimilarityMatch,
    SummaryEmbedding,
)


# ---------------------------------------------------------------------------
# EMBEDDING BACKEND PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class EmbeddingBackend(Protocol):
    """
    Contract for the network call that turns text into a raw vector.

    Implementations:
    - OpenAIEmbeddings (production)
    - MockEmbeddings (testing)

    Backends raise the raw SDK / transport exceptions; EmbeddingClient
    maps them onto the error taxonomy.
    """

    @property
    def model_id(self) -> str:
        ...

    @property
    def dimensions(self) -> int:
        ...

    def embed_text(self, text: str, input_type: str) -> RawEmbedding:
        """Embed one text. ``input_type`` is "document" or "query"."""
        ...


# ---------------------------------------------------------------------------
# VECTOR STORE PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class VectorStore(Protocol):
    """
    Narrow storage interface for chunk rows and summary-embedding rows.

    Implementations:
    - PgVectorStore (production with PostgreSQL + pgvector)
    - InMemoryVectorStore (testing/development)
    """

    def connect(self) -> None:
        ...

    def close(self) -> None:
        ...

    def create_schema(self) -> None:
        ...

    # chunks ---------------------------------------------------------------

    def replace_chunks(self, document_id: str, owner_id: str, chunks: Sequence[Chunk]) -> None:
        """Delete every chunk of the document and insert ``chunks`` atomically."""
        ...

    def get_chunks(self, document_id: str) -> list[Chunk]:
        ...

    def delete_chunks(self, document_id: str) -> int:
        ...

    def has_chunks(self, document_id: str) -> bool:
        ...

    def search_chunks(
        self,
        vector: np.ndarray,
        owner_id: str,
        threshold: float,
        limit: int,
    ) -> list[PassageMatch]:
        ...

    # summary embeddings ----------------------------------------------------

    def upsert_summary_embedding(self, embedding: SummaryEmbedding) -> None:
        """Insert or overwrite the document's single summary vector."""
        ...

    def upsert_summary_embeddings(self, embeddings: Sequence[SummaryEmbedding]) -> None:
        """Persist several summary vectors as one unit of work."""
        ...

    def get_summary_embedding(self, document_id: str) -> SummaryEmbedding | None:
        ...

    def has_summary_embedding(self, document_id: str) -> bool:
        ...

    def count_summaries(self, owner_id: str | None = None) -> int:
        ...

    def search_summaries(
        self,
        vector: np.ndarray,
        owner_id: str,
        threshold: float,
        limit: int,
    ) -> list[SimilarityMatch]:
        """Top ``limit`` owner-scoped documents with similarity >= threshold."""
        ...

    # lifecycle -------------------------------------------------------------

    def delete_document(self, document_id: str) -> None:
        """Drop all derived rows for a document."""
        ...


# ---------------------------------------------------------------------------
# DOCUMENT REPOSITORY PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class DocumentRepository(Protocol):
    """
    Contract for the external document store, as seen by the pipeline.

    Implementations:
    - PgDocumentRepository (production)
    - InMemoryDocumentRepository (testing/development)
    """

    def add(self, document: Document) -> Document:
        ...

    def get(self, document_id: str) -> Document | None:
        ...

    def iter_after(
        self,
        cursor: tuple[datetime, str] | None,
        limit: int,
        owner_id: str | None = None,
    ) -> list[Document]:
        """
        Next page of documents in (created_at, id) ascending order,
        strictly after ``cursor``.
        """
        ...

    def set_tags(self, document_id: str, tags: Iterable[str]) -> None:
        ...

    def delete(self, document_id: str) -> bool:
        ...

    def count(self, owner_id: str | None = None) -> int:
        ...


def iter_all_documents(
    repository: DocumentRepository,
    page_size: int = 100,
    owner_id: str | None = None,
) -> Iterator[list[Document]]:
    """Walk the repository page by page in stable order."""
    cursor: tuple[datetime, str] | None = None
    while True:
        page = repository.iter_after(cursor, page_size, owner_id=owner_id)
        if not page:
            return
        yield page
        last = page[-1]
        cursor = (last.created_at, last.id)
