"""
Document ingestion - the create/delete path that feeds the index.

create_document() does the synchronous part of ingestion:

1. Validate and store the document
2. Embed the summary input (purpose "summary") and upsert the
   SummaryEmbedding so the document is immediately recommendable
3. Dispatch chunk indexing in the background

A failed summary embedding does not fail creation. The document is kept
without a vector and the backfill reconciler picks it up later.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Iterable

from semantic_retrieval.core.errors import EmbeddingError, InvalidInput
from semantic_retrieval.core.models import Document, EmbeddingPurpose, IndexOutcome, SummaryEmbedding
from semantic_retrieval.core.protocols import DocumentRepository, VectorStore
from semantic_retrieval.documents.repository import new_document_id
from semantic_retrieval.embeddings.client import MAX_TEXT_LENGTH, EmbeddingClient
from semantic_retrieval.indexing.dispatcher import IndexDispatcher

logger = logging.getLogger(__name__)


def _cut_at_word(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    cut = text.rfind(" ", 0, limit + 1)
    if cut <= 0:
        cut = limit
    return text[:cut].rstrip()


def build_summary_input(document: Document, limit: int = MAX_TEXT_LENGTH) -> str:
    """
    Text that stands for the whole document in recommendations.

    With a caller-supplied summary: the summary followed by its key topics.
    Without one: the title followed by the start of the body. Either way
    the result is cut at a word boundary to ``limit`` characters.
    """
    if document.summary_text and document.summary_text.strip():
        parts = [document.summary_text.strip(), *document.key_topics]
    else:
        parts = [document.title.strip(), document.text.strip()]
    return _cut_at_word(" ".join(p for p in parts if p), limit)


@dataclass
class CreatedDocument:
    """What the caller gets back from create_document()."""

    document_id: str
    summary_embedded: bool
    summary_error: str | None = None
    index_error: str | None = None
    index_future: Future[IndexOutcome] | None = field(default=None, repr=False)


class IngestionService:
    """Creates and deletes documents, keeping their vectors in step."""

    def __init__(
        self,
        client: EmbeddingClient,
        store: VectorStore,
        documents: DocumentRepository,
        dispatcher: IndexDispatcher,
    ):
        self.client = client
        self.store = store
        self.documents = documents
        self.dispatcher = dispatcher

    def create_document(
        self,
        owner_id: str,
        title: str,
        content_type: str,
        text: str,
        url: str | None = None,
        summary_text: str | None = None,
        key_topics: Iterable[str] = (),
    ) -> CreatedDocument:
        """
        Store a document, embed its summary and queue chunk indexing.

        Raises:
            InvalidInput: empty text or missing owner (nothing is stored)
        """
        if not text or not text.strip():
            raise InvalidInput("Content is required")
        if not owner_id:
            raise InvalidInput("owner_id is required")

        document = Document(
            id=new_document_id(),
            owner_id=owner_id,
            title=title or "Untitled",
            content_type=content_type,
            text=text,
            url=url,
            summary_text=summary_text,
            key_topics=list(key_topics),
        )
        self.documents.add(document)
        logger.info(f"Created document {document.id} ({content_type}, {len(text)} chars)")

        created = CreatedDocument(document_id=document.id, summary_embedded=False)
        try:
            self.embed_summary(document)
            created.summary_embedded = True
        except EmbeddingError as e:
            logger.warning(
                f"Summary embedding failed for {document.id}: [{e.code}] {e.message}; left for backfill"
            )
            created.summary_error = e.code

        try:
            created.index_future = self.dispatcher.dispatch(
                document.id, document.text, document.content_type, document.owner_id
            )
        except RuntimeError as e:
            # executor already shut down; chunk backfill picks the document up later
            logger.error(f"Could not queue indexing for {document.id}: {e}")
            created.index_error = str(e)
        return created

    def embed_summary(self, document: Document) -> SummaryEmbedding:
        """Embed and upsert one document's summary vector."""
        result = self.client.embed(
            build_summary_input(document, self.client.max_input_chars),
            EmbeddingPurpose.SUMMARY,
        )
        embedding = SummaryEmbedding(
            document_id=document.id,
            owner_id=document.owner_id,
            vector=result.vector,
            model_id=result.model_id,
            token_count=result.token_count,
            document_created_at=document.created_at,
        )
        self.store.upsert_summary_embedding(embedding)
        return embedding

    def delete_document(self, document_id: str) -> bool:
        """Delete a document with its chunks and summary embedding."""
        self.store.delete_document(document_id)
        deleted = self.documents.delete(document_id)
        if deleted:
            logger.info(f"Deleted document {document_id}")
        return deleted
