"""
Chunk Indexer - turn one document into stored, embedded chunks.

FLOW:
-----
1. Chunk the text (Chunker picks sizing by content type and length)
2. Embed every chunk with purpose "summary" on a bounded thread pool
3. Replace the document's chunk set in one store call
4. Derive topic tags and hand them to the document repository

FAILURE SEMANTICS:
------------------
index() never raises. Indexing runs after document creation has already
succeeded, so a failure here must not undo it:

- UpstreamUnavailable / DegenerateVector on a chunk: the chunk is stored
  with vector=None and counted in chunks_failed
- QuotaExceeded: the whole document is abandoned, nothing is written
- Anything else: logged with traceback, reported in IndexOutcome.error

Two index() calls for the same document id are serialized by a keyed
lock; the later one wins because it writes last. Different documents
index in parallel.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait

from semantic_retrieval.chunking import Chunker, is_chunkable
from semantic_retrieval.core.errors import DocumentNotFound, EmbeddingError, QuotaExceeded
from semantic_retrieval.core.locks import KeyedLocks
from semantic_retrieval.core.models import Chunk, EmbeddingPurpose, IndexOutcome
from semantic_retrieval.core.protocols import DocumentRepository, VectorStore
from semantic_retrieval.embeddings.client import EmbeddingClient
from semantic_retrieval.indexing.topics import extract_topics
from semantic_retrieval.observability import get_tracer
from semantic_retrieval.observability.attributes import (
    INDEX_CHUNKS_CREATED,
    INDEX_CHUNKS_FAILED,
    INDEX_CONTENT_TYPE,
    INDEX_DOCUMENT_ID,
)

logger = logging.getLogger(__name__)


class ChunkIndexer:
    """
    Indexes documents into the vector store.

    Args:
        client: Embedding client (validated, normalized vectors)
        store: Vector store receiving the chunk set
        documents: Document repository, used for owner lookup, tags and reindex
        chunker: Splitter; defaults to content-type heuristics
        concurrency: Parallel chunk embeddings per document
    """

    def __init__(
        self,
        client: EmbeddingClient,
        store: VectorStore,
        documents: DocumentRepository | None = None,
        chunker: Chunker | None = None,
        concurrency: int = 4,
    ):
        self.client = client
        self.store = store
        self.documents = documents
        self.chunker = chunker or Chunker()
        self.concurrency = max(1, concurrency)
        self._locks = KeyedLocks()
        self._executor = ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix="chunk-embed",
        )

    def index(
        self,
        document_id: str,
        text: str,
        content_type: str = "text",
        owner_id: str | None = None,
    ) -> IndexOutcome:
        """Chunk, embed and store one document. Never raises."""
        start = time.perf_counter()
        tracer = get_tracer()
        attrs = {INDEX_DOCUMENT_ID: document_id, INDEX_CONTENT_TYPE: content_type}

        with tracer.start_span("index.document", attributes=attrs) as span:
            try:
                with self._locks.hold(document_id):
                    outcome = self._index_locked(document_id, text, content_type, owner_id)
            except QuotaExceeded as e:
                span.record_error(e)
                logger.warning(f"Quota exceeded while indexing {document_id}; nothing written")
                outcome = IndexOutcome(document_id=document_id, error=e.message)
            except DocumentNotFound as e:
                span.record_error(e)
                logger.warning(f"Skipping index of {document_id}: {e.message}")
                outcome = IndexOutcome(document_id=document_id, error=e.message)
            except Exception as e:
                logger.exception(f"Indexing failed for {document_id}")
                span.record_error(e)
                outcome = IndexOutcome(document_id=document_id, error=str(e) or type(e).__name__)

            outcome.duration_ms = (time.perf_counter() - start) * 1000
            span.set_attribute(INDEX_CHUNKS_CREATED, outcome.chunks_created)
            span.set_attribute(INDEX_CHUNKS_FAILED, outcome.chunks_failed)
            if outcome.ok:
                span.set_status("ok")
            else:
                span.set_status("error", outcome.error)

        if outcome.ok:
            logger.info(
                f"Indexed {document_id}: {outcome.chunks_embedded}/{outcome.chunks_created} "
                f"chunks embedded in {outcome.duration_ms:.0f}ms"
            )
        return outcome

    def reindex(self, document_id: str) -> IndexOutcome:
        """
        Re-run indexing from the document's current text.

        Raises:
            DocumentNotFound: the repository has no such document
        """
        if self.documents is None:
            raise DocumentNotFound(document_id)
        document = self.documents.get(document_id)
        if document is None:
            raise DocumentNotFound(document_id)
        return self.index(document.id, document.text, document.content_type, owner_id=document.owner_id)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    # -----------------------------------------------------------------------

    def _index_locked(
        self,
        document_id: str,
        text: str,
        content_type: str,
        owner_id: str | None,
    ) -> IndexOutcome:
        document = None
        if self.documents is not None:
            # Also catches a delete that landed while this job was queued
            document = self.documents.get(document_id)
            if document is None:
                raise DocumentNotFound(document_id)
            owner_id = owner_id or document.owner_id
        if owner_id is None:
            raise DocumentNotFound(document_id)

        if not is_chunkable(content_type):
            logger.debug(f"Content type {content_type!r} is not chunked; skipping {document_id}")
            return IndexOutcome(document_id=document_id)

        chunks = self.chunker.chunk(document_id, text, content_type).to_list()
        failed = self._embed_chunks(chunks)

        # An empty list still clears chunks left over from an earlier version
        self.store.replace_chunks(document_id, owner_id, chunks)

        outcome = IndexOutcome(
            document_id=document_id,
            chunks_created=len(chunks),
            chunks_embedded=len(chunks) - failed,
            chunks_failed=failed,
        )
        if chunks:
            key_topics = document.key_topics if document is not None else ()
            outcome.tags = extract_topics(text, key_topics=key_topics)
            self._save_tags(document_id, outcome.tags)
        return outcome

    def _embed_chunks(self, chunks: list[Chunk]) -> int:
        """Embed chunks in place. Returns the number that failed."""
        if not chunks:
            return 0

        futures = [self._executor.submit(self._embed_chunk, chunk) for chunk in chunks]
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)
        for future in done:
            if isinstance(future.exception(), QuotaExceeded):
                for other in pending:
                    other.cancel()
                raise future.exception()
        return sum(0 if future.result() else 1 for future in futures)

    def _embed_chunk(self, chunk: Chunk) -> bool:
        try:
            result = self.client.embed(chunk.text, EmbeddingPurpose.SUMMARY)
        except QuotaExceeded:
            raise
        except EmbeddingError as e:
            logger.warning(
                f"Chunk {chunk.sequence_index} of {chunk.document_id} failed to embed: [{e.code}] {e.message}"
            )
            chunk.vector = None
            return False

        chunk.vector = result.vector
        chunk.model_id = result.model_id
        if result.token_count:
            chunk.token_count = result.token_count
        return True

    def _save_tags(self, document_id: str, tags: list[str]) -> None:
        if self.documents is None or not tags:
            return
        try:
            self.documents.set_tags(document_id, tags)
        except Exception:
            logger.warning(f"Could not save tags for {document_id}", exc_info=True)
