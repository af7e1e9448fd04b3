"""
Backfill Reconciler - bring every document up to date with a summary vector.

Documents can end up without a usable summary embedding: the embedding
call failed at creation time, the document predates the pipeline, or the
stored vector came from another model or dimensionality. The reconciler
walks the corpus and repairs them.

HOW A RUN WORKS:
----------------
1. Page through documents in (created_at, id) order, ``batch_size`` at a time
2. Skip documents whose summary embedding is current (skip_existing)
3. Embed the rest on a bounded worker pool, retrying transient failures
4. Persist the batch's embeddings in one upsert
5. Check the stop event, then move to the next page

Re-running is always safe. With skip_existing a second run over an
unchanged corpus embeds nothing; without it every vector is overwritten
in place, never duplicated. An interrupted run reports the cursor of its
last committed batch; passing it back as ``after`` resumes from there.

RETRY POLICY:
-------------
Only UpstreamUnavailable is retried (tenacity, exponential backoff). Quota,
invalid input and degenerate vectors fail that one document immediately;
the batch and the run carry on.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from semantic_retrieval.chunking import is_chunkable
from semantic_retrieval.core.errors import EmbeddingError, UpstreamUnavailable
from semantic_retrieval.core.models import (
    BackfillFailure,
    BackfillResult,
    BackfillStatus,
    ChunkBackfillResult,
    Document,
    EmbeddingPurpose,
    SummaryEmbedding,
)
from semantic_retrieval.core.protocols import DocumentRepository, VectorStore
from semantic_retrieval.documents.ingestion import build_summary_input
from semantic_retrieval.embeddings.client import EmbeddingClient
from semantic_retrieval.embeddings.pricing import estimate_embedding_cost
from semantic_retrieval.indexing.indexer import ChunkIndexer
from semantic_retrieval.observability import get_tracer
from semantic_retrieval.observability.attributes import (
    BACKFILL_FAILED,
    BACKFILL_PROCESSED,
    BACKFILL_SKIPPED,
    backfill_batch_attributes,
)

logger = logging.getLogger(__name__)

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 100

Cursor = tuple[datetime, str]


def clamp_batch_size(batch_size: int) -> int:
    return max(MIN_BATCH_SIZE, min(MAX_BATCH_SIZE, int(batch_size)))


@dataclass
class RetryPolicy:
    """
    Exponential backoff for transient embedding failures.

    ``max_retries`` counts attempts after the first one, so a document is
    tried at most ``max_retries + 1`` times. Waits are
    ``initial_delay * backoff_multiplier ** n`` capped at ``max_delay``.
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float = 30.0

    def retrying(
        self,
        sleep: Callable[[float], None] = time.sleep,
        before_sleep: Callable[[RetryCallState], None] | None = None,
    ) -> Retrying:
        """Build a tenacity controller that retries UpstreamUnavailable only."""
        return Retrying(
            retry=retry_if_exception_type(UpstreamUnavailable),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.initial_delay,
                exp_base=self.backoff_multiplier,
                max=self.max_delay,
            ),
            sleep=sleep,
            before_sleep=before_sleep,
            reraise=True,
        )


class BackfillReconciler:
    """
    Repairs missing or stale summary embeddings (and missing chunk sets).

    Args:
        client: Embedding client
        store: Vector store holding summary embeddings and chunks
        documents: Source of documents to scan
        indexer: Needed only for backfill_chunks()
        concurrency: Parallel embeddings within one batch
        retry: Backoff policy for UpstreamUnavailable
        sleep: Injected for tests
    """

    def __init__(
        self,
        client: EmbeddingClient,
        store: VectorStore,
        documents: DocumentRepository,
        indexer: ChunkIndexer | None = None,
        concurrency: int = 4,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.store = store
        self.documents = documents
        self.indexer = indexer
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, concurrency),
            thread_name_prefix="backfill",
        )

    # -----------------------------------------------------------------------
    # SUMMARY EMBEDDINGS
    # -----------------------------------------------------------------------

    def backfill(
        self,
        batch_size: int = 10,
        dry_run: bool = False,
        skip_existing: bool = True,
        owner_id: str | None = None,
        stop_event: threading.Event | None = None,
        after: Cursor | None = None,
    ) -> BackfillResult:
        """
        Embed every document that lacks a current summary vector.

        ``after`` is a (created_at, document_id) cursor from a previous
        result; documents up to and including it are not visited.

        Never raises for per-document problems; those are counted in
        ``failed`` and listed in ``failures``. A storage failure while
        reading pages does propagate.
        """
        batch_size = clamp_batch_size(batch_size)
        start = time.perf_counter()
        result = BackfillResult(dry_run=dry_run)
        cursor = after

        logger.info(
            f"Backfill started (batch_size={batch_size}, dry_run={dry_run}, "
            f"skip_existing={skip_existing}, after={after})"
        )

        while True:
            if stop_event is not None and stop_event.is_set():
                result.interrupted = True
                logger.info(f"Backfill interrupted after {result.batches} batches at {cursor}")
                break

            page = self.documents.iter_after(cursor, batch_size, owner_id)
            if not page:
                break
            cursor = (page[-1].created_at, page[-1].id)
            result.batches += 1
            self._run_batch(page, result, result.batches, dry_run, skip_existing)
            result.last_document_id = page[-1].id
            result.last_created_at = page[-1].created_at
            logger.info(f"Batch {result.batches} done; cursor=({cursor[0].isoformat()}, {cursor[1]})")

        result.duration_ms = (time.perf_counter() - start) * 1000
        result.estimated_cost_usd = estimate_embedding_cost(result.total_tokens, self.client.model_id)

        logger.info(
            f"Backfill finished: processed={result.processed} failed={result.failed} "
            f"skipped={result.skipped} in {result.duration_ms:.0f}ms"
        )
        return result

    def is_current(self, embedding: SummaryEmbedding | None) -> bool:
        """True when a stored vector came from the client's model at its size."""
        if embedding is None or embedding.vector is None:
            return False
        return (
            embedding.model_id == self.client.model_id
            and len(embedding.vector) == self.client.dimensions
        )

    def _run_batch(
        self,
        page: list[Document],
        result: BackfillResult,
        batch_number: int,
        dry_run: bool,
        skip_existing: bool,
    ) -> None:
        tracer = get_tracer()
        attrs = backfill_batch_attributes(batch_number, len(page), dry_run)

        with tracer.start_span("backfill.batch", attributes=attrs) as span:
            todo = []
            skipped = 0
            for document in page:
                if skip_existing and self.is_current(self.store.get_summary_embedding(document.id)):
                    skipped += 1
                else:
                    todo.append(document)

            embeddings: list[SummaryEmbedding] = []
            failures: list[BackfillFailure] = []
            for outcome in self._executor.map(self._embed_document, todo):
                if isinstance(outcome, BackfillFailure):
                    failures.append(outcome)
                else:
                    embeddings.append(outcome)

            if embeddings and not dry_run:
                try:
                    self.store.upsert_summary_embeddings(embeddings)
                except Exception as e:
                    logger.error(f"Batch {batch_number} could not be saved: {e!r}")
                    span.record_error(e)
                    failures.extend(BackfillFailure(emb.document_id, f"store: {e}") for emb in embeddings)
                    embeddings = []

            result.skipped += skipped
            result.processed += len(embeddings)
            result.failed += len(failures)
            result.failures.extend(failures)
            result.total_tokens += sum(emb.token_count for emb in embeddings)

            span.set_attribute(BACKFILL_PROCESSED, len(embeddings))
            span.set_attribute(BACKFILL_FAILED, len(failures))
            span.set_attribute(BACKFILL_SKIPPED, skipped)
            span.set_status("error" if failures else "ok")

        logger.debug(
            f"Batch {batch_number}: {len(embeddings)} embedded, {len(failures)} failed, {skipped} skipped"
        )

    def _embed_document(self, document: Document) -> SummaryEmbedding | BackfillFailure:
        def log_retry(retry_state: RetryCallState) -> None:
            logger.info(
                f"Upstream unavailable for {document.id}; retry {retry_state.attempt_number}/"
                f"{self.retry.max_retries} in {retry_state.next_action.sleep:.1f}s"
            )

        retrying = self.retry.retrying(sleep=self._sleep, before_sleep=log_retry)
        try:
            return retrying(self._embed_once, document)
        except UpstreamUnavailable as e:
            logger.warning(
                f"Giving up on {document.id} after {self.retry.max_retries + 1} attempts: {e.message}"
            )
            return BackfillFailure(document.id, e.message)
        except EmbeddingError as e:
            logger.warning(f"Backfill failed for {document.id}: [{e.code}] {e.message}")
            return BackfillFailure(document.id, e.message)
        except Exception as e:
            logger.exception(f"Unexpected backfill failure for {document.id}")
            return BackfillFailure(document.id, str(e) or type(e).__name__)

    def _embed_once(self, document: Document) -> SummaryEmbedding:
        text = build_summary_input(document, self.client.max_input_chars)
        result = self.client.embed(text, EmbeddingPurpose.SUMMARY)
        return SummaryEmbedding(
            document_id=document.id,
            owner_id=document.owner_id,
            vector=result.vector,
            model_id=result.model_id,
            token_count=result.token_count,
            document_created_at=document.created_at,
        )

    # -----------------------------------------------------------------------
    # CHUNKS
    # -----------------------------------------------------------------------

    def backfill_chunks(
        self,
        batch_size: int = 10,
        dry_run: bool = False,
        owner_id: str | None = None,
        stop_event: threading.Event | None = None,
    ) -> ChunkBackfillResult:
        """Index chunkable documents that have no chunks yet."""
        if self.indexer is None:
            raise RuntimeError("backfill_chunks() needs a ChunkIndexer")

        batch_size = clamp_batch_size(batch_size)
        start = time.perf_counter()
        result = ChunkBackfillResult()
        cursor = None

        while stop_event is None or not stop_event.is_set():
            page = self.documents.iter_after(cursor, batch_size, owner_id)
            if not page:
                break
            cursor = (page[-1].created_at, page[-1].id)

            for document in page:
                if not is_chunkable(document.content_type) or self.store.has_chunks(document.id):
                    continue
                if dry_run:
                    planned = self.indexer.chunker.chunk(document.id, document.text, document.content_type)
                    result.documents_processed += 1
                    result.chunks_created += len(planned.to_list())
                    continue

                outcome = self.indexer.index(
                    document.id, document.text, document.content_type, owner_id=document.owner_id
                )
                if outcome.ok:
                    result.documents_processed += 1
                    result.chunks_created += outcome.chunks_created
                    result.chunks_embedded += outcome.chunks_embedded
                else:
                    result.failed += 1

        result.duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"Chunk backfill finished: {result.documents_processed} documents, "
            f"{result.chunks_created} chunks, {result.failed} failed"
        )
        return result

    # -----------------------------------------------------------------------
    # STATUS
    # -----------------------------------------------------------------------

    def status(self, owner_id: str | None = None) -> BackfillStatus:
        """Documents with and without a summary embedding."""
        completed = self.store.count_summaries(owner_id)
        total = self.documents.count(owner_id)
        return BackfillStatus(pending=max(0, total - completed), completed=completed)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
