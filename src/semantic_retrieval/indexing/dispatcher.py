"""
Fire-and-forget indexing.

Document creation must not wait for chunk embedding. The dispatcher runs
ChunkIndexer.index() on its own pool and returns the Future; callers that
care can wait on it, everyone else gets the outcome in the log.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from semantic_retrieval.core.models import IndexOutcome
from semantic_retrieval.indexing.indexer import ChunkIndexer

logger = logging.getLogger(__name__)


class IndexDispatcher:
    """Runs indexing jobs in the background."""

    def __init__(self, indexer: ChunkIndexer, max_workers: int = 2):
        self.indexer = indexer
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers),
            thread_name_prefix="index-dispatch",
        )
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    def dispatch(
        self,
        document_id: str,
        text: str,
        content_type: str = "text",
        owner_id: str | None = None,
    ) -> Future[IndexOutcome]:
        """Queue a document for indexing and return immediately."""
        future = self._executor.submit(self.indexer.index, document_id, text, content_type, owner_id)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._on_done)
        logger.debug(f"Dispatched indexing for {document_id}")
        return future

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _on_done(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            # index() reports through IndexOutcome; reaching here is a bug
            logger.error(f"Index job crashed: {error!r}")
            return

        outcome = future.result()
        if not outcome.ok:
            logger.warning(f"Indexing {outcome.document_id} failed: {outcome.error}")
        elif outcome.chunks_failed:
            logger.warning(
                f"Indexing {outcome.document_id}: {outcome.chunks_failed} of "
                f"{outcome.chunks_created} chunks stored without a vector"
            )
