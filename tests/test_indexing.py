"""
Unit Tests for ChunkIndexer, IndexDispatcher and topic extraction

STAFF ENGINEER PATTERNS:
------------------------
1. index() never raises, so every failure is asserted on IndexOutcome
2. Failure injection through the stub backend's ``fail`` predicate
3. Concurrency checked with real threads and a keyed lock
"""

import logging
import threading
import time

import numpy as np
import pytest

from semantic_retrieval.core.errors import DocumentNotFound, QuotaExceeded, UpstreamUnavailable
from semantic_retrieval.core.locks import KeyedLocks
from semantic_retrieval.core.vectors import magnitude
from semantic_retrieval.embeddings import EmbeddingClient
from semantic_retrieval.indexing import ChunkIndexer, IndexDispatcher, extract_topics
from semantic_retrieval.retrieval import InMemoryVectorStore

from conftest import StubBackend, long_text


@pytest.fixture
def indexer(client, store, documents):
    indexer = ChunkIndexer(client, store, documents, concurrency=3)
    yield indexer
    indexer.close()


class FailingStore(InMemoryVectorStore):
    def replace_chunks(self, document_id, owner_id, chunks):
        raise RuntimeError("disk full")


# ---------------------------------------------------------------------------
# CHUNK INDEXER
# ---------------------------------------------------------------------------


class TestChunkIndexer:
    """Happy paths."""

    def test_long_text_is_stored_as_normalized_chunks(self, indexer, store, make_document):
        doc = make_document(text=long_text())

        outcome = indexer.index(doc.id, doc.text, doc.content_type)

        assert outcome.ok
        assert outcome.chunks_created > 1
        assert outcome.chunks_embedded == outcome.chunks_created
        assert outcome.duration_ms >= 0

        chunks = store.get_chunks(doc.id)
        assert len(chunks) == outcome.chunks_created
        for chunk in chunks:
            assert chunk.text == doc.text[chunk.char_start:chunk.char_end]
            assert abs(magnitude(chunk.vector) - 1.0) < 1e-6
            assert chunk.model_id == "stub-embedding"

    def test_chunks_embedded_with_summary_purpose(self, indexer, backend, make_document):
        doc = make_document()
        indexer.index(doc.id, doc.text)
        assert {purpose for _, purpose in backend.calls} == {"document"}

    def test_short_text_is_one_chunk(self, indexer, store, make_document):
        doc = make_document(text="Brief note.")
        outcome = indexer.index(doc.id, doc.text)

        assert outcome.chunks_created == 1
        assert store.get_chunks(doc.id)[0].text == "Brief note."

    def test_empty_text_creates_no_chunks(self, indexer, store, make_document):
        doc = make_document(text="   ")
        outcome = indexer.index(doc.id, doc.text)

        assert outcome.ok
        assert outcome.chunks_created == 0
        assert store.get_chunks(doc.id) == []

    def test_image_is_skipped(self, indexer, backend, make_document):
        doc = make_document(content_type="image", text="image bytes description")
        outcome = indexer.index(doc.id, doc.text, "image")

        assert outcome.ok
        assert outcome.chunks_created == 0
        assert backend.calls == []

    def test_owner_comes_from_repository(self, indexer, store, make_document):
        doc = make_document(owner_id="user-9", text="Owned text.")
        indexer.index(doc.id, doc.text)

        matches = store.search_chunks(store.get_chunks(doc.id)[0].vector, "user-9", 0.9, 5)
        assert [m.document_id for m in matches] == [doc.id]

    def test_without_repository_needs_owner(self, client, store):
        indexer = ChunkIndexer(client, store)
        try:
            assert indexer.index("loose", "Some text.", owner_id="user-1").ok
            assert not indexer.index("loose", "Some text.").ok
        finally:
            indexer.close()


class TestTags:
    def test_tags_saved_with_key_topics_first(self, indexer, documents, make_document):
        doc = make_document(text=long_text(paragraphs=2), key_topics=["Endocrine"])

        outcome = indexer.index(doc.id, doc.text)

        assert outcome.tags[0] == "endocrine"
        assert len(outcome.tags) <= 5
        assert documents.get(doc.id).tags == outcome.tags

    def test_no_tags_without_chunks(self, indexer, documents, make_document):
        doc = make_document(text="")
        assert indexer.index(doc.id, doc.text).tags == []
        assert documents.get(doc.id).tags == []


class TestIndexFailures:
    """Failure semantics."""

    def test_failed_chunk_is_stored_without_vector(self, store, documents, make_document):
        backend = StubBackend(
            fail=lambda text: UpstreamUnavailable("blip") if "Paragraph 3 sentence 5" in text else None
        )
        indexer = ChunkIndexer(EmbeddingClient(backend), store, documents)
        doc = make_document(text=long_text())
        try:
            outcome = indexer.index(doc.id, doc.text)
        finally:
            indexer.close()

        assert outcome.ok
        assert outcome.chunks_failed >= 1
        assert outcome.chunks_embedded == outcome.chunks_created - outcome.chunks_failed
        stored = store.get_chunks(doc.id)
        assert sum(1 for c in stored if c.vector is None) == outcome.chunks_failed

    def test_quota_abandons_document_and_keeps_old_chunks(self, backend, client, store, documents, make_document):
        indexer = ChunkIndexer(client, store, documents)
        doc = make_document(text=long_text())
        try:
            indexer.index(doc.id, doc.text)
            before = [(c.sequence_index, c.vector.copy()) for c in store.get_chunks(doc.id)]

            backend.fail = lambda text: QuotaExceeded("out of credits")
            outcome = indexer.index(doc.id, doc.text + "\n\nA new closing paragraph.")
        finally:
            indexer.close()

        assert not outcome.ok
        after = store.get_chunks(doc.id)
        assert [c.sequence_index for c in after] == [i for i, _ in before]
        for chunk, (_, vector) in zip(after, before):
            assert np.array_equal(chunk.vector, vector)

    def test_store_error_is_reported_not_raised(self, client, documents, make_document):
        indexer = ChunkIndexer(client, FailingStore(), documents)
        doc = make_document()
        try:
            outcome = indexer.index(doc.id, doc.text)
        finally:
            indexer.close()

        assert outcome.error == "disk full"

    def test_unknown_document(self, indexer):
        outcome = indexer.index("ghost", "text")
        assert not outcome.ok
        assert "ghost" in outcome.error

    def test_deleted_while_queued(self, indexer, store, documents, make_document):
        doc = make_document()
        documents.delete(doc.id)

        assert not indexer.index(doc.id, doc.text).ok
        assert store.get_chunks(doc.id) == []


class TestReindex:
    def test_reindex_replaces_chunk_set(self, indexer, store, documents, make_document):
        doc = make_document(text=long_text())
        first = indexer.index(doc.id, doc.text)

        doc.text = "Rewritten as a single short paragraph."
        second = indexer.reindex(doc.id)

        assert first.chunks_created > 1
        assert second.chunks_created == 1
        assert [c.text for c in store.get_chunks(doc.id)] == [doc.text]

    def test_reindex_missing_document(self, indexer):
        with pytest.raises(DocumentNotFound):
            indexer.reindex("ghost")

    def test_concurrent_index_of_same_document_serializes(self, indexer, store, make_document):
        doc = make_document(text=long_text(paragraphs=4))
        threads = [threading.Thread(target=indexer.index, args=(doc.id, doc.text)) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        indexes = [c.sequence_index for c in store.get_chunks(doc.id)]
        assert indexes == list(range(len(indexes)))


# ---------------------------------------------------------------------------
# KEYED LOCKS
# ---------------------------------------------------------------------------


class TestKeyedLocks:
    def test_same_key_is_exclusive(self):
        locks = KeyedLocks()
        active = []
        peak = []
        guard = threading.Lock()

        def worker():
            with locks.hold("doc"):
                with guard:
                    active.append(1)
                    peak.append(len(active))
                time.sleep(0.01)
                with guard:
                    active.pop()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert max(peak) == 1
        assert len(locks) == 0

    def test_different_keys_do_not_block(self):
        locks = KeyedLocks()
        with locks.hold("a"):
            acquired = threading.Event()

            def other():
                with locks.hold("b"):
                    acquired.set()

            t = threading.Thread(target=other)
            t.start()
            assert acquired.wait(timeout=1)
            t.join()


# ---------------------------------------------------------------------------
# DISPATCHER
# ---------------------------------------------------------------------------


class TestIndexDispatcher:
    def test_dispatch_returns_future(self, indexer, store, make_document):
        dispatcher = IndexDispatcher(indexer)
        doc = make_document(text=long_text(paragraphs=3))

        future = dispatcher.dispatch(doc.id, doc.text)
        outcome = future.result(timeout=10)
        dispatcher.shutdown()

        assert outcome.ok
        assert store.has_chunks(doc.id)
        assert dispatcher.pending == 0

    def test_failed_outcome_is_logged(self, indexer, caplog):
        dispatcher = IndexDispatcher(indexer)
        with caplog.at_level(logging.WARNING, logger="semantic_retrieval.indexing.dispatcher"):
            dispatcher.dispatch("ghost", "text")
            dispatcher.shutdown()

        assert "Indexing ghost failed" in caplog.text


# ---------------------------------------------------------------------------
# TOPICS
# ---------------------------------------------------------------------------


class TestExtractTopics:
    def test_frequent_words_without_stopwords(self):
        text = "Thyroid thyroid thyroid hormone hormone and the levels"
        assert extract_topics(text, limit=3) == ["thyroid", "hormone", "levels"]

    def test_key_topics_take_precedence_and_dedupe(self):
        tags = extract_topics("thyroid thyroid metabolism", key_topics=["Thyroid", "Diet"])
        assert tags[:2] == ["thyroid", "diet"]
        assert tags.count("thyroid") == 1

    def test_limit(self):
        assert len(extract_topics("alpha beta gamma delta epsilon zeta eta", limit=2)) == 2

    def test_empty(self):
        assert extract_topics("") == []
