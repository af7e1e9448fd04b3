"""
Unit Tests for IngestionService

Document creation embeds the summary synchronously and leaves chunking to
the dispatcher; a failed summary embedding must not fail creation.
"""

import pytest

from semantic_retrieval.core.errors import InvalidInput, UpstreamUnavailable
from semantic_retrieval.core.models import Document
from semantic_retrieval.documents import IngestionService, build_summary_input
from semantic_retrieval.embeddings import EmbeddingClient
from semantic_retrieval.indexing import ChunkIndexer, IndexDispatcher

from conftest import StubBackend, long_text


def _build(client, store, documents):
    indexer = ChunkIndexer(client, store, documents)
    dispatcher = IndexDispatcher(indexer)
    return IngestionService(client, store, documents, dispatcher), indexer, dispatcher


@pytest.fixture
def ingestion(client, store, documents):
    service, indexer, dispatcher = _build(client, store, documents)
    yield service
    dispatcher.shutdown()
    indexer.close()


def _doc(**overrides):
    fields = dict(id="d", owner_id="u", title="Thyroid basics", content_type="text", text="Body text here.")
    fields.update(overrides)
    return Document(**fields)


# ---------------------------------------------------------------------------
# SUMMARY INPUT
# ---------------------------------------------------------------------------


class TestBuildSummaryInput:
    def test_summary_and_key_topics(self):
        doc = _doc(summary_text="TSH explained.", key_topics=["thyroid", "tsh"])
        assert build_summary_input(doc) == "TSH explained. thyroid tsh"

    def test_falls_back_to_title_and_text(self):
        assert build_summary_input(_doc()) == "Thyroid basics Body text here."

    def test_blank_summary_falls_back(self):
        assert build_summary_input(_doc(summary_text="   ")).startswith("Thyroid basics")

    def test_cut_at_word_boundary(self):
        doc = _doc(text="alpha beta gamma delta")
        result = build_summary_input(doc, limit=30)

        assert len(result) <= 30
        assert result == "Thyroid basics alpha beta"


# ---------------------------------------------------------------------------
# CREATE / DELETE
# ---------------------------------------------------------------------------


class TestCreateDocument:
    def test_summary_embedded_and_indexing_dispatched(self, ingestion, store, documents):
        created = ingestion.create_document("user-1", "Labs", "text", long_text(paragraphs=3))

        assert created.summary_embedded
        assert created.summary_error is None
        assert documents.get(created.document_id).owner_id == "user-1"

        summary = store.get_summary_embedding(created.document_id)
        assert summary.owner_id == "user-1"
        assert summary.document_created_at == documents.get(created.document_id).created_at

        outcome = created.index_future.result(timeout=10)
        assert outcome.ok
        assert store.has_chunks(created.document_id)

    def test_untitled_default(self, ingestion, documents):
        created = ingestion.create_document("user-1", "", "text", "Some text.")
        assert documents.get(created.document_id).title == "Untitled"

    @pytest.mark.parametrize("text", ["", "   "])
    def test_empty_text_rejected_before_storing(self, ingestion, store, documents, text):
        with pytest.raises(InvalidInput):
            ingestion.create_document("user-1", "Empty", "text", text)

        assert documents.count() == 0
        assert store.count_summaries() == 0

    def test_missing_owner_rejected(self, ingestion, documents):
        with pytest.raises(InvalidInput):
            ingestion.create_document("", "No owner", "text", "Text.")
        assert documents.count() == 0

    def test_summary_failure_keeps_document(self, store, documents):
        backend = StubBackend(fail=lambda text: UpstreamUnavailable("down") if text.startswith("Labs") else None)
        service, indexer, dispatcher = _build(EmbeddingClient(backend), store, documents)
        try:
            created = service.create_document("user-1", "Labs", "text", "TSH was normal.")
            created.index_future.result(timeout=10)
        finally:
            dispatcher.shutdown()
            indexer.close()

        assert created.summary_embedded is False
        assert created.summary_error == "upstream_unavailable"
        assert documents.get(created.document_id) is not None
        assert not store.has_summary_embedding(created.document_id)
        assert store.has_chunks(created.document_id)

    def test_dispatch_after_shutdown_keeps_document(self, client, store, documents):
        service, indexer, dispatcher = _build(client, store, documents)
        dispatcher.shutdown()
        try:
            created = service.create_document("user-1", "Labs", "text", "TSH was normal.")
        finally:
            indexer.close()

        assert created.index_future is None
        assert "shutdown" in created.index_error
        assert created.summary_embedded
        assert documents.get(created.document_id) is not None
        assert store.has_summary_embedding(created.document_id)


class TestDeleteDocument:
    def test_delete_removes_vectors(self, ingestion, store, documents):
        created = ingestion.create_document("user-1", "Labs", "text", "TSH was normal.")
        created.index_future.result(timeout=10)

        assert ingestion.delete_document(created.document_id) is True

        assert documents.get(created.document_id) is None
        assert not store.has_summary_embedding(created.document_id)
        assert not store.has_chunks(created.document_id)

    def test_delete_unknown(self, ingestion):
        assert ingestion.delete_document("ghost") is False
