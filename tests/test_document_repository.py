"""
Unit Tests for the document repositories

Keyset paging is what lets a backfill resume, so most tests here are
about iter_after().
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from semantic_retrieval.core.models import Document
from semantic_retrieval.core.protocols import DocumentRepository, iter_all_documents
from semantic_retrieval.documents import (
    InMemoryDocumentRepository,
    PgDocumentRepository,
    get_document_repository,
    new_document_id,
)


class TestInMemoryRepository:
    """Dict-backed repository."""

    def test_implements_protocol(self, documents):
        assert isinstance(documents, DocumentRepository)

    def test_add_and_get(self, documents, make_document):
        doc = make_document("d1")
        assert documents.get("d1") is doc
        assert documents.get("missing") is None

    def test_iter_after_is_ordered_by_created_at(self, documents, make_document):
        ids = [make_document().id for _ in range(5)]
        assert [d.id for d in documents.iter_after(None, 10)] == ids

    def test_iter_after_cursor_is_exclusive(self, documents, make_document):
        docs = [make_document() for _ in range(5)]
        cursor = (docs[1].created_at, docs[1].id)

        page = documents.iter_after(cursor, 2)

        assert [d.id for d in page] == [docs[2].id, docs[3].id]

    def test_same_timestamp_breaks_on_id(self, documents):
        ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
        for doc_id in ("b", "a", "c"):
            documents.add(Document(id=doc_id, owner_id="u", title="t", content_type="text", text="x", created_at=ts))

        first = documents.iter_after(None, 1)
        rest = documents.iter_after((ts, first[0].id), 10)

        assert [d.id for d in first + rest] == ["a", "b", "c"]

    def test_owner_filter(self, documents, make_document):
        make_document(owner_id="user-1")
        theirs = make_document(owner_id="user-2")

        assert [d.id for d in documents.iter_after(None, 10, owner_id="user-2")] == [theirs.id]

    def test_iter_all_documents_pages_through_everything(self, documents, make_document):
        ids = [make_document().id for _ in range(7)]
        pages = list(iter_all_documents(documents, page_size=3))

        assert [len(p) for p in pages] == [3, 3, 1]
        assert [d.id for page in pages for d in page] == ids

    def test_set_tags_normalizes(self, documents, make_document):
        make_document("d1")
        documents.set_tags("d1", ["Thyroid", " thyroid ", "", "TSH"])
        assert documents.get("d1").tags == ["thyroid", "tsh"]

    def test_set_tags_on_missing_document_is_ignored(self, documents):
        documents.set_tags("missing", ["a"])
        assert documents.get("missing") is None

    def test_delete_and_count(self, documents, make_document):
        make_document("d1")
        make_document("d2", owner_id="user-2")

        assert documents.count() == 2
        assert documents.count("user-2") == 1
        assert documents.delete("d1") is True
        assert documents.delete("d1") is False
        assert documents.count() == 1


class TestPgDocumentRepository:
    """SQL shape with a mocked connection."""

    @pytest.fixture
    def conn(self):
        return MagicMock()

    @pytest.fixture
    def repo(self, conn):
        repo = PgDocumentRepository("postgresql://test/db")
        repo._conn = conn
        return repo

    def test_iter_after_uses_row_comparison(self, repo, conn):
        ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
        conn.execute.return_value.fetchall.return_value = [
            ("d2", "user-1", "t", "text", "body", ts, None, None, None, ["a"]),
        ]

        docs = repo.iter_after((ts, "d1"), 5, owner_id="user-1")

        sql, params = conn.execute.call_args.args
        assert "(created_at, id) > (%s, %s)" in sql
        assert "ORDER BY created_at, id" in sql
        assert params == [ts, "d1", "user-1", 5]
        assert docs[0].key_topics == []
        assert docs[0].tags == ["a"]

    def test_first_page_has_no_where(self, repo, conn):
        conn.execute.return_value.fetchall.return_value = []
        repo.iter_after(None, 10)

        sql, params = conn.execute.call_args.args
        assert "WHERE" not in sql
        assert params == [10]

    def test_set_tags_binds_normalized_list(self, repo, conn):
        repo.set_tags("d1", ["A", "a", "B"])
        assert conn.execute.call_args.args[1] == (["a", "b"], "d1")

    def test_delete_reports_rowcount(self, repo, conn):
        conn.execute.return_value.rowcount = 0
        assert repo.delete("d1") is False

    def test_get_missing(self, repo, conn):
        conn.execute.return_value.fetchone.return_value = None
        assert repo.get("d1") is None


class TestFactory:
    def test_default_is_memory(self):
        assert isinstance(get_document_repository(), InMemoryDocumentRepository)

    def test_postgres(self):
        repo = get_document_repository(use_postgres=True, connection_string="postgresql://x/y")
        assert isinstance(repo, PgDocumentRepository)
        assert repo.connection_string == "postgresql://x/y"

    def test_new_document_ids_are_unique(self):
        assert new_document_id() != new_document_id()
