"""
Document repositories - the pipeline's view of the external document store.

The pipeline only reads document text and writes informational tags; all
other document metadata belongs to the owning application. Two
implementations follow the same pattern as the vector stores:

1. PgDocumentRepository - ``documents`` table in PostgreSQL
2. InMemoryDocumentRepository - dict-backed, for tests and local runs
3. get_document_repository() - factory

Paging is keyset-based on (created_at, id) so a backfill can resume from
the last document it saw without re-reading earlier pages.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Iterable

import psycopg

from semantic_retrieval.core.models import Document


def new_document_id() -> str:
    return str(uuid.uuid4())


def _normalize_tags(tags: Iterable[str]) -> list[str]:
    seen: list[str] = []
    for tag in tags:
        tag = tag.strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


# ---------------------------------------------------------------------------
# IN-MEMORY REPOSITORY (Testing/Development)
# ---------------------------------------------------------------------------


class InMemoryDocumentRepository:
    """Dict-backed document repository."""

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}
        self._lock = threading.Lock()

    def close(self) -> None:
        pass

    def create_schema(self) -> None:
        pass

    def add(self, document: Document) -> Document:
        with self._lock:
            self._documents[document.id] = document
        return document

    def get(self, document_id: str) -> Document | None:
        with self._lock:
            return self._documents.get(document_id)

    def iter_after(
        self,
        cursor: tuple[datetime, str] | None,
        limit: int,
        owner_id: str | None = None,
    ) -> list[Document]:
        with self._lock:
            docs = list(self._documents.values())
        if owner_id is not None:
            docs = [d for d in docs if d.owner_id == owner_id]
        docs.sort(key=lambda d: (d.created_at, d.id))
        if cursor is not None:
            docs = [d for d in docs if (d.created_at, d.id) > cursor]
        return docs[:limit]

    def set_tags(self, document_id: str, tags: Iterable[str]) -> None:
        with self._lock:
            doc = self._documents.get(document_id)
            if doc is not None:
                self._documents[document_id] = replace(doc, tags=_normalize_tags(tags))

    def delete(self, document_id: str) -> bool:
        with self._lock:
            return self._documents.pop(document_id, None) is not None

    def count(self, owner_id: str | None = None) -> int:
        with self._lock:
            if owner_id is None:
                return len(self._documents)
            return sum(1 for d in self._documents.values() if d.owner_id == owner_id)


# ---------------------------------------------------------------------------
# POSTGRES REPOSITORY (Production)
# ---------------------------------------------------------------------------


class PgDocumentRepository:
    """PostgreSQL-backed document repository."""

    _COLUMNS = "id, owner_id, title, content_type, text, created_at, url, summary_text, key_topics, tags"

    def __init__(self, connection_string: str, table_name: str = "documents"):
        self.connection_string = connection_string
        self.table_name = table_name
        self._conn = None
        self._conn_lock = threading.RLock()

    def connect(self) -> None:
        self._conn = psycopg.connect(self.connection_string, autocommit=True)

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def _connection(self):
        if not self._conn:
            self.connect()
        return self._conn

    def create_schema(self) -> None:
        conn = self._connection()
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.table_name} (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                title TEXT NOT NULL,
                content_type TEXT NOT NULL,
                text TEXT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                url TEXT,
                summary_text TEXT,
                key_topics TEXT[] NOT NULL DEFAULT '{{}}',
                tags TEXT[] NOT NULL DEFAULT '{{}}'
            )
        """
        )
        conn.execute(
            f"""
            CREATE INDEX IF NOT EXISTS {self.table_name}_created_idx
            ON {self.table_name} (created_at, id)
        """
        )

    @staticmethod
    def _from_row(row) -> Document:
        return Document(
            id=row[0],
            owner_id=row[1],
            title=row[2],
            content_type=row[3],
            text=row[4],
            created_at=row[5],
            url=row[6],
            summary_text=row[7],
            key_topics=list(row[8] or []),
            tags=list(row[9] or []),
        )

    def add(self, document: Document) -> Document:
        conn = self._connection()
        with self._conn_lock:
            conn.execute(
                f"""
                INSERT INTO {self.table_name} ({self._COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    document.id,
                    document.owner_id,
                    document.title,
                    document.content_type,
                    document.text,
                    document.created_at,
                    document.url,
                    document.summary_text,
                    list(document.key_topics),
                    list(document.tags),
                ),
            )
        return document

    def get(self, document_id: str) -> Document | None:
        conn = self._connection()
        with self._conn_lock:
            row = conn.execute(
                f"SELECT {self._COLUMNS} FROM {self.table_name} WHERE id = %s", (document_id,)
            ).fetchone()
        return self._from_row(row) if row else None

    def iter_after(
        self,
        cursor: tuple[datetime, str] | None,
        limit: int,
        owner_id: str | None = None,
    ) -> list[Document]:
        clauses = []
        params: list = []
        if cursor is not None:
            clauses.append("(created_at, id) > (%s, %s)")
            params.extend(cursor)
        if owner_id is not None:
            clauses.append("owner_id = %s")
            params.append(owner_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)

        conn = self._connection()
        with self._conn_lock:
            rows = conn.execute(
                f"""
                SELECT {self._COLUMNS} FROM {self.table_name}
                {where}
                ORDER BY created_at, id
                LIMIT %s
                """,
                params,
            ).fetchall()
        return [self._from_row(row) for row in rows]

    def set_tags(self, document_id: str, tags: Iterable[str]) -> None:
        conn = self._connection()
        with self._conn_lock:
            conn.execute(
                f"UPDATE {self.table_name} SET tags = %s WHERE id = %s",
                (_normalize_tags(tags), document_id),
            )

    def delete(self, document_id: str) -> bool:
        conn = self._connection()
        with self._conn_lock:
            cur = conn.execute(f"DELETE FROM {self.table_name} WHERE id = %s", (document_id,))
        return bool(cur.rowcount)

    def count(self, owner_id: str | None = None) -> int:
        conn = self._connection()
        with self._conn_lock:
            if owner_id is None:
                row = conn.execute(f"SELECT count(*) FROM {self.table_name}").fetchone()
            else:
                row = conn.execute(
                    f"SELECT count(*) FROM {self.table_name} WHERE owner_id = %s", (owner_id,)
                ).fetchone()
        return int(row[0])


# ---------------------------------------------------------------------------
# FACTORY FUNCTION
# ---------------------------------------------------------------------------


def get_document_repository(
    use_postgres: bool = False,
    connection_string: str = "postgresql://localhost/semantic_retrieval",
) -> PgDocumentRepository | InMemoryDocumentRepository:
    """Factory function to get the appropriate document repository."""
    if use_postgres:
        return PgDocumentRepository(connection_string)
    return InMemoryDocumentRepository()
