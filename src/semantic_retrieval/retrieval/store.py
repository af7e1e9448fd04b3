"""
Vector store implementations.

Pattern: Protocol -> Production impl -> Test double -> Factory

This module contains:
1. VectorStoreConfig - Configuration dataclass
2. PgVectorStore - PostgreSQL with pgvector (production)
3. InMemoryVectorStore - In-memory store (testing/development)
4. get_vector_store() - Factory function

Both stores persist two row kinds keyed by document id: chunk rows
(passage retrieval) and one summary-embedding row per document
(recommendations). Both answer "top-K by cosine among rows owned by X".

CONSISTENCY:
------------
- replace_chunks() is delete-then-insert in one unit of work, serialized
  per document id (advisory lock in Postgres, keyed lock in memory)
- upsert_summary_embedding() overwrites; a reader sees the old vector or
  the new one, never both
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

import numpy as np
import psycopg
from pgvector.psycopg import register_vector

from semantic_retrieval.core.locks import KeyedLocks
from semantic_retrieval.core.models import Chunk, PassageMatch, SimilarityMatch, SummaryEmbedding
from semantic_retrieval.core.vectors import cosine_scores

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CONFIGURATION
# ---------------------------------------------------------------------------


@dataclass
class VectorStoreConfig:
    """Configuration for the vector store."""

    connection_string: str = "postgresql://localhost/semantic_retrieval"
    embedding_dim: int = 1536
    chunk_table: str = "document_chunks"
    summary_table: str = "summary_embeddings"
    index_type: str = "hnsw"  # or "ivfflat"
    # pgvector >= 0.8: keep scanning the ANN index until filtered queries fill LIMIT
    iterative_scan: bool = True
    hnsw_ef_search: int = 40


def _check_uniform_dimensions(chunks: Sequence[Chunk]) -> None:
    dims = {int(c.vector.shape[0]) for c in chunks if c.vector is not None}
    if len(dims) > 1:
        raise ValueError(f"Mixed vector dimensions in one chunk set: {sorted(dims)}")


def _rank_key(score: float, created_at: datetime | None, document_id: str) -> tuple:
    ts = created_at.timestamp() if created_at is not None else 0.0
    return (-score, -ts, document_id)


# ---------------------------------------------------------------------------
# PGVECTOR STORE (Production)
# ---------------------------------------------------------------------------


class PgVectorStore:
    """
    PostgreSQL vector store using pgvector.

    WHY PGVECTOR:
    - POSTGRES: ACID transactions make "replace all chunks" atomic
    - HYBRID SEARCH: Vector similarity plus an owner_id filter in one query
    - HNSW INDEX: Fast approximate nearest neighbor search
    - NO VENDOR LOCK: Open source, runs anywhere
    """

    def __init__(self, config: VectorStoreConfig):
        self.config = config
        self._conn = None
        # One connection is shared across worker threads; transactions on
        # it must not interleave.
        self._conn_lock = threading.RLock()

    def connect(self) -> None:
        """Establish database connection."""
        self._conn = psycopg.connect(self.config.connection_string, autocommit=True)
        self._conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
        register_vector(self._conn)

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _connection(self):
        if not self._conn:
            self.connect()
        return self._conn

    def _widen_scan(self, conn, limit: int) -> None:
        """
        Session settings for one filtered ANN query (call inside a transaction).

        The owner and threshold predicates are applied to the index scan's
        output. Without iterative scans HNSW hands back at most ef_search
        candidates, so an owner with few rows among many neighbours from
        other owners would get a short or empty result.
        """
        if not self.config.iterative_scan:
            return
        if self.config.index_type == "ivfflat":
            conn.execute("SELECT set_config('ivfflat.iterative_scan', 'relaxed_order', true)")
            return
        ef_search = max(self.config.hnsw_ef_search, limit)
        conn.execute("SELECT set_config('hnsw.ef_search', %s, true)", (str(ef_search),))
        conn.execute("SELECT set_config('hnsw.iterative_scan', 'strict_order', true)")

    def create_schema(self) -> None:
        """Create the chunk and summary tables and their indexes."""
        conn = self._connection()
        chunks = self.config.chunk_table
        summaries = self.config.summary_table
        dim = self.config.embedding_dim

        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {summaries} (
                document_id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                embedding vector({dim}) NOT NULL,
                model_id TEXT NOT NULL,
                token_count INTEGER NOT NULL DEFAULT 0,
                document_created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
        """
        )
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {chunks} (
                document_id TEXT NOT NULL,
                sequence_index INTEGER NOT NULL,
                owner_id TEXT NOT NULL,
                content TEXT NOT NULL,
                char_start INTEGER NOT NULL,
                char_end INTEGER NOT NULL,
                embedding vector({dim}),
                model_id TEXT,
                token_count INTEGER NOT NULL DEFAULT 0,
                boundary TEXT,
                page_number INTEGER,
                PRIMARY KEY (document_id, sequence_index)
            )
        """
        )

        # Owner filter runs before the vector ordering
        conn.execute(f"CREATE INDEX IF NOT EXISTS {summaries}_owner_idx ON {summaries} (owner_id)")
        conn.execute(f"CREATE INDEX IF NOT EXISTS {chunks}_owner_idx ON {chunks} (owner_id)")

        if self.config.index_type == "ivfflat":
            index_clause = "USING ivfflat (embedding vector_cosine_ops) WITH (lists = 100)"
        else:
            index_clause = "USING hnsw (embedding vector_cosine_ops) WITH (m = 16, ef_construction = 64)"
        for table in (summaries, chunks):
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS {table}_embedding_idx ON {table} {index_clause}"
            )

    # -------------------------------------------------------------------------
    # Chunks
    # -------------------------------------------------------------------------

    def replace_chunks(self, document_id: str, owner_id: str, chunks: Sequence[Chunk]) -> None:
        """Delete the document's chunk set and insert the new one in one transaction."""
        _check_uniform_dimensions(chunks)
        conn = self._connection()
        table = self.config.chunk_table
        rows = [
            (
                document_id,
                c.sequence_index,
                owner_id,
                c.text,
                c.char_start,
                c.char_end,
                c.vector,
                c.model_id,
                c.token_count,
                c.boundary,
                c.page_number,
            )
            for c in chunks
        ]

        with self._conn_lock, conn.transaction():
            conn.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (document_id,))
            conn.execute(f"DELETE FROM {table} WHERE document_id = %s", (document_id,))
            if rows:
                with conn.cursor() as cur:
                    cur.executemany(
                        f"""
                        INSERT INTO {table} (
                            document_id, sequence_index, owner_id, content, char_start,
                            char_end, embedding, model_id, token_count, boundary, page_number
                        ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        """,
                        rows,
                    )

    def get_chunks(self, document_id: str) -> list[Chunk]:
        conn = self._connection()
        with self._conn_lock:
            rows = conn.execute(
                f"""
                SELECT document_id, sequence_index, content, char_start, char_end,
                       embedding, model_id, token_count, boundary, page_number
                FROM {self.config.chunk_table}
                WHERE document_id = %s
                ORDER BY sequence_index
                """,
                (document_id,),
            ).fetchall()
        return [
            Chunk(
                document_id=row[0],
                sequence_index=row[1],
                text=row[2],
                char_start=row[3],
                char_end=row[4],
                vector=None if row[5] is None else np.asarray(row[5], dtype=np.float32),
                model_id=row[6],
                token_count=row[7] or 0,
                boundary=row[8] or "paragraph",
                page_number=row[9],
            )
            for row in rows
        ]

    def delete_chunks(self, document_id: str) -> int:
        conn = self._connection()
        with self._conn_lock:
            cur = conn.execute(
                f"DELETE FROM {self.config.chunk_table} WHERE document_id = %s", (document_id,)
            )
        return cur.rowcount or 0

    def has_chunks(self, document_id: str) -> bool:
        conn = self._connection()
        with self._conn_lock:
            row = conn.execute(
                f"SELECT EXISTS (SELECT 1 FROM {self.config.chunk_table} WHERE document_id = %s)",
                (document_id,),
            ).fetchone()
        return bool(row[0])

    def search_chunks(
        self,
        vector: np.ndarray,
        owner_id: str,
        threshold: float,
        limit: int,
    ) -> list[PassageMatch]:
        conn = self._connection()
        with self._conn_lock, conn.transaction():
            self._widen_scan(conn, limit)
            rows = conn.execute(
                f"""
                SELECT document_id, sequence_index, content, char_start, char_end,
                       page_number, 1 - (embedding <=> %s) AS similarity
                FROM {self.config.chunk_table}
                WHERE owner_id = %s
                  AND embedding IS NOT NULL
                  AND 1 - (embedding <=> %s) >= %s
                ORDER BY embedding <=> %s, document_id, sequence_index
                LIMIT %s
                """,
                (vector, owner_id, vector, threshold, vector, limit),
            ).fetchall()
        passages = [
            PassageMatch(
                document_id=row[0],
                sequence_index=row[1],
                text=row[2],
                char_start=row[3],
                char_end=row[4],
                page_number=row[5],
                similarity=float(row[6]),
            )
            for row in rows
        ]
        return sorted(passages, key=lambda p: (-p.similarity, p.document_id, p.sequence_index))

    # -------------------------------------------------------------------------
    # Summary embeddings
    # -------------------------------------------------------------------------

    _UPSERT_SUMMARY = """
        INSERT INTO {table} (
            document_id, owner_id, embedding, model_id, token_count, document_created_at
        ) VALUES (%s, %s, %s, %s, %s, %s)
        ON CONFLICT (document_id) DO UPDATE SET
            owner_id = EXCLUDED.owner_id,
            embedding = EXCLUDED.embedding,
            model_id = EXCLUDED.model_id,
            token_count = EXCLUDED.token_count,
            document_created_at = EXCLUDED.document_created_at,
            updated_at = now()
    """

    @staticmethod
    def _summary_row(e: SummaryEmbedding) -> tuple:
        return (e.document_id, e.owner_id, e.vector, e.model_id, e.token_count, e.document_created_at)

    def upsert_summary_embedding(self, embedding: SummaryEmbedding) -> None:
        conn = self._connection()
        with self._conn_lock:
            conn.execute(
                self._UPSERT_SUMMARY.format(table=self.config.summary_table),
                self._summary_row(embedding),
            )

    def upsert_summary_embeddings(self, embeddings: Sequence[SummaryEmbedding]) -> None:
        """Persist a batch of summary vectors in one transaction."""
        if not embeddings:
            return
        conn = self._connection()
        with self._conn_lock, conn.transaction():
            with conn.cursor() as cur:
                cur.executemany(
                    self._UPSERT_SUMMARY.format(table=self.config.summary_table),
                    [self._summary_row(e) for e in embeddings],
                )

    def get_summary_embedding(self, document_id: str) -> SummaryEmbedding | None:
        conn = self._connection()
        with self._conn_lock:
            row = conn.execute(
                f"""
                SELECT document_id, owner_id, embedding, model_id, token_count, document_created_at
                FROM {self.config.summary_table}
                WHERE document_id = %s
                """,
                (document_id,),
            ).fetchone()
        if row is None:
            return None
        return SummaryEmbedding(
            document_id=row[0],
            owner_id=row[1],
            vector=np.asarray(row[2], dtype=np.float32),
            model_id=row[3],
            token_count=row[4] or 0,
            document_created_at=row[5],
        )

    def has_summary_embedding(self, document_id: str) -> bool:
        conn = self._connection()
        with self._conn_lock:
            row = conn.execute(
                f"SELECT EXISTS (SELECT 1 FROM {self.config.summary_table} WHERE document_id = %s)",
                (document_id,),
            ).fetchone()
        return bool(row[0])

    def count_summaries(self, owner_id: str | None = None) -> int:
        conn = self._connection()
        table = self.config.summary_table
        with self._conn_lock:
            if owner_id is None:
                row = conn.execute(f"SELECT count(*) FROM {table}").fetchone()
            else:
                row = conn.execute(
                    f"SELECT count(*) FROM {table} WHERE owner_id = %s", (owner_id,)
                ).fetchone()
        return int(row[0])

    def search_summaries(
        self,
        vector: np.ndarray,
        owner_id: str,
        threshold: float,
        limit: int,
    ) -> list[SimilarityMatch]:
        """Owner-scoped nearest neighbours above the threshold, best first."""
        conn = self._connection()
        with self._conn_lock, conn.transaction():
            self._widen_scan(conn, limit)
            rows = conn.execute(
                f"""
                SELECT document_id, 1 - (embedding <=> %s) AS similarity, document_created_at
                FROM {self.config.summary_table}
                WHERE owner_id = %s
                  AND 1 - (embedding <=> %s) >= %s
                ORDER BY embedding <=> %s, document_created_at DESC, document_id
                LIMIT %s
                """,
                (vector, owner_id, vector, threshold, vector, limit),
            ).fetchall()
        matches = [
            SimilarityMatch(document_id=row[0], similarity=float(row[1]), created_at=row[2])
            for row in rows
        ]
        # ivfflat iterative scans return rows in relaxed order
        return sorted(matches, key=lambda m: _rank_key(m.similarity, m.created_at, m.document_id))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def delete_document(self, document_id: str) -> None:
        conn = self._connection()
        with self._conn_lock, conn.transaction():
            conn.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (document_id,))
            conn.execute(
                f"DELETE FROM {self.config.chunk_table} WHERE document_id = %s", (document_id,)
            )
            conn.execute(
                f"DELETE FROM {self.config.summary_table} WHERE document_id = %s", (document_id,)
            )


# ---------------------------------------------------------------------------
# IN-MEMORY STORE (Testing/Development)
# ---------------------------------------------------------------------------


class InMemoryVectorStore:
    """
    In-memory vector store for development/testing.

    Implements the same interface as PgVectorStore but doesn't require
    Postgres. Exact cosine scan with numpy; thread-safe.
    """

    def __init__(self) -> None:
        self._chunks: dict[str, list[Chunk]] = {}
        self._chunk_owners: dict[str, str] = {}
        self._summaries: dict[str, SummaryEmbedding] = {}
        self._lock = threading.RLock()
        self._document_locks = KeyedLocks()

    def connect(self) -> None:
        """No-op for in-memory store."""
        pass

    def close(self) -> None:
        """No-op for in-memory store."""
        pass

    def create_schema(self) -> None:
        """No-op for in-memory store."""
        pass

    # chunks ---------------------------------------------------------------

    def replace_chunks(self, document_id: str, owner_id: str, chunks: Sequence[Chunk]) -> None:
        _check_uniform_dimensions(chunks)
        new_set = sorted(chunks, key=lambda c: c.sequence_index)
        with self._document_locks.hold(document_id), self._lock:
            if new_set:
                self._chunks[document_id] = new_set
                self._chunk_owners[document_id] = owner_id
            else:
                self._chunks.pop(document_id, None)
                self._chunk_owners.pop(document_id, None)

    def get_chunks(self, document_id: str) -> list[Chunk]:
        with self._lock:
            return list(self._chunks.get(document_id, []))

    def delete_chunks(self, document_id: str) -> int:
        with self._document_locks.hold(document_id), self._lock:
            self._chunk_owners.pop(document_id, None)
            return len(self._chunks.pop(document_id, []))

    def has_chunks(self, document_id: str) -> bool:
        with self._lock:
            return bool(self._chunks.get(document_id))

    def search_chunks(
        self,
        vector: np.ndarray,
        owner_id: str,
        threshold: float,
        limit: int,
    ) -> list[PassageMatch]:
        with self._lock:
            candidates = [
                chunk
                for doc_id, chunks in self._chunks.items()
                if self._chunk_owners.get(doc_id) == owner_id
                for chunk in chunks
                if chunk.vector is not None
            ]
        if not candidates or limit <= 0:
            return []

        scores = cosine_scores(np.stack([c.vector for c in candidates]), np.asarray(vector))
        matches = [
            PassageMatch(
                document_id=c.document_id,
                sequence_index=c.sequence_index,
                text=c.text,
                similarity=float(score),
                char_start=c.char_start,
                char_end=c.char_end,
                page_number=c.page_number,
            )
            for c, score in zip(candidates, scores)
            if score >= threshold
        ]
        matches.sort(key=lambda m: (-m.similarity, m.document_id, m.sequence_index))
        return matches[:limit]

    # summary embeddings ----------------------------------------------------

    def upsert_summary_embedding(self, embedding: SummaryEmbedding) -> None:
        with self._lock:
            self._summaries[embedding.document_id] = embedding

    def upsert_summary_embeddings(self, embeddings: Sequence[SummaryEmbedding]) -> None:
        with self._lock:
            for embedding in embeddings:
                self._summaries[embedding.document_id] = embedding

    def get_summary_embedding(self, document_id: str) -> SummaryEmbedding | None:
        with self._lock:
            return self._summaries.get(document_id)

    def has_summary_embedding(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._summaries

    def count_summaries(self, owner_id: str | None = None) -> int:
        with self._lock:
            if owner_id is None:
                return len(self._summaries)
            return sum(1 for e in self._summaries.values() if e.owner_id == owner_id)

    def search_summaries(
        self,
        vector: np.ndarray,
        owner_id: str,
        threshold: float,
        limit: int,
    ) -> list[SimilarityMatch]:
        """Search using cosine similarity."""
        with self._lock:
            candidates = [e for e in self._summaries.values() if e.owner_id == owner_id]
        if not candidates or limit <= 0:
            return []

        scores = cosine_scores(np.stack([e.vector for e in candidates]), np.asarray(vector))
        scored = [
            SimilarityMatch(
                document_id=e.document_id,
                similarity=float(score),
                created_at=e.document_created_at,
            )
            for e, score in zip(candidates, scores)
            if score >= threshold
        ]
        scored.sort(key=lambda m: _rank_key(m.similarity, m.created_at, m.document_id))
        return scored[:limit]

    # lifecycle -------------------------------------------------------------

    def delete_document(self, document_id: str) -> None:
        with self._document_locks.hold(document_id), self._lock:
            self._chunks.pop(document_id, None)
            self._chunk_owners.pop(document_id, None)
            self._summaries.pop(document_id, None)


# ---------------------------------------------------------------------------
# FACTORY FUNCTION
# ---------------------------------------------------------------------------


def get_vector_store(
    use_postgres: bool = False,
    config: VectorStoreConfig | None = None,
) -> PgVectorStore | InMemoryVectorStore:
    """
    Factory function to get the appropriate vector store.

    Args:
        use_postgres: Use PostgreSQL store (default: False for dev)
        config: Store configuration (uses defaults if not provided)

    Returns:
        VectorStore implementation
    """
    if use_postgres:
        return PgVectorStore(config or VectorStoreConfig())
    return InMemoryVectorStore()
