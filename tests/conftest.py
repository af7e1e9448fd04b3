"""
Shared pytest fixtures for semantic_retrieval tests.

Provides a scriptable embedding backend and in-memory stores so no test
needs the network or a database.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable

import numpy as np
import pytest

from semantic_retrieval.chunking import estimate_tokens
from semantic_retrieval.core.models import Document, RawEmbedding
from semantic_retrieval.documents import InMemoryDocumentRepository
from semantic_retrieval.embeddings import EmbeddingClient, MockEmbeddings
from semantic_retrieval.observability import reset_config, reset_tracer
from semantic_retrieval.retrieval import InMemoryVectorStore


class StubBackend:
    """
    Embedding backend with scripted behaviour.

    - ``vectors`` pins exact vectors for exact texts
    - ``fail`` returns an exception to raise for a text (or None)
    - everything else gets a deterministic hash-seeded vector
    """

    def __init__(
        self,
        dimensions: int = 8,
        model: str = "stub-embedding",
        vectors: dict[str, list[float]] | None = None,
        fail: Callable[[str], Exception | None] | None = None,
    ):
        self._dimensions = dimensions
        self._model = model
        self.vectors = {k: np.asarray(v, dtype=np.float32) for k, v in (vectors or {}).items()}
        self.fail = fail
        self.calls: list[tuple[str, str]] = []
        self._fallback = MockEmbeddings(dimensions=dimensions, model=model)
        self._lock = threading.Lock()

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed_text(self, text: str, input_type: str = "document") -> RawEmbedding:
        with self._lock:
            self.calls.append((text, input_type))
        if self.fail is not None:
            error = self.fail(text)
            if error is not None:
                raise error
        if text in self.vectors:
            vector = self.vectors[text]
        else:
            vector = self._fallback.embed_text(text).vector
        return RawEmbedding(vector=vector, token_count=estimate_tokens(text), model_id=self._model)


def long_text(paragraphs: int = 12, sentences: int = 10) -> str:
    """Multi-paragraph prose long enough to be split into several chunks."""
    blocks = []
    for p in range(paragraphs):
        blocks.append(
            " ".join(
                f"Paragraph {p} sentence {s} discusses thyroid hormone levels and metabolism."
                for s in range(sentences)
            )
        )
    return "\n\n".join(blocks)


@pytest.fixture(autouse=True)
def _reset_observability():
    """Every test starts with tracing disabled and no cached tracer."""
    reset_config()
    reset_tracer()
    yield
    reset_config()
    reset_tracer()


@pytest.fixture
def backend():
    return StubBackend()


@pytest.fixture
def client(backend):
    return EmbeddingClient(backend)


@pytest.fixture
def store():
    return InMemoryVectorStore()


@pytest.fixture
def documents():
    return InMemoryDocumentRepository()


@pytest.fixture
def make_document(documents):
    """Factory adding documents with strictly increasing created_at."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _make(
        doc_id: str | None = None,
        owner_id: str = "user-1",
        text: str = "A short note about thyroid function.",
        content_type: str = "text",
        title: str = "Note",
        summary_text: str | None = None,
        key_topics: list[str] | None = None,
    ) -> Document:
        counter["n"] += 1
        doc = Document(
            id=doc_id or f"doc-{counter['n']:03d}",
            owner_id=owner_id,
            title=title,
            content_type=content_type,
            text=text,
            created_at=base + timedelta(minutes=counter["n"]),
            summary_text=summary_text,
            key_topics=list(key_topics or []),
        )
        return documents.add(doc)

    return _make
