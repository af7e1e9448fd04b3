"""
SemanticIndexService - the facade the process entry point owns.

Everything is wired here, once, by explicit injection: settings select the
backend and the stores, and each component receives exactly the
collaborators it uses. There is no module-level client.

    service = build_service()             # from environment
    service.create_document(owner_id, title, "text", body)
    service.recommend(RecommendationRequest(document_id=..., owner_id=...))
    service.close()

The request/response methods speak the Pydantic contracts in
semantic_retrieval.schemas; the CLI and any HTTP adapter sit on top.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable

from semantic_retrieval.backfill import BackfillReconciler, RetryPolicy
from semantic_retrieval.config import Settings, get_settings
from semantic_retrieval.core.models import BackfillStatus, ChunkBackfillResult, IndexOutcome
from semantic_retrieval.core.protocols import DocumentRepository, VectorStore
from semantic_retrieval.documents import CreatedDocument, IngestionService, get_document_repository
from semantic_retrieval.embeddings import EmbeddingClient, QueryEmbeddingCache, get_embedding_backend
from semantic_retrieval.indexing import ChunkIndexer, IndexDispatcher
from semantic_retrieval.retrieval import VectorStoreConfig, get_vector_store
from semantic_retrieval.schemas import (
    BackfillRequest,
    BackfillResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    RecommendationItem,
    RecommendationRequest,
    RecommendationResponse,
)
from semantic_retrieval.search import SimilaritySearchEngine

logger = logging.getLogger(__name__)


class SemanticIndexService:
    """Owns and wires every pipeline component."""

    def __init__(
        self,
        client: EmbeddingClient,
        store: VectorStore,
        documents: DocumentRepository,
        settings: Settings | None = None,
        retry: RetryPolicy | None = None,
    ):
        self.settings = settings or Settings()
        self.client = client
        self.store = store
        self.documents = documents

        self.indexer = ChunkIndexer(
            client, store, documents, concurrency=self.settings.index_concurrency
        )
        self.dispatcher = IndexDispatcher(self.indexer)
        self.ingestion = IngestionService(client, store, documents, self.dispatcher)
        self.reconciler = BackfillReconciler(
            client,
            store,
            documents,
            indexer=self.indexer,
            concurrency=self.settings.backfill_concurrency,
            retry=retry or RetryPolicy(max_retries=self.settings.backfill_max_retries),
        )
        self.engine = SimilaritySearchEngine(
            store, client, default_threshold=self.settings.similarity_threshold
        )

    # documents -------------------------------------------------------------

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
        return self.ingestion.create_document(
            owner_id, title, content_type, text, url=url, summary_text=summary_text, key_topics=key_topics
        )

    def reindex(self, document_id: str) -> IndexOutcome:
        return self.indexer.reindex(document_id)

    def delete_document(self, document_id: str) -> bool:
        return self.ingestion.delete_document(document_id)

    # request/response ------------------------------------------------------

    def embed(self, request: EmbeddingRequest) -> EmbeddingResponse:
        result = self.client.embed(request.text, request.purpose, normalize=request.normalize)
        return EmbeddingResponse(
            embedding=result.vector.tolist(),
            dimensions=result.dimensions,
            model=result.model_id,
            token_count=result.token_count,
        )

    def recommend(self, request: RecommendationRequest) -> RecommendationResponse:
        matches = self.engine.recommend(
            request.document_id,
            request.owner_id,
            k=request.limit,
            threshold=request.threshold,
        )
        items = [RecommendationItem(document_id=m.document_id, similarity=m.similarity) for m in matches]
        return RecommendationResponse(document_id=request.document_id, recommendations=items, count=len(items))

    def backfill(
        self,
        request: BackfillRequest,
        stop_event: threading.Event | None = None,
    ) -> BackfillResponse:
        result = self.reconciler.backfill(
            batch_size=request.batch_size,
            dry_run=request.dry_run,
            skip_existing=request.skip_existing,
            owner_id=request.owner_id,
            stop_event=stop_event,
            after=request.after,
        )
        return BackfillResponse.model_validate(result.to_dict())

    def backfill_chunks(
        self,
        batch_size: int = 10,
        dry_run: bool = False,
        owner_id: str | None = None,
        stop_event: threading.Event | None = None,
    ) -> ChunkBackfillResult:
        return self.reconciler.backfill_chunks(
            batch_size=batch_size, dry_run=dry_run, owner_id=owner_id, stop_event=stop_event
        )

    def status(self, owner_id: str | None = None) -> BackfillStatus:
        return self.reconciler.status(owner_id)

    # lifecycle -------------------------------------------------------------

    def create_schema(self) -> None:
        self.store.create_schema()
        self.documents.create_schema()

    def close(self) -> None:
        """Drain background indexing, then release pools and connections."""
        self.dispatcher.shutdown(wait=True)
        self.indexer.close()
        self.reconciler.close()
        self.store.close()
        self.documents.close()


def build_service(settings: Settings | None = None) -> SemanticIndexService:
    """Construct a fully wired service from settings (default: environment)."""
    settings = settings or get_settings()

    backend = get_embedding_backend(
        use_mock=settings.use_mock_embeddings,
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
        api_key=settings.openai_api_key,
    )
    cache = QueryEmbeddingCache(settings.query_cache_ttl_seconds) if settings.query_cache_ttl_seconds > 0 else None
    client = EmbeddingClient(backend, max_input_chars=settings.max_input_chars, query_cache=cache)

    store = get_vector_store(
        use_postgres=settings.use_postgres,
        config=VectorStoreConfig(
            connection_string=settings.database_url,
            embedding_dim=settings.embedding_dimensions,
        ),
    )
    documents = get_document_repository(settings.use_postgres, settings.database_url)

    logger.info(
        f"Service ready: backend={type(backend).__name__} model={backend.model_id} "
        f"store={type(store).__name__}"
    )
    return SemanticIndexService(client, store, documents, settings=settings)
