"""
Documents module - access to the external document store.

This module provides:
- InMemoryDocumentRepository: testing/development
- PgDocumentRepository: PostgreSQL production repository
- get_document_repository(): factory
- IngestionService: create a document, embed its summary, dispatch indexing
"""

from semantic_retrieval.documents.repository import (
    InMemoryDocumentRepository,
    PgDocumentRepository,
    get_document_repository,
    new_document_id,
)
from semantic_retrieval.documents.ingestion import (
    CreatedDocument,
    IngestionService,
    build_summary_input,
)

__all__ = [
    "InMemoryDocumentRepository",
    "PgDocumentRepository",
    "get_document_repository",
    "new_document_id",
    "CreatedDocument",
    "IngestionService",
    "build_summary_input",
]
