"""
Retrieval module - persistence and nearest-neighbour lookup for vectors.

This module provides:
- VectorStoreConfig: Configuration for stores
- PgVectorStore: PostgreSQL production store
- InMemoryVectorStore: Testing/development store
- get_vector_store(): Factory function

ARCHITECTURE:
-------------
1. Protocol defines the contract (VectorStore in core.protocols)
2. Multiple implementations (PgVectorStore, InMemoryVectorStore)
3. Factory function for instantiation
"""

from semantic_retrieval.retrieval.store import (
    VectorStoreConfig,
    PgVectorStore,
    InMemoryVectorStore,
    get_vector_store,
)

__all__ = [
    "VectorStoreConfig",
    "PgVectorStore",
    "InMemoryVectorStore",
    "get_vector_store",
]
