"""
Search module - recommendations and ad-hoc semantic search.
"""

from semantic_retrieval.search.engine import (
    DEFAULT_LIMIT,
    DEFAULT_THRESHOLD,
    SimilaritySearchEngine,
)

__all__ = [
    "DEFAULT_LIMIT",
    "DEFAULT_THRESHOLD",
    "SimilaritySearchEngine",
]
