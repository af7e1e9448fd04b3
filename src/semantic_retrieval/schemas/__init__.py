"""
Schemas module - Pydantic contracts for the inbound interfaces.
"""

from semantic_retrieval.schemas.requests import (
    EmbeddingRequest,
    EmbeddingResponse,
    BackfillRequest,
    BackfillFailureItem,
    BackfillResponse,
    RecommendationRequest,
    RecommendationItem,
    RecommendationResponse,
)

__all__ = [
    "EmbeddingRequest",
    "EmbeddingResponse",
    "BackfillRequest",
    "BackfillFailureItem",
    "BackfillResponse",
    "RecommendationRequest",
    "RecommendationItem",
    "RecommendationResponse",
]
