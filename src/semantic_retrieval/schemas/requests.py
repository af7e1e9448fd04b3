"""
Request/response contracts for the inbound interfaces.

These Pydantic models are what an HTTP adapter or the CLI validates
against before anything reaches the pipeline. Bounds mirror the client:
a request that passes validation here will not be rejected as too large
by the embedding client.

WHY VALIDATE TWICE:
-------------------
The pipeline validates again internally (EmbeddingClient.validate). The
schema layer exists so bad input is rejected with a field-level message
at the edge, before a service is even constructed.
"""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from semantic_retrieval.embeddings.client import MAX_TEXT_LENGTH


# ---------------------------------------------------------------------------
# EMBEDDINGS
# ---------------------------------------------------------------------------


class EmbeddingRequest(BaseModel):
    """Ad-hoc embedding of one text."""

    text: str = Field(min_length=1, max_length=MAX_TEXT_LENGTH)
    purpose: Literal["summary", "query"] = Field(
        default="summary",
        description="Corpus side ('summary') or search side ('query')",
    )
    normalize: bool = True

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be blank")
        return value


class EmbeddingResponse(BaseModel):
    embedding: list[float]
    dimensions: int
    model: str
    token_count: int


# ---------------------------------------------------------------------------
# BACKFILL
# ---------------------------------------------------------------------------


class BackfillRequest(BaseModel):
    """Parameters for one backfill run."""

    batch_size: int = Field(default=10, ge=1, le=100)
    dry_run: bool = False
    skip_existing: bool = True
    owner_id: str | None = None
    after_created_at: datetime | None = Field(
        default=None,
        description="Resume cursor from a previous response (with after_document_id)",
    )
    after_document_id: str | None = None

    @field_validator("after_created_at")
    @classmethod
    def cursor_time_is_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def cursor_is_complete(self) -> "BackfillRequest":
        if (self.after_created_at is None) != (self.after_document_id is None):
            raise ValueError("after_created_at and after_document_id must be given together")
        return self

    @property
    def after(self) -> tuple[datetime, str] | None:
        if self.after_created_at is None or self.after_document_id is None:
            return None
        return (self.after_created_at, self.after_document_id)


class BackfillFailureItem(BaseModel):
    document_id: str
    error: str


class BackfillResponse(BaseModel):
    processed: int
    failed: int
    skipped: int
    duration_ms: float
    failures: list[BackfillFailureItem] = Field(default_factory=list)
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0
    batches: int = 0
    interrupted: bool = False
    dry_run: bool = False
    last_document_id: str | None = None
    last_created_at: datetime | None = None


# ---------------------------------------------------------------------------
# RECOMMENDATIONS
# ---------------------------------------------------------------------------


class RecommendationRequest(BaseModel):
    """'More like this' for one document."""

    document_id: str = Field(min_length=1)
    owner_id: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=50)
    threshold: float | None = Field(
        default=None,
        ge=-1.0,
        le=1.0,
        description="Minimum cosine similarity; service default when omitted",
    )


class RecommendationItem(BaseModel):
    document_id: str
    similarity: float


class RecommendationResponse(BaseModel):
    document_id: str
    recommendations: list[RecommendationItem]
    count: int
