"""
Semantic Conventions for Span Attributes

Defines attribute keys following OpenTelemetry GenAI conventions
plus custom namespaces for indexing, backfill and search.

Reference: https://opentelemetry.io/docs/specs/semconv/gen-ai/
"""

# ---------------------------------------------------------------------------
# GENAI NAMESPACE (OTel standard)
# ---------------------------------------------------------------------------

GEN_AI_SYSTEM = "gen_ai.system"  # "openai", "mock"
GEN_AI_OPERATION_NAME = "gen_ai.operation.name"  # "embeddings"
GEN_AI_REQUEST_MODEL = "gen_ai.request.model"  # "text-embedding-3-small"
GEN_AI_USAGE_INPUT_TOKENS = "gen_ai.usage.input_tokens"


# ---------------------------------------------------------------------------
# EMBEDDING NAMESPACE (custom)
# ---------------------------------------------------------------------------

EMBEDDING_PURPOSE = "embedding.purpose"  # "summary", "query"
EMBEDDING_INPUT_CHARS = "embedding.input_chars"
EMBEDDING_DIMENSIONS = "embedding.dimensions"
EMBEDDING_NORMALIZED = "embedding.normalized"
EMBEDDING_INPUT_TEXT = "embedding.input_text"  # only with TRACING_CAPTURE_TEXT
EMBEDDING_CACHE_HIT = "embedding.cache_hit"


# ---------------------------------------------------------------------------
# INDEX NAMESPACE (custom)
# ---------------------------------------------------------------------------

INDEX_DOCUMENT_ID = "index.document_id"
INDEX_CONTENT_TYPE = "index.content_type"
INDEX_CHUNKS_CREATED = "index.chunks_created"
INDEX_CHUNKS_FAILED = "index.chunks_failed"


# ---------------------------------------------------------------------------
# BACKFILL NAMESPACE (custom)
# ---------------------------------------------------------------------------

BACKFILL_BATCH_NUMBER = "backfill.batch_number"
BACKFILL_BATCH_SIZE = "backfill.batch_size"
BACKFILL_DRY_RUN = "backfill.dry_run"
BACKFILL_PROCESSED = "backfill.processed"
BACKFILL_FAILED = "backfill.failed"
BACKFILL_SKIPPED = "backfill.skipped"


# ---------------------------------------------------------------------------
# SEARCH NAMESPACE (custom)
# ---------------------------------------------------------------------------

SEARCH_OWNER_ID = "search.owner_id"
SEARCH_SOURCE_DOCUMENT_ID = "search.source_document_id"
SEARCH_THRESHOLD = "search.threshold"
SEARCH_LIMIT = "search.limit"
SEARCH_RESULT_COUNT = "search.result_count"
SEARCH_QUERY_TEXT = "search.query_text"  # only with TRACING_CAPTURE_TEXT


# ---------------------------------------------------------------------------
# ERRORS (OTel standard)
# ---------------------------------------------------------------------------

ERROR_TYPE = "error.type"  # pipeline error code, e.g. "quota_exceeded"


# ---------------------------------------------------------------------------
# HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def embedding_attributes(
    system: str,
    model: str,
    purpose: str,
    input_chars: int,
) -> dict:
    """Create attributes dict for an embedding call span."""
    return {
        GEN_AI_SYSTEM: system,
        GEN_AI_OPERATION_NAME: "embeddings",
        GEN_AI_REQUEST_MODEL: model,
        EMBEDDING_PURPOSE: purpose,
        EMBEDDING_INPUT_CHARS: input_chars,
    }


def backfill_batch_attributes(
    batch_number: int,
    batch_size: int,
    dry_run: bool,
) -> dict:
    """Create attributes dict for a backfill batch span."""
    return {
        BACKFILL_BATCH_NUMBER: batch_number,
        BACKFILL_BATCH_SIZE: batch_size,
        BACKFILL_DRY_RUN: dry_run,
    }


def search_attributes(
    owner_id: str,
    threshold: float,
    limit: int,
    source_document_id: str | None = None,
) -> dict:
    """Create attributes dict for a similarity search span."""
    attrs = {
        SEARCH_OWNER_ID: owner_id,
        SEARCH_THRESHOLD: threshold,
        SEARCH_LIMIT: limit,
    }
    if source_document_id is not None:
        attrs[SEARCH_SOURCE_DOCUMENT_ID] = source_document_id
    return attrs
