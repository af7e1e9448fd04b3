"""
Observability Module - OpenTelemetry Integration

Traces embedding calls, index runs, backfill batches and recommendation
queries. Spans go to an OTLP/HTTP collector when one is configured,
otherwise to stdout.

USAGE:
------
# At application startup:
from semantic_retrieval.observability import init_tracing

init_tracing()  # No-op unless TRACING_ENABLED=true

# In code that needs tracing:
from semantic_retrieval.observability import get_tracer

tracer = get_tracer()
with tracer.start_span("my_operation", attributes={"key": "value"}) as span:
    # ... do work ...
    span.set_attribute("result", "success")
"""

from __future__ import annotations

import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from semantic_retrieval.observability.config import (
    TracingConfig,
    get_config,
    reset_config,
)
from semantic_retrieval.observability.tracer import (
    TracerProtocol,
    SpanProtocol,
    NoOpTracer,
    NoOpSpan,
    get_tracer,
    reset_tracer,
)
from semantic_retrieval.observability.attributes import (
    embedding_attributes,
    backfill_batch_attributes,
    search_attributes,
)

logger = logging.getLogger(__name__)

_tracing_initialized = False


def init_tracing(config: TracingConfig | None = None) -> bool:
    """
    Initialize OpenTelemetry tracing.

    This should be called once at application startup.

    Args:
        config: Optional config (uses env vars if not provided)

    Returns:
        True if tracing was initialized, False if disabled or failed
    """
    global _tracing_initialized
    if _tracing_initialized:
        return True

    config = config or get_config()

    if not config.enabled:
        logger.debug("Tracing disabled")
        return False

    try:
        if config.collector_endpoint:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

            exporter = OTLPSpanExporter(endpoint=config.collector_endpoint)
            logger.info(f"Tracing exporting to: {config.collector_endpoint}")
        else:
            exporter = ConsoleSpanExporter()
            logger.info("Tracing exporting to stdout")

        provider = TracerProvider(resource=Resource.create({"service.name": config.service_name}))
        provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(provider)

        reset_tracer()
        _tracing_initialized = True
        return True

    except Exception as e:
        logger.error(f"Failed to initialize tracing: {e}")
        return False


def shutdown_tracing() -> None:
    """Flush pending spans and reset tracing state."""
    global _tracing_initialized

    if not _tracing_initialized:
        return

    try:
        provider = trace.get_tracer_provider()
        if hasattr(provider, "shutdown"):
            provider.shutdown()
    except Exception as e:
        logger.warning(f"Error shutting down tracing: {e}")

    reset_tracer()
    reset_config()
    _tracing_initialized = False


__all__ = [
    # Initialization
    "init_tracing",
    "shutdown_tracing",
    # Config
    "TracingConfig",
    "get_config",
    "reset_config",
    # Tracer
    "TracerProtocol",
    "SpanProtocol",
    "NoOpTracer",
    "NoOpSpan",
    "get_tracer",
    "reset_tracer",
    # Helpers
    "embedding_attributes",
    "backfill_batch_attributes",
    "search_attributes",
]
