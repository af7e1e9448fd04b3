"""
Unit Tests for Observability Module

Tests the OpenTelemetry integration with focus on:
1. Graceful degradation (NoOpTracer when disabled)
2. Configuration loading from environment
3. Span creation and attribute setting

STAFF ENGINEER PATTERNS:
------------------------
1. Environment variable handling tested with patch.dict
2. Protocol compliance verified
3. Zero-overhead when disabled
"""

from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import StatusCode

from semantic_retrieval.core.errors import QuotaExceeded
from semantic_retrieval.core.models import EmbeddingPurpose
from semantic_retrieval.embeddings import EmbeddingClient
from semantic_retrieval.observability import init_tracing, shutdown_tracing
from semantic_retrieval.observability.attributes import (
    BACKFILL_BATCH_NUMBER,
    BACKFILL_DRY_RUN,
    EMBEDDING_INPUT_TEXT,
    ERROR_TYPE,
    GEN_AI_OPERATION_NAME,
    SEARCH_OWNER_ID,
    SEARCH_QUERY_TEXT,
    SEARCH_SOURCE_DOCUMENT_ID,
    backfill_batch_attributes,
    embedding_attributes,
    search_attributes,
)
from semantic_retrieval.observability.config import TracingConfig, get_config, reset_config
from semantic_retrieval.observability.tracer import (
    MAX_CAPTURED_CHARS,
    NoOpSpan,
    NoOpTracer,
    OTelTracer,
    get_tracer,
    reset_tracer,
)

from conftest import StubBackend


# ---------------------------------------------------------------------------
# CONFIG TESTS
# ---------------------------------------------------------------------------


class TestTracingConfig:
    """Test configuration loading."""

    def test_config_defaults(self):
        """Tracing is off and text capture is off unless asked for."""
        with patch.dict("os.environ", {}, clear=True):
            config = TracingConfig.from_env()

        assert config.enabled is False
        assert config.service_name == "semantic-retrieval"
        assert config.collector_endpoint is None
        assert config.capture_text is False

    def test_config_from_env(self):
        env = {
            "TRACING_ENABLED": "yes",
            "TRACING_SERVICE_NAME": "indexer",
            "OTEL_EXPORTER_OTLP_ENDPOINT": "http://collector:4318/v1/traces",
        }
        with patch.dict("os.environ", env, clear=True):
            config = TracingConfig.from_env()

        assert config.enabled is True
        assert config.service_name == "indexer"
        assert config.collector_endpoint == "http://collector:4318/v1/traces"

    def test_get_config_is_cached(self):
        assert get_config() is get_config()
        first = get_config()
        reset_config()
        assert get_config() is not first


# ---------------------------------------------------------------------------
# TRACER TESTS
# ---------------------------------------------------------------------------


class TestNoOpTracer:
    """Zero-overhead tracer used when tracing is disabled."""

    def test_disabled_returns_noop(self):
        with patch.dict("os.environ", {"TRACING_ENABLED": "false"}):
            reset_config()
            assert isinstance(get_tracer(), NoOpTracer)

    def test_enabled_without_provider_returns_noop(self):
        with patch.dict("os.environ", {"TRACING_ENABLED": "true"}):
            reset_config()
            assert isinstance(get_tracer(), NoOpTracer)

    def test_tracer_is_cached(self):
        assert get_tracer() is get_tracer()

    def test_protocol_compliance(self):
        for name in ("set_attribute", "set_status", "record_error", "set_text"):
            assert callable(getattr(NoOpSpan(), name))
        assert callable(NoOpTracer().start_span)

    def test_span_methods_are_silent(self):
        with NoOpTracer().start_span("op", attributes={"k": "v"}) as span:
            span.set_attribute("result", 1)
            span.set_status("error", "boom")
            span.record_error(ValueError("x"))
            span.set_text("search.query_text", "secret")


class TestOTelTracer:
    def _sdk(self):
        sdk_tracer = MagicMock()
        sdk_span = sdk_tracer.start_as_current_span.return_value.__enter__.return_value
        return sdk_tracer, sdk_span

    def test_wraps_sdk_span(self):
        sdk_tracer, sdk_span = self._sdk()

        with OTelTracer(sdk_tracer).start_span("index.document", attributes={"a": 1}) as span:
            span.set_attribute("b", 2)

        sdk_tracer.start_as_current_span.assert_called_once_with(
            "index.document",
            attributes={"a": 1},
            record_exception=False,
            set_status_on_exception=False,
        )
        sdk_span.set_attribute.assert_called_once_with("b", 2)

    def test_escaping_error_recorded_with_code(self):
        sdk_tracer, sdk_span = self._sdk()
        error = QuotaExceeded("monthly quota")

        with pytest.raises(QuotaExceeded):
            with OTelTracer(sdk_tracer).start_span("embedding.create"):
                raise error

        sdk_span.set_attribute.assert_called_once_with(ERROR_TYPE, "quota_exceeded")
        sdk_span.record_exception.assert_called_once_with(error)
        sdk_span.set_status.assert_called_once_with(StatusCode.ERROR, str(error))

    def test_error_recorded_once(self):
        sdk_tracer, sdk_span = self._sdk()
        error = ValueError("bad row")

        with pytest.raises(ValueError):
            with OTelTracer(sdk_tracer).start_span("index.document") as span:
                span.record_error(error)
                raise error

        sdk_span.set_attribute.assert_called_once_with(ERROR_TYPE, "ValueError")
        sdk_span.record_exception.assert_called_once_with(error)

    def test_status_mapping(self):
        sdk_tracer, sdk_span = self._sdk()

        with OTelTracer(sdk_tracer).start_span("op") as span:
            span.set_status("ok")
            span.set_status("error", "2 failed")

        assert sdk_span.set_status.call_args_list[0].args == (StatusCode.OK,)
        assert sdk_span.set_status.call_args_list[1].args == (StatusCode.ERROR, "2 failed")

    def test_text_dropped_unless_capture_enabled(self):
        sdk_tracer, sdk_span = self._sdk()

        with OTelTracer(sdk_tracer).start_span("search.text") as span:
            span.set_text(SEARCH_QUERY_TEXT, "thyroid")

        sdk_span.set_attribute.assert_not_called()

    def test_captured_text_is_truncated(self):
        sdk_tracer, sdk_span = self._sdk()

        with OTelTracer(sdk_tracer, capture_text=True).start_span("search.text") as span:
            span.set_text(SEARCH_QUERY_TEXT, "x" * (MAX_CAPTURED_CHARS + 50))

        key, value = sdk_span.set_attribute.call_args.args
        assert key == SEARCH_QUERY_TEXT
        assert len(value) == MAX_CAPTURED_CHARS

    def test_get_tracer_reads_capture_setting(self):
        env = {"TRACING_ENABLED": "true", "TRACING_CAPTURE_TEXT": "true"}
        with patch.dict("os.environ", env), patch(
            "semantic_retrieval.observability.tracer.trace.get_tracer_provider",
            return_value=TracerProvider(),
        ):
            reset_config()
            tracer = get_tracer()

        assert isinstance(tracer, OTelTracer)
        assert tracer.capture_text is True

    def test_embedding_failure_reaches_span(self):
        sdk_tracer, sdk_span = self._sdk()
        client = EmbeddingClient(StubBackend(fail=lambda text: QuotaExceeded("quota")))

        with patch(
            "semantic_retrieval.embeddings.client.get_tracer",
            return_value=OTelTracer(sdk_tracer, capture_text=True),
        ):
            with pytest.raises(QuotaExceeded):
                client.embed("some text", EmbeddingPurpose.SUMMARY)

        sdk_span.set_attribute.assert_any_call(EMBEDDING_INPUT_TEXT, "some text")
        sdk_span.set_attribute.assert_any_call(ERROR_TYPE, "quota_exceeded")
        sdk_span.record_exception.assert_called_once()


class TestInitTracing:
    def teardown_method(self):
        shutdown_tracing()
        reset_tracer()

    def test_disabled_is_noop(self):
        assert init_tracing(TracingConfig(enabled=False)) is False

    def test_console_exporter_when_no_endpoint(self):
        with patch("semantic_retrieval.observability.trace.set_tracer_provider") as mock_set:
            assert init_tracing(TracingConfig(enabled=True)) is True
        mock_set.assert_called_once()


# ---------------------------------------------------------------------------
# ATTRIBUTE HELPERS
# ---------------------------------------------------------------------------


class TestAttributes:
    def test_embedding_attributes(self):
        attrs = embedding_attributes("MockEmbeddings", "mock-embedding", "query", 42)
        assert attrs[GEN_AI_OPERATION_NAME] == "embeddings"

    def test_backfill_batch_attributes(self):
        attrs = backfill_batch_attributes(3, 10, True)
        assert attrs[BACKFILL_BATCH_NUMBER] == 3
        assert attrs[BACKFILL_DRY_RUN] is True

    def test_search_attributes_source_optional(self):
        assert SEARCH_SOURCE_DOCUMENT_ID not in search_attributes("u", 0.7, 5)
        attrs = search_attributes("u", 0.7, 5, source_document_id="d1")
        assert attrs[SEARCH_SOURCE_DOCUMENT_ID] == "d1"
        assert attrs[SEARCH_OWNER_ID] == "u"
