"""
Span wrappers for the pipeline.

get_tracer() hands out one of two tracers:
- OTelTracer: spans go to the installed OpenTelemetry provider
- NoOpTracer: tracing is off (or init_tracing() has not run)

Pipeline code only sees the small span surface below. Failures escaping a
span are recorded once, tagged with the pipeline's error code
(``error.type``), so a trace shows "quota_exceeded" rather than a bare
exception class. Raw document or query text is attached only when
TRACING_CAPTURE_TEXT is set.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Protocol

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import StatusCode

from semantic_retrieval.observability.attributes import ERROR_TYPE
from semantic_retrieval.observability.config import get_config

# Longest text attached to a span when text capture is on
MAX_CAPTURED_CHARS = 1000


class SpanProtocol(Protocol):
    def set_attribute(self, key: str, value: Any) -> None: ...

    def set_status(self, status: str, description: str | None = None) -> None: ...

    def record_error(self, error: BaseException) -> None: ...

    def set_text(self, key: str, text: str) -> None: ...


class TracerProtocol(Protocol):
    def start_span(self, name: str, attributes: dict[str, Any] | None = None) -> Any: ...


def error_type(error: BaseException) -> str:
    """Pipeline error code, or the exception class name for anything else."""
    return getattr(error, "code", None) or type(error).__name__


# ---------------------------------------------------------------------------
# TRACING OFF
# ---------------------------------------------------------------------------


class NoOpSpan:
    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def set_status(self, status: str, description: str | None = None) -> None:
        pass

    def record_error(self, error: BaseException) -> None:
        pass

    def set_text(self, key: str, text: str) -> None:
        pass


class NoOpTracer:
    @contextmanager
    def start_span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[NoOpSpan]:
        yield NoOpSpan()


# ---------------------------------------------------------------------------
# OPENTELEMETRY
# ---------------------------------------------------------------------------


class OTelSpan:
    def __init__(self, span: Any, capture_text: bool = False):
        self._span = span
        self._capture_text = capture_text
        self._error_recorded = False

    def set_attribute(self, key: str, value: Any) -> None:
        self._span.set_attribute(key, value)

    def set_status(self, status: str, description: str | None = None) -> None:
        if status == "ok":
            self._span.set_status(StatusCode.OK)
        else:
            self._span.set_status(StatusCode.ERROR, description)

    def record_error(self, error: BaseException) -> None:
        """Attach the exception and its error code, and mark the span failed."""
        if self._error_recorded:
            return
        self._error_recorded = True
        self._span.set_attribute(ERROR_TYPE, error_type(error))
        self._span.record_exception(error)
        self._span.set_status(StatusCode.ERROR, str(error))

    def set_text(self, key: str, text: str) -> None:
        if self._capture_text:
            self._span.set_attribute(key, text[:MAX_CAPTURED_CHARS])


class OTelTracer:
    def __init__(self, tracer: Any, capture_text: bool = False):
        self._tracer = tracer
        self.capture_text = capture_text

    @contextmanager
    def start_span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[OTelSpan]:
        # Exceptions are recorded by OTelSpan.record_error so they carry an error code
        with self._tracer.start_as_current_span(
            name,
            attributes=attributes,
            record_exception=False,
            set_status_on_exception=False,
        ) as raw:
            span = OTelSpan(raw, capture_text=self.capture_text)
            try:
                yield span
            except Exception as e:
                span.record_error(e)
                raise


# ---------------------------------------------------------------------------
# FACTORY
# ---------------------------------------------------------------------------


_tracer: TracerProtocol | None = None


def get_tracer(scope: str = "semantic_retrieval") -> TracerProtocol:
    """
    Process-wide tracer, chosen on first use.

    OTelTracer only when TRACING_ENABLED is set and init_tracing() has
    installed an SDK provider; NoOpTracer otherwise.
    """
    global _tracer
    if _tracer is None:
        config = get_config()
        if config.enabled and isinstance(trace.get_tracer_provider(), TracerProvider):
            _tracer = OTelTracer(trace.get_tracer(scope), capture_text=config.capture_text)
        else:
            _tracer = NoOpTracer()
    return _tracer


def reset_tracer() -> None:
    global _tracer
    _tracer = None
