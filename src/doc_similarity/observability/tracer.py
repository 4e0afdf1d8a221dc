"""
Tracer Factory, NoOp Implementations and Stage Timers

get_tracer() returns either a real OTel tracer or a NoOpTracer, so search
code can open spans unconditionally. timed_stage() pairs a span with a
wall-clock timer: the orchestrator reports the same elapsed time in the
Timing object and on the span.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Protocol


# ---------------------------------------------------------------------------
# PROTOCOLS
# ---------------------------------------------------------------------------


class SpanProtocol(Protocol):
    """Protocol for span operations."""

    def set_attribute(self, key: str, value: Any) -> None:
        ...

    def set_status(self, status: str, description: str | None = None) -> None:
        """Set span status (ok, error)."""
        ...

    def record_exception(self, exception: BaseException) -> None:
        ...


class TracerProtocol(Protocol):
    """Protocol for tracer operations."""

    def start_span(
        self, name: str, attributes: dict[str, Any] | None = None
    ) -> Iterator[SpanProtocol]:
        """Start a new span as context manager."""
        ...


# ---------------------------------------------------------------------------
# NOOP IMPLEMENTATIONS (tracing disabled)
# ---------------------------------------------------------------------------


class NoOpSpan:
    """Span that records attributes locally and exports nothing."""

    def __init__(self) -> None:
        self.attributes: dict[str, Any] = {}
        self.status: str | None = None

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def set_status(self, status: str, description: str | None = None) -> None:
        self.status = status

    def record_exception(self, exception: BaseException) -> None:
        pass


class NoOpTracer:
    """Tracer that creates no-op spans."""

    @contextmanager
    def start_span(
        self, name: str, attributes: dict[str, Any] | None = None
    ) -> Iterator[NoOpSpan]:
        span = NoOpSpan()
        span.attributes.update(attributes or {})
        yield span


# ---------------------------------------------------------------------------
# OTEL TRACER (wrapped for our protocol)
# ---------------------------------------------------------------------------


class OTelSpan:
    """Adapter from an OTel span to SpanProtocol."""

    def __init__(self, span: Any):
        self._span = span

    def set_attribute(self, key: str, value: Any) -> None:
        self._span.set_attribute(key, value)

    def set_status(self, status: str, description: str | None = None) -> None:
        from opentelemetry.trace import Status, StatusCode

        code = StatusCode.OK if status == "ok" else StatusCode.ERROR
        # OTel only keeps descriptions on ERROR statuses
        self._span.set_status(Status(code, description if code is StatusCode.ERROR else None))

    def record_exception(self, exception: BaseException) -> None:
        self._span.record_exception(exception)


class OTelTracer:
    """Adapter from an OTel tracer to TracerProtocol."""

    def __init__(self, tracer: Any):
        self._tracer = tracer

    @contextmanager
    def start_span(
        self, name: str, attributes: dict[str, Any] | None = None
    ) -> Iterator[OTelSpan]:
        with self._tracer.start_as_current_span(name, attributes=attributes) as span:
            yield OTelSpan(span)


# ---------------------------------------------------------------------------
# STAGE TIMER
# ---------------------------------------------------------------------------


@dataclass
class StageTimer:
    """Span plus elapsed wall-clock time for one pipeline stage."""

    span: SpanProtocol
    started: float = field(default_factory=time.perf_counter)
    elapsed_ms: float = 0.0

    def stop(self) -> float:
        self.elapsed_ms = (time.perf_counter() - self.started) * 1000
        return self.elapsed_ms


@contextmanager
def timed_stage(
    tracer: TracerProtocol,
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Iterator[StageTimer]:
    """
    Open a span and time the block.

    Failures are recorded on the span and re-raised; elapsed_ms is set
    either way.
    """
    from doc_similarity.observability.attributes import SIMILARITY_STAGE_LATENCY_MS

    with tracer.start_span(name, attributes=attributes) as span:
        timer = StageTimer(span=span)
        try:
            yield timer
        except BaseException as exc:
            timer.stop()
            span.record_exception(exc)
            span.set_status("error", str(exc))
            raise
        timer.stop()
        span.set_attribute(SIMILARITY_STAGE_LATENCY_MS, timer.elapsed_ms)
        span.set_status("ok")


# ---------------------------------------------------------------------------
# FACTORY
# ---------------------------------------------------------------------------


_tracer: TracerProtocol | None = None


def get_tracer(service_name: str = "doc-similarity") -> TracerProtocol:
    """
    Get the global tracer instance.

    Returns OTelTracer once init_phoenix() has installed an SDK tracer
    provider, otherwise a NoOpTracer.

    Args:
        service_name: Instrumentation scope name (used on first call only)
    """
    global _tracer
    if _tracer is not None:
        return _tracer

    from opentelemetry import trace
    from opentelemetry.sdk.trace import TracerProvider

    from doc_similarity.observability.config import get_config

    if not get_config().enabled or not isinstance(trace.get_tracer_provider(), TracerProvider):
        _tracer = NoOpTracer()
    else:
        _tracer = OTelTracer(trace.get_tracer(service_name))
    return _tracer


def reset_tracer() -> None:
    """Reset tracer (useful for testing)."""
    global _tracer
    _tracer = None
