"""
Observability Module - Phoenix + OpenTelemetry tracing for searches.

USAGE:
------
# At application startup:
from doc_similarity.observability import init_phoenix

init_phoenix()  # Exports spans if PHOENIX_ENABLED=true

# In code that needs tracing:
from doc_similarity.observability import get_tracer, timed_stage

with timed_stage(get_tracer(), "similarity.stage0") as stage:
    ...
print(stage.elapsed_ms)
"""

from __future__ import annotations

import logging

from doc_similarity.observability.config import (
    PhoenixConfig,
    get_config,
    reset_config,
)
from doc_similarity.observability.tracer import (
    NoOpSpan,
    NoOpTracer,
    SpanProtocol,
    StageTimer,
    TracerProtocol,
    get_tracer,
    reset_tracer,
    timed_stage,
)
from doc_similarity.observability.attributes import (
    SIMILARITY_SOURCE_DOCUMENT_ID,
    SIMILARITY_RESULT_COUNT,
    SIMILARITY_STAGE,
    SIMILARITY_STAGE_OUTPUT_COUNT,
    SIMILARITY_STAGE_LATENCY_MS,
    search_attributes,
    stage_attributes,
)

logger = logging.getLogger(__name__)

_phoenix_initialized = False


def init_phoenix(config: PhoenixConfig | None = None) -> bool:
    """
    Initialize span export.

    Installs an OpenTelemetry SDK tracer provider exporting either to a
    remote OTLP collector or to a locally launched Phoenix app.

    Args:
        config: Optional config (uses env vars if not provided)

    Returns:
        True if tracing was initialized, False if disabled or failed
    """
    global _phoenix_initialized
    if _phoenix_initialized:
        return True

    config = config or get_config()

    if not config.enabled:
        logger.debug("Phoenix tracing disabled")
        return False

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

        if config.collector_endpoint:
            endpoint = config.collector_endpoint
            logger.info(f"Phoenix connecting to remote: {endpoint}")
        else:
            import phoenix as px

            session = px.launch_app()
            endpoint = f"{session.url.rstrip('/')}/v1/traces"
            logger.info(f"Phoenix UI available at: {session.url}")

        provider = TracerProvider(
            resource=Resource.create({"openinference.project.name": config.project_name})
        )
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        trace.set_tracer_provider(provider)

        reset_tracer()
        _phoenix_initialized = True
        return True

    except ImportError as e:
        logger.warning(f"Phoenix not installed, tracing disabled: {e}")
        return False
    except Exception as e:
        logger.error(f"Failed to initialize Phoenix: {e}")
        return False


def shutdown_phoenix() -> None:
    """Flush and shut down span export."""
    global _phoenix_initialized

    if not _phoenix_initialized:
        return

    try:
        from opentelemetry import trace

        provider = trace.get_tracer_provider()
        if hasattr(provider, "shutdown"):
            provider.shutdown()
    except Exception as e:
        logger.warning(f"Error shutting down Phoenix: {e}")

    reset_tracer()
    reset_config()
    _phoenix_initialized = False


__all__ = [
    # Initialization
    "init_phoenix",
    "shutdown_phoenix",
    # Config
    "PhoenixConfig",
    "get_config",
    "reset_config",
    # Tracer
    "TracerProtocol",
    "SpanProtocol",
    "NoOpTracer",
    "NoOpSpan",
    "StageTimer",
    "get_tracer",
    "reset_tracer",
    "timed_stage",
    # Attributes
    "SIMILARITY_SOURCE_DOCUMENT_ID",
    "SIMILARITY_RESULT_COUNT",
    "SIMILARITY_STAGE",
    "SIMILARITY_STAGE_OUTPUT_COUNT",
    "SIMILARITY_STAGE_LATENCY_MS",
    "search_attributes",
    "stage_attributes",
]
