"""
Unit Tests for Observability Module

Tests the Phoenix/OpenTelemetry integration with focus on:
1. Graceful degradation (NoOpTracer when disabled)
2. Configuration loading from environment
3. Stage timers and the spans a search emits

STAFF ENGINEER PATTERNS:
------------------------
1. Tests work WITHOUT Phoenix installed (graceful degradation)
2. Environment variable handling tested with monkeypatch
3. Real OTel SDK spans captured in memory, no collector
4. Candidate ids only on spans when explicitly enabled
"""

from contextlib import contextmanager
from unittest.mock import patch

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from doc_similarity.observability import init_phoenix
from doc_similarity.observability.attributes import (
    SIMILARITY_RESULT_COUNT,
    SIMILARITY_SCORE_BASIS,
    SIMILARITY_SOURCE_DOCUMENT_ID,
    SIMILARITY_STAGE,
    SIMILARITY_STAGE_CANDIDATE_IDS,
    SIMILARITY_STAGE_INPUT_COUNT,
    SIMILARITY_STAGE_LATENCY_MS,
    SIMILARITY_STAGE_OUTPUT_COUNT,
    SIMILARITY_STAGE_TOP_K,
    SIMILARITY_STAGE2_FAILED,
    SIMILARITY_ERROR_TYPE,
    SIMILARITY_THRESHOLD,
    search_attributes,
    stage_attributes,
)
from doc_similarity.observability.config import PhoenixConfig, get_config, reset_config
from doc_similarity.observability.tracer import (
    NoOpSpan,
    NoOpTracer,
    OTelTracer,
    get_tracer,
    reset_tracer,
    timed_stage,
)
from doc_similarity.core import DocumentNotFound
from doc_similarity.similarity.options import SearchOptions
from doc_similarity.similarity.orchestrator import SimilaritySearch


class RecordingTracer(NoOpTracer):
    """NoOpTracer that keeps every span it creates, by name."""

    def __init__(self):
        self.spans: dict[str, NoOpSpan] = {}

    @contextmanager
    def start_span(self, name, attributes=None):
        with super().start_span(name, attributes) as span:
            self.spans[name] = span
            yield span


@pytest.fixture
def recording_tracer():
    tracer = RecordingTracer()
    with patch("doc_similarity.similarity.orchestrator.get_tracer", return_value=tracer):
        yield tracer


# ---------------------------------------------------------------------------
# CONFIG TESTS
# ---------------------------------------------------------------------------


class TestPhoenixConfig:
    """Test configuration loading."""

    def test_config_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            config = PhoenixConfig.from_env()

        assert config.enabled is False
        assert config.project_name == "doc-similarity"
        assert config.collector_endpoint is None
        # Candidate ids reveal what a document resembles: off by default
        assert config.trace_candidate_ids is False

    @pytest.mark.parametrize("value,expected", [("true", True), ("1", True), ("yes", True), ("false", False), ("0", False)])
    def test_config_enabled_flag(self, monkeypatch, value, expected):
        monkeypatch.setenv("PHOENIX_ENABLED", value)

        assert PhoenixConfig.from_env().enabled is expected

    def test_config_collector_endpoint(self, monkeypatch):
        monkeypatch.setenv("PHOENIX_COLLECTOR_ENDPOINT", "https://phoenix.example.com/v1/traces")

        assert PhoenixConfig.from_env().collector_endpoint == "https://phoenix.example.com/v1/traces"

    def test_get_config_singleton(self):
        assert get_config() is get_config()


# ---------------------------------------------------------------------------
# TRACER TESTS
# ---------------------------------------------------------------------------


class TestTracers:
    """Test NoOp degradation and the OTel adapter."""

    def test_noop_span_records_locally(self):
        with NoOpTracer().start_span("s", attributes={"a": 1}) as span:
            span.set_attribute("b", 2)
            span.set_status("ok")
            span.record_exception(ValueError("ignored"))

        assert span.attributes == {"a": 1, "b": 2}
        assert span.status == "ok"

    def test_get_tracer_returns_noop_when_disabled(self):
        assert isinstance(get_tracer(), NoOpTracer)

    def test_get_tracer_singleton(self):
        assert get_tracer() is get_tracer()

    def test_enabled_without_sdk_provider_degrades_to_noop(self, monkeypatch):
        monkeypatch.setenv("PHOENIX_ENABLED", "true")
        reset_config()
        reset_tracer()

        with patch("opentelemetry.trace.get_tracer_provider", return_value=object()):
            assert isinstance(get_tracer(), NoOpTracer)

    def test_otel_tracer_exports_spans(self):
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        tracer = OTelTracer(provider.get_tracer("test"))

        with tracer.start_span("similarity.search", attributes={"k": "v"}) as span:
            span.set_attribute("n", 3)
            span.set_status("error", "boom")

        (finished,) = exporter.get_finished_spans()
        assert finished.name == "similarity.search"
        assert finished.attributes["k"] == "v"
        assert finished.attributes["n"] == 3
        assert finished.status.status_code == StatusCode.ERROR
        assert finished.status.description == "boom"

    def test_init_phoenix_disabled(self):
        assert init_phoenix(PhoenixConfig(enabled=False)) is False


# ---------------------------------------------------------------------------
# STAGE TIMER TESTS
# ---------------------------------------------------------------------------


class TestTimedStage:
    """Test span plus wall-clock timing."""

    def test_records_latency_and_ok_status(self):
        with timed_stage(NoOpTracer(), "similarity.stage0", {"x": 1}) as stage:
            pass

        assert stage.elapsed_ms >= 0
        assert stage.span.attributes[SIMILARITY_STAGE_LATENCY_MS] == stage.elapsed_ms
        assert stage.span.status == "ok"

    def test_error_status_and_reraise(self):
        with pytest.raises(RuntimeError):
            with timed_stage(NoOpTracer(), "similarity.stage1") as stage:
                raise RuntimeError("fail")

        assert stage.span.status == "error"
        assert stage.elapsed_ms >= 0


# ---------------------------------------------------------------------------
# ATTRIBUTE HELPER TESTS
# ---------------------------------------------------------------------------


class TestAttributeHelpers:
    """Test attribute helper functions."""

    def test_search_attributes(self):
        attrs = search_attributes("doc-1", 0.9, "max")

        assert attrs == {
            SIMILARITY_SOURCE_DOCUMENT_ID: "doc-1",
            SIMILARITY_THRESHOLD: 0.9,
            SIMILARITY_SCORE_BASIS: "max",
        }

    def test_stage_attributes(self):
        attrs = stage_attributes(1, 600, top_k=250)

        assert attrs[SIMILARITY_STAGE] == 1
        assert attrs[SIMILARITY_STAGE_INPUT_COUNT] == 600
        assert attrs[SIMILARITY_STAGE_TOP_K] == 250

    def test_stage_attributes_without_top_k(self):
        assert SIMILARITY_STAGE_TOP_K not in stage_attributes(2, 10)


# ---------------------------------------------------------------------------
# SEARCH SPANS
# ---------------------------------------------------------------------------


class TestSearchSpans:
    """Test the spans a search emits."""

    def test_one_span_per_stage(self, scenario_store, recording_tracer):
        SimilaritySearch(scenario_store).search("source", SearchOptions())

        assert set(recording_tracer.spans) == {
            "similarity.search",
            "similarity.stage0",
            "similarity.stage1",
            "similarity.stage2",
        }
        root = recording_tracer.spans["similarity.search"]
        assert root.attributes[SIMILARITY_RESULT_COUNT] == 1
        assert root.status == "ok"
        stage2 = recording_tracer.spans["similarity.stage2"]
        assert stage2.attributes[SIMILARITY_STAGE_OUTPUT_COUNT] == 2
        assert stage2.attributes[SIMILARITY_STAGE2_FAILED] == 0

    def test_candidate_ids_omitted_by_default(self, scenario_store, recording_tracer):
        SimilaritySearch(scenario_store).search("source", SearchOptions())

        assert SIMILARITY_STAGE_CANDIDATE_IDS not in recording_tracer.spans["similarity.stage0"].attributes

    def test_candidate_ids_when_enabled(self, scenario_store, recording_tracer, monkeypatch):
        monkeypatch.setenv("TRACE_CANDIDATE_IDS", "true")
        reset_config()

        SimilaritySearch(scenario_store).search("source", SearchOptions())

        ids = recording_tracer.spans["similarity.stage0"].attributes[SIMILARITY_STAGE_CANDIDATE_IDS]
        assert sorted(ids) == ["candidate", "unrelated"]

    def test_error_recorded_on_root_span(self, scenario_store, recording_tracer):
        with pytest.raises(DocumentNotFound):
            SimilaritySearch(scenario_store).search("missing", SearchOptions())

        root = recording_tracer.spans["similarity.search"]
        assert root.status == "error"
        assert root.attributes[SIMILARITY_ERROR_TYPE] == "DocumentNotFound"
