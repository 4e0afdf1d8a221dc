"""
Benchmark metrics - data models for search latency benchmarks.

These dataclasses provide a clear schema for:
1. Per-query timing data
2. Per-stage latency percentiles
3. Regression detection results

INTERVIEW TALKING POINT:
------------------------
"Metrics are plain dataclasses - no behavior, just data. Stage 2 is the
stage that grows with candidate count and worker contention, so the
benchmark keeps percentiles per stage: a regression report that only says
'total p95 went up' doesn't tell you which knob to turn."
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from doc_similarity.benchmark.baseline import LatencyBaseline

STAGES = ("stage0", "stage1", "stage2", "total")


# ---------------------------------------------------------------------------
# QUERY-LEVEL METRICS
# ---------------------------------------------------------------------------


@dataclass
class QueryTiming:
    """Timing of one benchmark search."""

    source_document_id: str
    stage0_ms: float
    stage1_ms: float
    stage2_ms: float
    total_ms: float
    result_count: int
    success: bool
    error: str | None = None

    def stage_ms(self, stage: str) -> float:
        return getattr(self, f"{stage}_ms")


# ---------------------------------------------------------------------------
# AGGREGATE METRICS
# ---------------------------------------------------------------------------


@dataclass
class StageLatency:
    """Latency percentiles for one stage (or the whole search)."""

    stage: str
    p50_ms: float
    p95_ms: float
    avg_ms: float


@dataclass
class BenchmarkMetrics:
    """Aggregate metrics across all successful queries."""

    query_count: int
    stages: dict[str, StageLatency] = field(default_factory=dict)
    avg_result_count: float = 0.0

    def p50(self, stage: str) -> float:
        return self.stages[stage].p50_ms if stage in self.stages else 0.0

    def p95(self, stage: str) -> float:
        return self.stages[stage].p95_ms if stage in self.stages else 0.0


# ---------------------------------------------------------------------------
# REGRESSION DETECTION
# ---------------------------------------------------------------------------


@dataclass
class RegressionCheck:
    """Result of checking one metric against the baseline."""

    metric: str
    baseline_value: float
    current_value: float
    change_percent: float
    threshold_percent: float
    is_regression: bool


# ---------------------------------------------------------------------------
# BENCHMARK RESULT
# ---------------------------------------------------------------------------


@dataclass
class BenchmarkResult:
    """Result of a benchmark run.

    Contains everything needed for CI reporting:
    - Pass/fail status
    - Current metrics
    - Baseline comparison
    - Per-query details
    """

    passed: bool
    metrics: BenchmarkMetrics
    baseline: LatencyBaseline | None
    regression_checks: list[RegressionCheck]
    query_timings: list[QueryTiming]
    failure_reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "failure_reason": self.failure_reason,
            "query_count": self.metrics.query_count,
            "avg_result_count": self.metrics.avg_result_count,
            "stages": {
                name: {
                    "p50_ms": round(s.p50_ms, 2),
                    "p95_ms": round(s.p95_ms, 2),
                    "avg_ms": round(s.avg_ms, 2),
                }
                for name, s in self.metrics.stages.items()
            },
            "regression_checks": [
                {
                    "metric": c.metric,
                    "baseline": c.baseline_value,
                    "current": c.current_value,
                    "change_percent": round(c.change_percent, 1),
                    "is_regression": c.is_regression,
                }
                for c in self.regression_checks
            ],
            "failed_queries": [
                {"source_document_id": q.source_document_id, "error": q.error}
                for q in self.query_timings
                if not q.success
            ],
        }
