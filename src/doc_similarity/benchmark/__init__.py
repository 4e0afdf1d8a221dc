"""
Benchmark module - search latency and regression detection.

- baseline.py: BaselineStore protocol + implementations (File, InMemory)
- metrics.py: Data models for timings and percentiles
- runner.py: Repeated searches with injected stores

INTERVIEW TALKING POINT:
------------------------
"The benchmark uses the adapter pattern for baseline storage. In CI a
FileBaselineStore persists p95s between runs; in tests an
InMemoryBaselineStore lets me verify regression detection without
touching the filesystem or waiting on a real corpus."
"""

from doc_similarity.benchmark.baseline import (
    BaselineStore,
    FileBaselineStore,
    InMemoryBaselineStore,
    LatencyBaseline,
    get_baseline_store,
)
from doc_similarity.benchmark.metrics import (
    BenchmarkMetrics,
    BenchmarkResult,
    QueryTiming,
    RegressionCheck,
    StageLatency,
)
from doc_similarity.benchmark.runner import (
    DEFAULT_LATENCY_THRESHOLD,
    calculate_metrics,
    check_regressions,
    percentile,
    run_benchmark,
)

__all__ = [
    # Baseline
    "BaselineStore",
    "LatencyBaseline",
    "FileBaselineStore",
    "InMemoryBaselineStore",
    "get_baseline_store",
    # Metrics
    "QueryTiming",
    "StageLatency",
    "BenchmarkMetrics",
    "RegressionCheck",
    "BenchmarkResult",
    # Runner
    "DEFAULT_LATENCY_THRESHOLD",
    "run_benchmark",
    "calculate_metrics",
    "check_regressions",
    "percentile",
]
