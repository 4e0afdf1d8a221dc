"""
Benchmark runner - repeated searches with latency regression detection.

The runner:
1. Runs every source document through the full pipeline, N times
2. Collects per-stage timings from each SearchResponse
3. Compares p95 latencies against the stored baseline
4. Optionally stores the new numbers as the baseline

DEPENDENCY INJECTION:
---------------------
run_benchmark() takes the embedding store and the baseline store as
parameters, so regression detection is testable with in-memory doubles.
"""

from __future__ import annotations

import logging
import statistics
from typing import Sequence

from doc_similarity.benchmark.baseline import (
    BaselineStore,
    LatencyBaseline,
    get_baseline_store,
)
from doc_similarity.benchmark.metrics import (
    STAGES,
    BenchmarkMetrics,
    BenchmarkResult,
    QueryTiming,
    RegressionCheck,
    StageLatency,
)
from doc_similarity.core import EmbeddingStore, SimilaritySearchError
from doc_similarity.similarity.options import SearchOptions
from doc_similarity.similarity.orchestrator import SimilaritySearch

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CONSTANTS
# ---------------------------------------------------------------------------

DEFAULT_LATENCY_THRESHOLD = 0.15  # 15% slower triggers regression


# ---------------------------------------------------------------------------
# CORE BENCHMARK
# ---------------------------------------------------------------------------


def run_benchmark(
    store: EmbeddingStore,
    source_document_ids: Sequence[str],
    options: SearchOptions | None = None,
    iterations: int = 3,
    latency_regression_threshold: float = DEFAULT_LATENCY_THRESHOLD,
    update_baseline: bool = False,
    baseline_store: BaselineStore | None = None,
    corpus_size: int | None = None,
) -> BenchmarkResult:
    """
    Benchmark the search pipeline.

    Args:
        store: Embedding store to search
        source_document_ids: Documents to search from
        options: Search options (configured defaults if None)
        iterations: Runs per source document
        latency_regression_threshold: Max allowed p95 increase (0.15 = 15%)
        update_baseline: If True, store current results as the new baseline
        baseline_store: Injectable baseline store (uses file store if None)
        corpus_size: Corpus size recorded with the baseline

    Returns:
        BenchmarkResult with metrics and regression checks
    """
    baseline_store = baseline_store or get_baseline_store()
    options = options or SearchOptions.from_settings()
    searcher = SimilaritySearch(store, default_options=options)

    timings: list[QueryTiming] = []
    for iteration in range(max(1, iterations)):
        for source_id in source_document_ids:
            logger.debug(f"Benchmark iteration {iteration + 1}: {source_id}")
            try:
                response = searcher.search(source_id)
            except SimilaritySearchError as exc:
                timings.append(
                    QueryTiming(
                        source_document_id=source_id,
                        stage0_ms=0,
                        stage1_ms=0,
                        stage2_ms=0,
                        total_ms=0,
                        result_count=0,
                        success=False,
                        error=str(exc),
                    )
                )
                continue

            t = response.timing
            timings.append(
                QueryTiming(
                    source_document_id=source_id,
                    stage0_ms=t.stage0_ms,
                    stage1_ms=t.stage1_ms,
                    stage2_ms=t.stage2_ms,
                    total_ms=t.total_ms,
                    result_count=len(response.results),
                    success=True,
                )
            )

    successful = [t for t in timings if t.success]
    if not successful:
        return BenchmarkResult(
            passed=False,
            metrics=BenchmarkMetrics(query_count=0),
            baseline=None,
            regression_checks=[],
            query_timings=timings,
            failure_reason="No successful searches to benchmark",
        )

    metrics = calculate_metrics(successful)

    baseline = baseline_store.load()
    regression_checks, is_regression = check_regressions(
        metrics=metrics,
        baseline=baseline,
        latency_threshold=latency_regression_threshold,
        corpus_size=corpus_size,
    )

    if update_baseline:
        baseline_store.save(
            LatencyBaseline(
                p50_total_ms=metrics.p50("total"),
                p95_total_ms=metrics.p95("total"),
                p95_stage0_ms=metrics.p95("stage0"),
                p95_stage1_ms=metrics.p95("stage1"),
                p95_stage2_ms=metrics.p95("stage2"),
                corpus_size=corpus_size,
                run_count=(baseline.run_count + 1) if baseline else 1,
            )
        )
        logger.info("Latency baseline updated")

    failure_reason = None
    if is_regression:
        failures = [c.metric for c in regression_checks if c.is_regression]
        failure_reason = f"Regressions detected: {failures}"

    return BenchmarkResult(
        passed=not is_regression,
        metrics=metrics,
        baseline=baseline,
        regression_checks=regression_checks,
        query_timings=timings,
        failure_reason=failure_reason,
    )


# ---------------------------------------------------------------------------
# HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def percentile(values: Sequence[float], fraction: float) -> float:
    """Nearest-rank percentile of values (0.0 for no values)."""
    if not values:
        return 0.0
    ordered = sorted(values)
    index = int(len(ordered) * fraction)
    return ordered[min(index, len(ordered) - 1)]


def calculate_metrics(successful: Sequence[QueryTiming]) -> BenchmarkMetrics:
    """Calculate per-stage percentiles from successful query timings."""
    stages = {}
    for stage in STAGES:
        values = [q.stage_ms(stage) for q in successful]
        stages[stage] = StageLatency(
            stage=stage,
            p50_ms=percentile(values, 0.50),
            p95_ms=percentile(values, 0.95),
            avg_ms=statistics.mean(values),
        )

    return BenchmarkMetrics(
        query_count=len(successful),
        stages=stages,
        avg_result_count=statistics.mean(q.result_count for q in successful),
    )


def check_regressions(
    metrics: BenchmarkMetrics,
    baseline: LatencyBaseline | None,
    latency_threshold: float,
    corpus_size: int | None = None,
) -> tuple[list[RegressionCheck], bool]:
    """Compare p95 latencies (total and per stage) against the baseline."""
    checks: list[RegressionCheck] = []
    if baseline is None:
        return checks, False

    for stage in STAGES:
        baseline_value = baseline.p95(stage)
        if baseline_value <= 0:
            continue
        current = metrics.p95(stage)
        change = (current - baseline_value) / baseline_value
        checks.append(
            RegressionCheck(
                metric=f"p95_{stage}_ms",
                baseline_value=baseline_value,
                current_value=current,
                change_percent=change * 100,
                threshold_percent=latency_threshold * 100,
                is_regression=change > latency_threshold,
            )
        )

    # Timings on a different corpus are not comparable
    if (
        baseline.corpus_size is not None
        and corpus_size is not None
        and baseline.corpus_size != corpus_size
    ):
        checks.append(
            RegressionCheck(
                metric="corpus_size",
                baseline_value=baseline.corpus_size,
                current_value=corpus_size,
                change_percent=0,
                threshold_percent=0,
                is_regression=True,
            )
        )

    return checks, any(c.is_regression for c in checks)
