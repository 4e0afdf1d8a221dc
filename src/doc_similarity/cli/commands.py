"""
CLI commands - entry points for similarity search tooling.

Each command follows a consistent pattern:
1. Parse arguments
2. Load environment
3. Build the embedding store
4. Run the pipeline
5. Print results
6. Return exit code

INTERVIEW TALKING POINT:
------------------------
"CLI commands are thin wrappers around the orchestrator. They parse flags
into SearchOptions, pick a store, and format the response; all the
behaviour they expose is already tested below them. --synthetic swaps
PostgreSQL for a seeded in-memory corpus, which is how the demo and the
CI benchmark run without a database."
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from pydantic import ValidationError

from doc_similarity.core import SimilaritySearchError
from doc_similarity.similarity.options import ScoreBasis, SearchOptions


def _load_env() -> None:
    """Load environment variables from .env file."""
    from dotenv import load_dotenv

    load_dotenv()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# SHARED ARGUMENTS
# ---------------------------------------------------------------------------


def _add_store_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--synthetic",
        action="store_true",
        help="Search the seeded synthetic corpus instead of PostgreSQL",
    )
    parser.add_argument(
        "--unrelated",
        type=int,
        default=20,
        help="Filler documents in the synthetic corpus (default: 20)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")


def _add_search_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--stage0-top-k", type=int, help="Centroid prefilter size")
    parser.add_argument("--stage1-top-k", type=int, help="Refined ranking size")
    parser.add_argument("--workers", type=int, help="Stage 2 worker threads")
    parser.add_argument("--threshold", type=float, help="Inclusion threshold (0-1)")
    parser.add_argument(
        "--score-basis",
        choices=[b.value for b in ScoreBasis],
        help="Score the threshold applies to",
    )
    parser.add_argument(
        "--chunk-match-threshold",
        type=float,
        help="Cosine similarity for a chunk pair to align",
    )
    parser.add_argument("--json", action="store_true", help="Print JSON output")


def _options_from_args(args: argparse.Namespace, **defaults) -> SearchOptions:
    overrides = {
        "stage0_top_k": args.stage0_top_k,
        "stage1_top_k": args.stage1_top_k,
        "stage2_parallel_workers": args.workers,
        "threshold": args.threshold,
        "score_basis": args.score_basis,
        "chunk_match_threshold": args.chunk_match_threshold,
    }
    for key, value in defaults.items():
        if overrides.get(key) is None:
            overrides[key] = value
    return SearchOptions.from_settings(**overrides)


def _build_store(args: argparse.Namespace):
    """Return (store, corpus_size) for the parsed arguments."""
    from doc_similarity.retrieval.store import InMemoryEmbeddingStore, get_embedding_store

    if args.synthetic:
        from doc_similarity.retrieval.seeds import seed_embedding_store

        store = InMemoryEmbeddingStore()
        count = seed_embedding_store(store, unrelated_count=args.unrelated)
        return store, count
    return get_embedding_store(use_postgres=True), None


# ---------------------------------------------------------------------------
# OUTPUT
# ---------------------------------------------------------------------------


def _display_name(document) -> str:
    return document.title or document.filename or document.id


def _print_timing(timing) -> None:
    print("Timing:")
    print(f"  Stage 0: {timing.stage0_ms:.1f}ms ({timing.stage0_candidates} candidates)")
    print(f"  Stage 1: {timing.stage1_ms:.1f}ms ({timing.stage1_candidates} candidates)")
    print(
        f"  Stage 2: {timing.stage2_ms:.1f}ms "
        f"({timing.stage2_scored} scored, {timing.stage2_failed} failed)"
    )
    print(f"  Total:   {timing.total_ms:.1f}ms")


def _print_result(rank: int, result) -> None:
    print(f"{rank}. {_display_name(result.document)}")
    print(f"   ID: {result.document.id}")
    print(f"   Source Score: {result.source_score * 100:.1f}%")
    print(f"   Target Score: {result.target_score * 100:.1f}%")
    print(f"   Matched Chunks: {result.matched_chunks}")
    for section in result.sections:
        print(
            f"   Pages {section.source_start_page}-{section.source_end_page} ~ "
            f"{section.target_start_page}-{section.target_end_page} "
            f"({section.score * 100:.1f}%)"
        )


def _print_response(response) -> None:
    print(f"Source Document: {response.source_document_id}")
    print(f"Total Results: {len(response.results)}")
    print()
    _print_timing(response.timing)
    print()
    for rank, result in enumerate(response.results, start=1):
        _print_result(rank, result)
        print()


# ---------------------------------------------------------------------------
# COMMANDS
# ---------------------------------------------------------------------------


def run_search_cli() -> int:
    """CLI entry point for one similarity search."""
    from doc_similarity.similarity.orchestrator import SimilaritySearch

    _load_env()

    parser = argparse.ArgumentParser(description="Find documents similar to a source document")
    parser.add_argument("document_id", help="Source document id")
    _add_search_arguments(parser)
    _add_store_arguments(parser)
    args = parser.parse_args()
    _configure_logging(args.verbose)

    try:
        options = _options_from_args(args)
    except ValidationError as e:
        print(f"Invalid search options: {e}", file=sys.stderr)
        return 1

    store, _ = _build_store(args)
    try:
        response = SimilaritySearch(store).search(args.document_id, options)
    except SimilaritySearchError as e:
        print(f"Search failed: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()

    if args.json:
        print(json.dumps(response.to_dict(), indent=2))
    else:
        _print_response(response)
    return 0


def run_verify_threshold_cli() -> int:
    """CLI entry point for threshold verification."""
    from doc_similarity.similarity.orchestrator import SimilaritySearch
    from doc_similarity.similarity.verification import verify_threshold

    _load_env()

    parser = argparse.ArgumentParser(
        description="Check that a known dissimilar document is filtered out"
    )
    parser.add_argument("source_id", help="Source document id")
    parser.add_argument("not_similar_id", help="Document that must NOT match")
    _add_search_arguments(parser)
    _add_store_arguments(parser)
    args = parser.parse_args()
    _configure_logging(args.verbose)

    try:
        options = _options_from_args(args, stage2_parallel_workers=1)
    except ValidationError as e:
        print(f"Invalid search options: {e}", file=sys.stderr)
        return 1

    store, _ = _build_store(args)
    searcher = SimilaritySearch(store)
    try:
        verification = verify_threshold(
            searcher.search, args.source_id, args.not_similar_id, options
        )
    except SimilaritySearchError as e:
        print(f"Verification failed: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()

    if args.json:
        print(json.dumps(verification.to_dict(), indent=2))
        return 0 if verification.passed else 1

    print("=" * 60)
    print("THRESHOLD VERIFICATION")
    print("=" * 60)
    print(f"Source Document: {args.source_id}")
    print(f"Expected NOT Similar Document: {args.not_similar_id}")
    print(f"Threshold: {options.threshold:.2f} on {options.score_basis.value} score")
    print()
    print(f"Total Results: {len(verification.response.results)}")
    _print_timing(verification.response.timing)
    print()

    if verification.passed:
        print(">>> PASSED: expected NOT similar document was filtered out <<<")
    else:
        offending = verification.offending_result
        print(">>> FAILED: expected NOT similar document found in results <<<")
        print(f"  Source Score: {offending.source_score * 100:.1f}%")
        print(f"  Target Score: {offending.target_score * 100:.1f}%")
        print(f"  Matched Chunks: {offending.matched_chunks}")
        print(f"  Matched Source Chars: {offending.matched_source_characters}")
        print(f"  Matched Target Chars: {offending.matched_target_characters}")

    print()
    print("=" * 60)
    print(f"TOP {len(verification.top_results)} RESULTS")
    print("=" * 60)
    for rank, result in enumerate(verification.top_results, start=1):
        _print_result(rank, result)
        print()

    return 0 if verification.passed else 1


def run_benchmark_cli() -> int:
    """CLI entry point for the latency benchmark."""
    from doc_similarity.benchmark import get_baseline_store, run_benchmark
    from doc_similarity.retrieval.seeds import SOURCE_DOCUMENT_ID

    _load_env()

    parser = argparse.ArgumentParser(description="Benchmark search latency against a baseline")
    parser.add_argument(
        "--source",
        action="append",
        dest="sources",
        help="Source document id (repeatable; synthetic source by default)",
    )
    parser.add_argument("--iterations", type=int, default=5, help="Runs per source")
    parser.add_argument(
        "--update-baseline",
        action="store_true",
        help="Update baseline with current results",
    )
    parser.add_argument("--baseline-file", help="Baseline JSON path")
    parser.add_argument(
        "--tolerance",
        type=float,
        default=0.15,
        help="Allowed p95 increase before failing (default: 0.15)",
    )
    _add_search_arguments(parser)
    _add_store_arguments(parser)
    args = parser.parse_args()
    _configure_logging(args.verbose)

    sources = args.sources or [SOURCE_DOCUMENT_ID]
    try:
        options = _options_from_args(args)
    except ValidationError as e:
        print(f"Invalid search options: {e}", file=sys.stderr)
        return 1

    store, corpus_size = _build_store(args)
    try:
        result = run_benchmark(
            store,
            sources,
            options=options,
            iterations=args.iterations,
            latency_regression_threshold=args.tolerance,
            update_baseline=args.update_baseline,
            baseline_store=get_baseline_store(file_path=args.baseline_file),
            corpus_size=corpus_size,
        )
    finally:
        store.close()

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0 if result.passed else 1

    print("=" * 60)
    print("SEARCH LATENCY BENCHMARK")
    print("=" * 60)
    print(f"Queries: {result.metrics.query_count}")
    for name, stage in result.metrics.stages.items():
        print(f"  {name:<7} p50 {stage.p50_ms:8.1f}ms   p95 {stage.p95_ms:8.1f}ms")
    for check in result.regression_checks:
        status = "REGRESSION" if check.is_regression else "ok"
        print(f"  [{status}] {check.metric}: {check.change_percent:+.1f}%")
    for timing in result.query_timings:
        if not timing.success:
            print(f"  [FAILED] {timing.source_document_id}: {timing.error}")

    if result.passed:
        print("\n>>> BENCHMARK: PASSED <<<")
        return 0
    print(f"\n>>> BENCHMARK: FAILED ({result.failure_reason}) <<<")
    return 1


def run_demo_cli() -> int:
    """CLI entry point for an end-to-end demo on the synthetic corpus."""
    from doc_similarity.retrieval.seeds import (
        PARTIAL_OVERLAP_ID,
        SOURCE_DOCUMENT_ID,
        seed_embedding_store,
    )
    from doc_similarity.retrieval.store import InMemoryEmbeddingStore
    from doc_similarity.similarity.orchestrator import SimilaritySearch
    from doc_similarity.similarity.verification import verify_threshold

    _load_env()

    parser = argparse.ArgumentParser(description="Run the pipeline on a synthetic corpus")
    parser.add_argument("--unrelated", type=int, default=20, help="Filler documents")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()
    _configure_logging(args.verbose)

    store = InMemoryEmbeddingStore()
    count = seed_embedding_store(store, unrelated_count=args.unrelated)
    print(f"Seeded {count} synthetic documents")
    print()

    searcher = SimilaritySearch(store)
    options = SearchOptions.from_settings()
    response = searcher.search(SOURCE_DOCUMENT_ID, options)
    _print_response(response)

    verification = verify_threshold(searcher.search, SOURCE_DOCUMENT_ID, PARTIAL_OVERLAP_ID)
    status = "filtered out" if verification.passed else "still matches"
    print(f"Partial overlap {PARTIAL_OVERLAP_ID} {status} at {options.threshold:.2f}")
    return 0


def main() -> int:
    """
    Main CLI entry point with subcommands.

    Usage:
        doc-similarity search DOC_ID             # Search one document
        doc-similarity verify-threshold SRC NOT  # Check a false positive is gone
        doc-similarity benchmark                 # Latency regression check
        doc-similarity demo                      # Synthetic end-to-end run
    """
    from doc_similarity.observability import init_phoenix, shutdown_phoenix

    _load_env()

    parser = argparse.ArgumentParser(
        description="Multi-stage document similarity search",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  search            Find documents similar to a source document
  verify-threshold  Check that a known dissimilar document is filtered out
  benchmark         Benchmark per-stage latency against a baseline
  demo              Run the pipeline on a seeded synthetic corpus

Examples:
  doc-similarity search 68fb610f --threshold 0.92 --json
  doc-similarity verify-threshold policy-2024 policy-2024-appendix --synthetic
  doc-similarity benchmark --synthetic --update-baseline
        """,
    )

    parser.add_argument(
        "command",
        choices=["search", "verify-threshold", "benchmark", "demo"],
        help="Command to run",
    )

    # Parse just the command first
    args, remaining = parser.parse_known_args()

    commands = {
        "search": run_search_cli,
        "verify-threshold": run_verify_threshold_cli,
        "benchmark": run_benchmark_cli,
        "demo": run_demo_cli,
    }

    # Re-inject remaining args for the subcommand
    sys.argv = [sys.argv[0]] + remaining

    init_phoenix()
    try:
        return commands[args.command]()
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    finally:
        shutdown_phoenix()


if __name__ == "__main__":
    sys.exit(main())
