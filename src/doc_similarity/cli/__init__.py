"""
CLI module - unified command-line interface.

Provides entry points for:
- Running a similarity search
- Verifying a threshold change against a known false positive
- Benchmarking latency against a stored baseline
- Running an end-to-end demo on synthetic data
"""

from doc_similarity.cli.commands import (
    main,
    run_benchmark_cli,
    run_demo_cli,
    run_search_cli,
    run_verify_threshold_cli,
)

__all__ = [
    "main",
    "run_search_cli",
    "run_verify_threshold_cli",
    "run_benchmark_cli",
    "run_demo_cli",
]
