"""
Baseline storage - Protocol and implementations for latency baselines.

1. Protocol defines the interface
2. FileBaselineStore for CI runs (persistent JSON)
3. InMemoryBaselineStore for testing (fast, no I/O)
4. Factory function for convenience
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_BASELINE_FILE = ".similarity_baseline.json"


# ---------------------------------------------------------------------------
# BASELINE DATA MODEL
# ---------------------------------------------------------------------------


@dataclass
class LatencyBaseline:
    """Stored latency baseline from previous runs.

    These values represent the "expected" search latency on a corpus of
    corpus_size documents. Deviations beyond the tolerance are regressions.
    """

    p50_total_ms: float
    p95_total_ms: float
    p95_stage0_ms: float
    p95_stage1_ms: float
    p95_stage2_ms: float
    corpus_size: int | None = None
    run_count: int = 1

    def p95(self, stage: str) -> float:
        return getattr(self, f"p95_{stage}_ms")


# ---------------------------------------------------------------------------
# BASELINE STORE PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class BaselineStore(Protocol):
    """Protocol for baseline storage implementations."""

    def load(self) -> LatencyBaseline | None:
        """Load baseline, returns None if not found."""
        ...

    def save(self, baseline: LatencyBaseline) -> None:
        """Save baseline."""
        ...


# ---------------------------------------------------------------------------
# FILE-BASED IMPLEMENTATION
# ---------------------------------------------------------------------------


class FileBaselineStore:
    """Baseline store backed by a JSON file.

    Persists the baseline between CI runs to detect latency regressions
    across commits.
    """

    def __init__(self, file_path: Path | str | None = None):
        if file_path is None:
            file_path = Path.cwd() / DEFAULT_BASELINE_FILE
        self._path = Path(file_path)

    @property
    def path(self) -> Path:
        """Get the baseline file path."""
        return self._path

    def load(self) -> LatencyBaseline | None:
        """Load baseline from JSON file. An unreadable file counts as no baseline."""
        if not self._path.exists():
            return None

        try:
            with open(self._path) as f:
                data = json.load(f)
            return LatencyBaseline(**data)
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Could not load baseline from {self._path}: {e}")
            return None

    def save(self, baseline: LatencyBaseline) -> None:
        """Save baseline to JSON file."""
        with open(self._path, "w") as f:
            json.dump(asdict(baseline), f, indent=2)


# ---------------------------------------------------------------------------
# IN-MEMORY IMPLEMENTATION (Testing)
# ---------------------------------------------------------------------------


class InMemoryBaselineStore:
    """Test baseline store - no file I/O."""

    def __init__(self, initial_baseline: LatencyBaseline | None = None):
        self._baseline = initial_baseline
        self._save_called = False

    @property
    def save_called(self) -> bool:
        """Check if save was called (for test assertions)."""
        return self._save_called

    @property
    def current_baseline(self) -> LatencyBaseline | None:
        return self._baseline

    def load(self) -> LatencyBaseline | None:
        return self._baseline

    def save(self, baseline: LatencyBaseline) -> None:
        self._baseline = baseline
        self._save_called = True


# ---------------------------------------------------------------------------
# FACTORY FUNCTION
# ---------------------------------------------------------------------------


def get_baseline_store(
    use_file: bool = True,
    file_path: Path | str | None = None,
    initial_baseline: LatencyBaseline | None = None,
) -> BaselineStore:
    """
    Factory function for baseline stores.

    Args:
        use_file: If True, use FileBaselineStore. If False, use InMemoryBaselineStore.
        file_path: Custom path for FileBaselineStore.
        initial_baseline: Initial baseline for InMemoryBaselineStore.

    Example:
        # CI
        store = get_baseline_store(file_path="benchmarks/.similarity_baseline.json")

        # Testing
        store = get_baseline_store(
            use_file=False,
            initial_baseline=LatencyBaseline(...)
        )
    """
    if use_file:
        return FileBaselineStore(file_path)
    return InMemoryBaselineStore(initial_baseline)
