"""
Search Configuration

Loads the funnel sizes and threshold policy from environment variables.
These are tuning knobs, not constants: the inclusion threshold in particular
is expected to move as false positives are reported.
"""

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value else default


@dataclass
class SearchSettings:
    """Default options for the similarity pipeline.

    Environment Variables:
        STAGE0_TOP_K: Candidates kept by the centroid prefilter (default: 600)
        STAGE1_TOP_K: Candidates kept by refined ranking (default: 250)
        STAGE2_PARALLEL_WORKERS: Worker threads for exact scoring (default: 4)
        STAGE2_THRESHOLD: Inclusion threshold on the primary score (default: 0.90)
        SIMILARITY_SCORE_BASIS: source | target | max | min | mean (default: max)
        CHUNK_MATCH_THRESHOLD: Cosine similarity for a chunk pair to align (default: 0.85)
    """

    stage0_top_k: int = 600
    stage1_top_k: int = 250
    stage2_parallel_workers: int = 4
    threshold: float = 0.90
    score_basis: str = "max"
    chunk_match_threshold: float = 0.85

    @classmethod
    def from_env(cls) -> "SearchSettings":
        """Load settings from environment variables."""
        return cls(
            stage0_top_k=_env_int("STAGE0_TOP_K", 600),
            stage1_top_k=_env_int("STAGE1_TOP_K", 250),
            stage2_parallel_workers=_env_int("STAGE2_PARALLEL_WORKERS", 4),
            threshold=_env_float("STAGE2_THRESHOLD", 0.90),
            score_basis=os.environ.get("SIMILARITY_SCORE_BASIS", "max").strip().lower(),
            chunk_match_threshold=_env_float("CHUNK_MATCH_THRESHOLD", 0.85),
        )


# Global settings singleton
_settings: SearchSettings | None = None


def get_settings() -> SearchSettings:
    """Get the global search settings (lazy-loaded from env)."""
    global _settings
    if _settings is None:
        _settings = SearchSettings.from_env()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
