"""
Search options - the request contract of the orchestrator.

Pydantic validates the knobs once, at the edge, so the stages can trust
them: funnel sizes are positive, Stage 1 never asks for more than Stage 0
produced, and the threshold is a fraction.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from doc_similarity.config import SearchSettings, get_settings


class ScoreBasis(str, Enum):
    """Which score (or combination) the inclusion threshold applies to."""

    SOURCE = "source"
    TARGET = "target"
    MAX = "max"
    MIN = "min"
    MEAN = "mean"

    def primary_score(self, source_score: float, target_score: float) -> float:
        if self is ScoreBasis.SOURCE:
            return source_score
        if self is ScoreBasis.TARGET:
            return target_score
        if self is ScoreBasis.MAX:
            return max(source_score, target_score)
        if self is ScoreBasis.MIN:
            return min(source_score, target_score)
        return (source_score + target_score) / 2


class SearchOptions(BaseModel):
    """Options for one similarity search."""

    model_config = ConfigDict(frozen=True)

    stage0_top_k: int = Field(default=600, ge=1, description="Centroid prefilter size")
    stage1_top_k: int = Field(default=250, ge=1, description="Refined ranking size")
    stage2_parallel_workers: int = Field(default=4, ge=1, description="Exact scoring workers")
    threshold: float = Field(default=0.90, ge=0.0, le=1.0, description="Inclusion threshold")
    score_basis: ScoreBasis = Field(default=ScoreBasis.MAX)
    chunk_match_threshold: float = Field(default=0.85, ge=-1.0, le=1.0)

    @model_validator(mode="after")
    def _check_funnel(self) -> SearchOptions:
        if self.stage1_top_k > self.stage0_top_k:
            raise ValueError(
                f"stage1_top_k ({self.stage1_top_k}) must not exceed "
                f"stage0_top_k ({self.stage0_top_k})"
            )
        return self

    @classmethod
    def from_settings(cls, settings: SearchSettings | None = None, **overrides) -> SearchOptions:
        """
        Build options from configured defaults, applying explicit overrides.

        A configured stage1_top_k larger than an overridden stage0_top_k is
        lowered to it; an explicit stage1_top_k is never adjusted.
        """
        settings = settings or get_settings()
        values = {
            "stage0_top_k": settings.stage0_top_k,
            "stage1_top_k": settings.stage1_top_k,
            "stage2_parallel_workers": settings.stage2_parallel_workers,
            "threshold": settings.threshold,
            "score_basis": settings.score_basis,
            "chunk_match_threshold": settings.chunk_match_threshold,
        }
        explicit = {k: v for k, v in overrides.items() if v is not None}
        values.update(explicit)
        if "stage1_top_k" not in explicit:
            values["stage1_top_k"] = min(values["stage1_top_k"], values["stage0_top_k"])
        return cls(**values)
