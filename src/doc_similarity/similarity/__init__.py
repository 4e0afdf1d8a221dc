"""
Similarity module - the multi-stage document similarity funnel.

This module provides:
- SimilaritySearch / search(): The orchestrator
- SearchOptions, ScoreBasis: The request contract
- SearchResponse, SearchResult, SectionMatch, Timing: The response
- prefilter_candidates, refine_candidates, score_candidates: The stages
- deoverlap(): Chunk window de-overlap
- verify_threshold(): Check that a known dissimilar document is filtered out

ARCHITECTURE:
-------------
Stage 0 (centroid index) -> Stage 1 (best chunk pair) -> Stage 2 (exact
alignment, parallel) -> threshold. Each stage is a plain function taking a
candidate list and returning one, so each can be tested on its own.
"""

from doc_similarity.similarity.deoverlap import (
    CharacterSpan,
    CharacterTimeline,
    deoverlap,
    merge_spans,
    summarize_chunks,
)
from doc_similarity.similarity.models import (
    SearchResponse,
    SearchResult,
    SectionMatch,
    SimilarityCandidate,
    Timing,
)
from doc_similarity.similarity.options import ScoreBasis, SearchOptions
from doc_similarity.similarity.prefilter import prefilter_candidates
from doc_similarity.similarity.alignment import (
    DocumentProfile,
    Stage2Outcome,
    assemble_sections,
    score_candidate,
    score_candidates,
)
from doc_similarity.similarity.refine import refine_candidates
from doc_similarity.similarity.orchestrator import (
    SimilaritySearch,
    apply_threshold,
    search,
)
from doc_similarity.similarity.verification import (
    ThresholdVerification,
    verify_threshold,
)

__all__ = [
    # Orchestrator
    "SimilaritySearch",
    "search",
    "apply_threshold",
    # Options
    "SearchOptions",
    "ScoreBasis",
    # Models
    "SimilarityCandidate",
    "SectionMatch",
    "SearchResult",
    "SearchResponse",
    "Timing",
    # Stages
    "prefilter_candidates",
    "refine_candidates",
    "score_candidate",
    "score_candidates",
    "assemble_sections",
    "DocumentProfile",
    "Stage2Outcome",
    # De-overlap
    "CharacterSpan",
    "CharacterTimeline",
    "deoverlap",
    "merge_spans",
    "summarize_chunks",
    # Verification
    "ThresholdVerification",
    "verify_threshold",
]
