"""
Similarity pipeline data models.

These dataclasses provide a clear schema for:
1. Candidates flowing between the stages
2. Page-range sections produced by exact alignment
3. The per-query response returned to callers

Nothing here is persisted. A caller may cache a SearchResponse, the core
keeps no storage of its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from doc_similarity.retrieval.document import Document


# ---------------------------------------------------------------------------
# FUNNEL CANDIDATES
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SimilarityCandidate:
    """A document that survived a funnel stage, with that stage's estimate."""

    document_id: str
    embedding_model: str
    score: float
    stage: int = 0

    def rescored(self, score: float, stage: int) -> SimilarityCandidate:
        return SimilarityCandidate(
            document_id=self.document_id,
            embedding_model=self.embedding_model,
            score=score,
            stage=stage,
        )


# ---------------------------------------------------------------------------
# EXACT ALIGNMENT OUTPUT
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SectionMatch:
    """A contiguous page range of the candidate matched to one of the source."""

    source_start_page: int
    source_end_page: int
    target_start_page: int
    target_end_page: int
    score: float
    matched_source_characters: int
    matched_target_characters: int
    chunk_pairs: int

    def to_dict(self) -> dict:
        return {
            "source_pages": [self.source_start_page, self.source_end_page],
            "target_pages": [self.target_start_page, self.target_end_page],
            "score": round(self.score, 4),
            "matched_source_characters": self.matched_source_characters,
            "matched_target_characters": self.matched_target_characters,
            "chunk_pairs": self.chunk_pairs,
        }


@dataclass
class SearchResult:
    """Exact similarity between the source document and one candidate."""

    document: Document
    source_score: float
    target_score: float
    matched_source_characters: int
    matched_target_characters: int
    matched_chunks: int
    sections: list[SectionMatch] = field(default_factory=list)
    primary_score: float | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "document": self.document.to_dict(),
            "scores": {
                "source_score": self.source_score,
                "target_score": self.target_score,
                "primary_score": self.primary_score,
                "matched_source_characters": self.matched_source_characters,
                "matched_target_characters": self.matched_target_characters,
            },
            "matched_chunks": self.matched_chunks,
            "sections": [s.to_dict() for s in self.sections],
        }


# ---------------------------------------------------------------------------
# RESPONSE
# ---------------------------------------------------------------------------


@dataclass
class Timing:
    """Per-stage wall-clock time and funnel sizes for one query."""

    stage0_ms: float = 0.0
    stage1_ms: float = 0.0
    stage2_ms: float = 0.0
    total_ms: float = 0.0
    stage0_candidates: int = 0
    stage1_candidates: int = 0
    stage2_scored: int = 0
    stage2_failed: int = 0

    def to_dict(self) -> dict:
        return {
            "stage0_ms": round(self.stage0_ms, 2),
            "stage1_ms": round(self.stage1_ms, 2),
            "stage2_ms": round(self.stage2_ms, 2),
            "total_ms": round(self.total_ms, 2),
            "stage0_candidates": self.stage0_candidates,
            "stage1_candidates": self.stage1_candidates,
            "stage2_scored": self.stage2_scored,
            "stage2_failed": self.stage2_failed,
        }


@dataclass
class SearchResponse:
    """Complete response of one search call."""

    source_document_id: str
    results: list[SearchResult]
    timing: Timing

    def to_dict(self) -> dict:
        return {
            "source_document_id": self.source_document_id,
            "results": [r.to_dict() for r in self.results],
            "total": len(self.results),
            "timing": self.timing.to_dict(),
        }
