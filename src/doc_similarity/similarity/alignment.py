"""
Stage 2 - exact chunk alignment and scoring.

For one (source, candidate) pair:
1. De-overlap both chunk sets into character timelines
2. Compare every source chunk with every candidate chunk
3. Keep pairs at or above the chunk match threshold
4. Merge aligned pairs into page-range sections
5. Score matched characters against the stored de-overlapped totals

score_candidate() is a pure function of in-memory chunk data, so the exact
scoring can be tested with synthetic vectors and no store at all. The
thread pool that fans it out over candidates lives in score_candidates().

FAILURE ISOLATION:
------------------
Anything wrong with one candidate's data (fetch error, no chunks, missing
totals, malformed ranges, foreign vector space) becomes a
CandidateScoringError and only that candidate is dropped. An exception
raised by the alignment code itself is a bug that affects every candidate,
so it aborts the run as InternalScoringError.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from doc_similarity.core import (
    CandidateScoringError,
    DocumentTotals,
    EmbeddingStore,
    InternalScoringError,
    SearchCancelled,
)
from doc_similarity.retrieval.document import Chunk, Document
from doc_similarity.similarity.deoverlap import (
    CharacterSpan,
    CharacterTimeline,
    covered_characters,
    deoverlap,
)
from doc_similarity.similarity.models import SearchResult, SectionMatch, SimilarityCandidate
from doc_similarity.similarity.vectors import cosine_matrix, normalize_rows, stack_embeddings

logger = logging.getLogger(__name__)

# Page ranges this close are considered contiguous when merging sections
SECTION_PAGE_GAP = 1


# ---------------------------------------------------------------------------
# DOCUMENT PROFILE
# ---------------------------------------------------------------------------


@dataclass
class DocumentProfile:
    """Everything Stage 2 needs about one side of a comparison."""

    document: Document
    chunks: list[Chunk]
    matrix: np.ndarray
    timeline: CharacterTimeline
    totals: DocumentTotals

    @property
    def dimension(self) -> int:
        return self.matrix.shape[1] if self.matrix.ndim == 2 else 0

    @classmethod
    def build(
        cls,
        document: Document,
        chunks: Sequence[Chunk],
        totals: DocumentTotals | None = None,
    ) -> DocumentProfile:
        """
        Build a profile; falls back to the timeline's totals when none are stored.

        Raises:
            ValueError: the chunk windows are malformed
        """
        ordered = sorted(chunks, key=lambda c: c.chunk_index)
        timeline = deoverlap(ordered)
        return cls(
            document=document,
            chunks=ordered,
            matrix=normalize_rows(stack_embeddings(ordered)),
            timeline=timeline,
            totals=totals or timeline.totals(),
        )

    def span_of(self, chunk: Chunk) -> CharacterSpan:
        return self.timeline.chunk_spans[chunk.chunk_index]


# ---------------------------------------------------------------------------
# ALIGNMENT
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AlignedPair:
    """A source chunk and a candidate chunk judged to carry the same content."""

    source_chunk: Chunk
    target_chunk: Chunk
    similarity: float
    source_span: CharacterSpan
    target_span: CharacterSpan


def align_chunks(
    source: DocumentProfile,
    target: DocumentProfile,
    chunk_match_threshold: float,
) -> list[AlignedPair]:
    """Return every chunk pair at or above the threshold, in source order."""
    similarities = cosine_matrix(source.matrix, target.matrix)
    rows, cols = np.nonzero(similarities >= chunk_match_threshold)

    pairs = []
    for i, j in zip(rows.tolist(), cols.tolist()):
        source_chunk = source.chunks[i]
        target_chunk = target.chunks[j]
        pairs.append(
            AlignedPair(
                source_chunk=source_chunk,
                target_chunk=target_chunk,
                similarity=float(similarities[i, j]),
                source_span=source.span_of(source_chunk),
                target_span=target.span_of(target_chunk),
            )
        )
    return pairs


def _pages_touch(a: CharacterSpan, b: CharacterSpan, gap: int) -> bool:
    return a.start_page <= b.end_page + gap and b.start_page <= a.end_page + gap


def _find(parent: list[int], i: int) -> int:
    while parent[i] != i:
        parent[i] = parent[parent[i]]
        i = parent[i]
    return i


def assemble_sections(
    pairs: Sequence[AlignedPair],
    page_gap: int = SECTION_PAGE_GAP,
) -> list[SectionMatch]:
    """
    Merge aligned pairs into contiguous page-range sections.

    Two pairs belong to the same section when their page ranges are
    adjacent or overlapping on BOTH sides. Merging is transitive, so a run
    of sliding windows aligned to a run of sliding windows becomes one
    section instead of dozens of fragments.
    """
    if not pairs:
        return []

    parent = list(range(len(pairs)))
    order = sorted(
        range(len(pairs)),
        key=lambda i: (pairs[i].source_span.start_page, pairs[i].source_span.end_page),
    )

    # Sweep by source start page; later pairs start even further away
    for pos, i in enumerate(order):
        a = pairs[i]
        for j in order[pos + 1:]:
            b = pairs[j]
            if b.source_span.start_page > a.source_span.end_page + page_gap:
                break
            if _pages_touch(a.target_span, b.target_span, page_gap):
                root_i, root_j = _find(parent, i), _find(parent, j)
                if root_i != root_j:
                    parent[root_j] = root_i

    groups: dict[int, list[AlignedPair]] = {}
    for i, pair in enumerate(pairs):
        groups.setdefault(_find(parent, i), []).append(pair)

    sections = [_build_section(members) for members in groups.values()]
    sections.sort(
        key=lambda s: (
            s.source_start_page,
            s.target_start_page,
            s.source_end_page,
            s.target_end_page,
        )
    )
    return sections


def _build_section(members: Sequence[AlignedPair]) -> SectionMatch:
    weights = [max(p.source_span.length, 0) for p in members]
    total_weight = sum(weights)
    if total_weight > 0:
        score = sum(w * p.similarity for w, p in zip(weights, members)) / total_weight
    else:
        score = sum(p.similarity for p in members) / len(members)

    return SectionMatch(
        source_start_page=min(p.source_span.start_page for p in members),
        source_end_page=max(p.source_span.end_page for p in members),
        target_start_page=min(p.target_span.start_page for p in members),
        target_end_page=max(p.target_span.end_page for p in members),
        score=min(max(score, 0.0), 1.0),
        matched_source_characters=covered_characters(p.source_span for p in members),
        matched_target_characters=covered_characters(p.target_span for p in members),
        chunk_pairs=len(members),
    )


def _ratio(matched: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return min(max(matched / total, 0.0), 1.0)


def score_candidate(
    source: DocumentProfile,
    target: DocumentProfile,
    chunk_match_threshold: float,
) -> SearchResult:
    """
    Exact, page-aware similarity between the source and one candidate.

    Always returns a result, even for a candidate with no aligned chunks.
    Deciding what is similar enough belongs to the orchestrator.
    """
    pairs = align_chunks(source, target, chunk_match_threshold)

    matched_source = covered_characters(p.source_span for p in pairs)
    matched_target = covered_characters(p.target_span for p in pairs)

    return SearchResult(
        document=target.document,
        source_score=_ratio(matched_source, source.totals.total_characters),
        target_score=_ratio(matched_target, target.totals.total_characters),
        matched_source_characters=matched_source,
        matched_target_characters=matched_target,
        matched_chunks=len({p.source_chunk.chunk_index for p in pairs}),
        sections=assemble_sections(pairs),
    )


# ---------------------------------------------------------------------------
# PER-CANDIDATE LOADING
# ---------------------------------------------------------------------------


def load_candidate_profile(
    store: EmbeddingStore,
    source: DocumentProfile,
    candidate: SimilarityCandidate,
) -> DocumentProfile:
    """
    Fetch and validate one candidate's chunks and totals.

    Raises:
        CandidateScoringError: anything about this candidate prevents scoring
    """
    doc_id = candidate.document_id
    try:
        document = store.get_document(doc_id)
        chunks = store.get_chunks(doc_id)
        totals = store.get_document_totals(doc_id)
    except Exception as exc:
        raise CandidateScoringError(doc_id, f"fetch failed: {exc}", cause=exc) from exc

    if document is None:
        raise CandidateScoringError(doc_id, "document no longer exists")
    if document.embedding_model != source.document.embedding_model:
        raise CandidateScoringError(doc_id, f"embedding model changed to {document.embedding_model}")
    if totals is None or totals.total_characters <= 0:
        raise CandidateScoringError(doc_id, "missing document totals")
    if not chunks:
        raise CandidateScoringError(doc_id, "no chunks")

    try:
        profile = DocumentProfile.build(document, chunks, totals)
    except ValueError as exc:
        raise CandidateScoringError(doc_id, f"malformed chunks: {exc}", cause=exc) from exc

    if profile.dimension != source.dimension:
        raise CandidateScoringError(
            doc_id,
            f"chunk vector dimension {profile.dimension} != {source.dimension}",
        )
    return profile


# ---------------------------------------------------------------------------
# PARALLEL SCORING
# ---------------------------------------------------------------------------


@dataclass
class Stage2Outcome:
    """Scored candidates plus the number dropped by per-candidate failures."""

    results: list[SearchResult]
    failed: int = 0


def score_candidates(
    store: EmbeddingStore,
    source: DocumentProfile,
    candidates: Sequence[SimilarityCandidate],
    chunk_match_threshold: float,
    max_workers: int = 1,
    cancel_event: threading.Event | None = None,
) -> Stage2Outcome:
    """
    Score candidates on a bounded worker pool.

    At most max_workers candidates are in flight; the next one is only
    launched when a slot frees up and the search has not been cancelled.
    Completion order does not matter, the orchestrator re-sorts.

    Raises:
        SearchCancelled: cancel_event was set; partial results are discarded
        InternalScoringError: the alignment logic itself failed
    """
    source_id = source.document.id
    workers = max(1, max_workers)

    def cancelled() -> bool:
        return cancel_event is not None and cancel_event.is_set()

    def score_one(candidate: SimilarityCandidate) -> SearchResult:
        target = load_candidate_profile(store, source, candidate)
        return score_candidate(source, target, chunk_match_threshold)

    outcome = Stage2Outcome(results=[])
    pending = list(candidates)
    pending.reverse()
    in_flight: dict[Future, SimilarityCandidate] = {}

    with ThreadPoolExecutor(
        max_workers=workers,
        thread_name_prefix="stage2",
    ) as executor:
        try:
            while pending or in_flight:
                while pending and len(in_flight) < workers:
                    if cancelled():
                        raise SearchCancelled(source_id, "stage2")
                    candidate = pending.pop()
                    in_flight[executor.submit(score_one, candidate)] = candidate

                done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                for future in done:
                    candidate = in_flight.pop(future)
                    try:
                        outcome.results.append(future.result())
                    except CandidateScoringError as exc:
                        outcome.failed += 1
                        logger.warning(
                            f"Stage 2 dropped candidate {exc.document_id}: {exc.reason}"
                        )
                    except Exception as exc:
                        raise InternalScoringError(
                            f"Alignment failed while scoring {candidate.document_id} "
                            f"against {source_id}",
                            cause=exc,
                        ) from exc
        except BaseException:
            for future in in_flight:
                future.cancel()
            raise

    if cancelled():
        raise SearchCancelled(source_id, "stage2")

    return outcome
