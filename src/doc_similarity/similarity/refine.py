"""
Stage 1 - refined ranking with a chunk-level signal.

A document centroid averages everything a document says. Two documents
that share one highly similar section inside otherwise unrelated content
end up with distant centroids, and documents of very different structure
can land close by accident. Stage 1 re-ranks Stage 0's survivors with the
best-matching chunk pair instead:

    refined_score = max over (source chunk, candidate chunk) of cosine similarity

It is monotonic with Stage 2 in the way that matters: a candidate with no
chunk pair above the chunk match threshold cannot score anything in Stage 2.
Cost is one normalised matrix product per candidate, no de-overlap, no
section assembly.
"""

from __future__ import annotations

import logging
import threading
from typing import Sequence

from doc_similarity.core import EmbeddingStore, SearchCancelled
from doc_similarity.similarity.alignment import DocumentProfile
from doc_similarity.similarity.models import SimilarityCandidate
from doc_similarity.similarity.vectors import cosine_matrix, normalize_rows, stack_embeddings

logger = logging.getLogger(__name__)


def max_chunk_pair_similarity(source: DocumentProfile, candidate_matrix) -> float:
    """Best cosine similarity between any source chunk and any candidate chunk."""
    if source.matrix.size == 0 or candidate_matrix.size == 0:
        return 0.0
    return float(cosine_matrix(source.matrix, candidate_matrix).max())


def refine_candidates(
    store: EmbeddingStore,
    source: DocumentProfile,
    candidates: Sequence[SimilarityCandidate],
    top_k: int,
    cancel_event: threading.Event | None = None,
) -> list[SimilarityCandidate]:
    """
    Re-score Stage 0 candidates and keep the top_k.

    Candidates whose chunk vectors live in another space, or cannot be
    stacked into one matrix, are excluded.
    A candidate whose chunks cannot be fetched keeps its Stage 0 score;
    Stage 2 decides whether it can be scored at all.

    Raises:
        SearchCancelled: cancel_event was set
    """
    if top_k <= 0:
        return []

    refined: list[SimilarityCandidate] = []
    for candidate in candidates:
        if cancel_event is not None and cancel_event.is_set():
            raise SearchCancelled(source.document.id, "stage1")

        try:
            chunks = store.get_chunks(candidate.document_id)
        except Exception as exc:
            logger.warning(
                f"Stage 1 could not load chunks for {candidate.document_id}, "
                f"keeping centroid score: {exc}"
            )
            refined.append(candidate.rescored(candidate.score, stage=1))
            continue

        try:
            matrix = normalize_rows(stack_embeddings(chunks))
        except ValueError as exc:
            logger.warning(
                f"Stage 1 excluded {candidate.document_id}: malformed chunk vectors: {exc}"
            )
            continue

        if chunks and matrix.shape[1] != source.dimension:
            logger.debug(
                f"Stage 1 excluded {candidate.document_id}: chunk dimension "
                f"{matrix.shape[1]} != {source.dimension}"
            )
            continue

        refined.append(
            candidate.rescored(max_chunk_pair_similarity(source, matrix), stage=1)
        )

    refined.sort(key=lambda c: (-c.score, c.document_id))
    logger.debug(f"Stage 1: {len(candidates)} candidates -> {min(len(refined), top_k)}")
    return refined[:top_k]
