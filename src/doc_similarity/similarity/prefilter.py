"""
Stage 0 - candidate prefilter over document centroids.

The cheapest and least precise stage: one approximate nearest-neighbour
query against the centroid index. It only decides who gets looked at
more closely, never who is similar.
"""

from __future__ import annotations

import logging

from doc_similarity.core import EmbeddingStore, IncompleteDocument
from doc_similarity.retrieval.document import Document
from doc_similarity.similarity.models import SimilarityCandidate

logger = logging.getLogger(__name__)


def prefilter_candidates(
    store: EmbeddingStore,
    source: Document,
    top_k: int,
) -> list[SimilarityCandidate]:
    """
    Return up to top_k documents nearest to the source centroid.

    The source itself and documents embedded with another model are
    excluded. One extra neighbour is requested because the source is
    normally its own nearest neighbour.

    Raises:
        IncompleteDocument: the source has no centroid embedding
    """
    if source.centroid_embedding is None:
        raise IncompleteDocument(source.id, "centroid_embedding")
    if top_k <= 0:
        return []

    hits = store.approximate_nearest_centroids(
        source.centroid_embedding,
        top_k + 1,
        source.embedding_model,
    )

    candidates: list[SimilarityCandidate] = []
    seen: set[str] = set()
    for hit in hits:
        if hit.document_id == source.id or hit.document_id in seen:
            continue
        if hit.embedding_model != source.embedding_model:
            logger.debug(
                f"Stage 0 excluded {hit.document_id}: model {hit.embedding_model} "
                f"!= {source.embedding_model}"
            )
            continue
        seen.add(hit.document_id)
        candidates.append(
            SimilarityCandidate(
                document_id=hit.document_id,
                embedding_model=hit.embedding_model,
                score=hit.score,
                stage=0,
            )
        )

    candidates.sort(key=lambda c: (-c.score, c.document_id))
    logger.debug(f"Stage 0: {len(hits)} index hits -> {min(len(candidates), top_k)} candidates")
    return candidates[:top_k]
