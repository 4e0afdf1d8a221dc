"""
Core protocols defining contracts for the similarity pipeline.

The pipeline never talks to a database directly. Everything it reads goes
through the EmbeddingStore protocol, so every stage can be exercised with
the in-memory store and synthetic vectors.

PATTERN:
- Protocol defines the contract
- Multiple implementations (PgVectorEmbeddingStore, InMemoryEmbeddingStore)
- Factory function for instantiation
- Test doubles for fast unit tests

INTERVIEW TALKING POINT:
------------------------
"The embedding store is a read-only collaborator behind a Protocol. Stage 0
needs an approximate index, Stages 1 and 2 only need chunk vectors and
totals. Because the stages take candidate lists in and hand candidate lists
out, the exact scoring code has no idea whether pgvector exists."
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import numpy as np

if TYPE_CHECKING:
    from doc_similarity.retrieval.document import Chunk, Document


# ---------------------------------------------------------------------------
# STORE DATA CLASSES
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DocumentTotals:
    """De-overlapped size of a document, used as score denominators."""
    effective_chunk_count: int
    total_characters: int


@dataclass(frozen=True)
class CentroidHit:
    """One neighbour returned by the approximate centroid index."""
    document_id: str
    score: float
    embedding_model: str


# ---------------------------------------------------------------------------
# EMBEDDING STORE PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class EmbeddingStore(Protocol):
    """
    Contract for read access to document centroids and chunk vectors.

    Implementations:
    - PgVectorEmbeddingStore (production with PostgreSQL + pgvector)
    - InMemoryEmbeddingStore (testing/development)

    Implementations must support concurrent reads from Stage 2 workers.
    """

    def get_document(self, document_id: str) -> Document | None:
        """Return the document record, or None if it does not exist."""
        ...

    def get_document_centroid(self, document_id: str) -> np.ndarray | None:
        """Return the centroid vector, or None when missing."""
        ...

    def approximate_nearest_centroids(
        self,
        vector: np.ndarray,
        k: int,
        model_tag: str,
    ) -> list[CentroidHit]:
        """Return up to k completed documents of model_tag, nearest first."""
        ...

    def get_chunks(self, document_id: str) -> list[Chunk]:
        """Return the document's chunks ordered by chunk_index."""
        ...

    def get_document_totals(self, document_id: str) -> DocumentTotals | None:
        """Return de-overlapped totals, or None when not computed yet."""
        ...
