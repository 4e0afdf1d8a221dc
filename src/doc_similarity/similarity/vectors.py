"""Vector helpers shared by the ranking and alignment stages."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from doc_similarity.retrieval.document import Chunk


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Calculate cosine similarity between two vectors (0.0 for zero vectors)."""
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.dot(a, b) / norm)


def stack_embeddings(chunks: Sequence[Chunk]) -> np.ndarray:
    """Stack chunk embeddings into an (n_chunks, dim) matrix."""
    if not chunks:
        return np.empty((0, 0), dtype=np.float64)
    return np.vstack([np.asarray(c.embedding, dtype=np.float64) for c in chunks])


def normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """L2-normalise each row. Zero rows stay zero."""
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


def cosine_matrix(left: np.ndarray, right: np.ndarray) -> np.ndarray:
    """Pairwise cosine similarities between the rows of two row-normalised matrices."""
    if left.size == 0 or right.size == 0:
        return np.zeros((left.shape[0], right.shape[0]), dtype=np.float64)
    return np.clip(left @ right.T, -1.0, 1.0)
