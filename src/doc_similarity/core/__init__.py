"""
Core module - shared protocols, types and errors for the pipeline.

USAGE:
------
from doc_similarity.core import EmbeddingStore, IncompleteDocument

class MyEmbeddingStore:
    '''Implements EmbeddingStore protocol.'''
    ...
"""

from doc_similarity.core.errors import (
    CandidateScoringError,
    DocumentNotFound,
    EmbeddingStoreError,
    IncompleteDocument,
    InternalScoringError,
    ModelMismatch,
    SearchCancelled,
    SimilaritySearchError,
)
from doc_similarity.core.protocols import (
    # Protocols
    EmbeddingStore,
    # Data classes
    CentroidHit,
    DocumentTotals,
)

__all__ = [
    # Protocols
    "EmbeddingStore",
    # Data classes
    "CentroidHit",
    "DocumentTotals",
    # Errors
    "SimilaritySearchError",
    "DocumentNotFound",
    "IncompleteDocument",
    "ModelMismatch",
    "CandidateScoringError",
    "SearchCancelled",
    "InternalScoringError",
    "EmbeddingStoreError",
]
