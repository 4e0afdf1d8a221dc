"""
Typed failures surfaced by the similarity search pipeline.

Callers (an HTTP handler, the CLI) branch on these classes rather than on
error strings. Every error the core raises derives from SimilaritySearchError.

RECOVERY MATRIX:
----------------
- DocumentNotFound / IncompleteDocument: fatal, raised before the index is touched
- ModelMismatch: never escapes a search, candidates are excluded silently
- CandidateScoringError: recovered inside Stage 2, candidate dropped
- SearchCancelled: caller abort, partial results discarded
- InternalScoringError: fatal, nothing retried
- EmbeddingStoreError: store backend failure outside a per-candidate context
"""

from __future__ import annotations


class SimilaritySearchError(Exception):
    """Base class for all similarity search failures."""


class DocumentNotFound(SimilaritySearchError):
    """The requested document does not exist in the embedding store."""

    def __init__(self, document_id: str):
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id


class IncompleteDocument(SimilaritySearchError):
    """The document lacks the precomputed vectors or totals a search needs."""

    def __init__(self, document_id: str, missing: str):
        super().__init__(f"Document {document_id} is not fully processed: missing {missing}")
        self.document_id = document_id
        self.missing = missing


class ModelMismatch(SimilaritySearchError):
    """Two documents live in different embedding spaces."""

    def __init__(self, document_id: str, expected_model: str, actual_model: str):
        super().__init__(
            f"Document {document_id} uses embedding model {actual_model!r}, "
            f"expected {expected_model!r}"
        )
        self.document_id = document_id
        self.expected_model = expected_model
        self.actual_model = actual_model


class CandidateScoringError(SimilaritySearchError):
    """Stage 2 could not score one candidate. The rest of the batch continues."""

    def __init__(self, document_id: str, reason: str, *, cause: Exception | None = None):
        super().__init__(f"Scoring failed for candidate {document_id}: {reason}")
        self.document_id = document_id
        self.reason = reason
        self.__cause__ = cause


class SearchCancelled(SimilaritySearchError):
    """The caller cancelled the search before it completed."""

    def __init__(self, source_document_id: str, stage: str):
        super().__init__(f"Search for {source_document_id} cancelled during {stage}")
        self.source_document_id = source_document_id
        self.stage = stage


class InternalScoringError(SimilaritySearchError):
    """Unexpected failure inside the alignment logic. Aborts the whole run."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.__cause__ = cause


class EmbeddingStoreError(SimilaritySearchError):
    """The embedding store backend could not be reached or queried."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.__cause__ = cause
