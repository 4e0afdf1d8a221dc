"""
Document and chunk models for the embedding store.

Single responsibility: Define the structure of processed documents
and their chunk windows as the similarity pipeline reads them.

"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

COMPLETED_STATUS = "completed"


@dataclass
class Document:
    """
    A processed document as stored by the ingestion pipeline.

    centroid_embedding and total_characters are only set once text
    extraction and chunk embedding have completed. A document without
    both never takes part in a similarity search.
    """
    id: str
    embedding_model: str
    centroid_embedding: np.ndarray | None = None
    effective_chunk_count: int | None = None
    total_characters: int | None = None
    title: str | None = None
    filename: str | None = None
    page_count: int | None = None
    status: str = COMPLETED_STATUS

    @property
    def is_searchable(self) -> bool:
        """True when the precomputed vectors and totals are present."""
        return (
            self.centroid_embedding is not None
            and self.total_characters is not None
            and self.status == COMPLETED_STATUS
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization (vectors omitted)."""
        return {
            "id": self.id,
            "title": self.title,
            "filename": self.filename,
            "page_count": self.page_count,
            "embedding_model": self.embedding_model,
            "effective_chunk_count": self.effective_chunk_count,
            "total_characters": self.total_characters,
        }


@dataclass
class Chunk:
    """
    One embedded text window of a document.

    Windows produced by the upstream chunker may overlap, both in page
    range and in characters. char_start/char_end are document-level
    offsets (end exclusive) when the chunker recorded them.
    """
    document_id: str
    chunk_index: int
    embedding: np.ndarray
    start_page: int
    end_page: int
    character_count: int
    char_start: int | None = None
    char_end: int | None = None

    @property
    def has_offsets(self) -> bool:
        return self.char_start is not None and self.char_end is not None

    @property
    def page_span(self) -> tuple[int, int]:
        return (self.start_page, self.end_page)
