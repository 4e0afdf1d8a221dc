"""
Shared fixtures for pipeline tests.

Chunk embeddings are unit vectors along coordinate axes: two chunks on the
same axis have cosine 1.0, chunks on different axes have cosine 0.0. That
keeps every expected score in the tests exact.
"""

import numpy as np
import pytest

from doc_similarity.config import reset_settings
from doc_similarity.observability import reset_config, reset_tracer
from doc_similarity.retrieval.document import Chunk, Document
from doc_similarity.retrieval.store import InMemoryEmbeddingStore
from doc_similarity.similarity.deoverlap import summarize_chunks

DIM = 8
MODEL = "text-embedding-005"


def axis_vector(axis: int, dim: int = DIM) -> np.ndarray:
    vector = np.zeros(dim)
    vector[axis] = 1.0
    return vector


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch):
    """Keep env-driven singletons from leaking between tests."""
    for name in (
        "STAGE0_TOP_K",
        "STAGE1_TOP_K",
        "STAGE2_PARALLEL_WORKERS",
        "STAGE2_THRESHOLD",
        "SIMILARITY_SCORE_BASIS",
        "CHUNK_MATCH_THRESHOLD",
        "PHOENIX_ENABLED",
        "TRACE_CANDIDATE_IDS",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    reset_config()
    reset_tracer()
    yield
    reset_settings()
    reset_config()
    reset_tracer()


@pytest.fixture
def build_document():
    """
    Factory for (Document, chunks) pairs.

    axes: one embedding axis per chunk, in chunk order
    sizes: characters per chunk (default 1000 each)
    overlap: characters each chunk shares with the previous one
    """

    def _build(
        doc_id,
        axes,
        sizes=None,
        overlap=0,
        model=MODEL,
        dim=DIM,
        **document_fields,
    ):
        sizes = sizes or [1000] * len(axes)
        chunks = []
        cursor = 0
        for index, (axis, size) in enumerate(zip(axes, sizes)):
            start = max(cursor - overlap, 0) if index else 0
            chunks.append(
                Chunk(
                    document_id=doc_id,
                    chunk_index=index,
                    embedding=axis_vector(axis, dim),
                    start_page=index + 1,
                    end_page=index + 1,
                    character_count=size,
                    char_start=start,
                    char_end=start + size,
                )
            )
            cursor = start + size

        totals = summarize_chunks(chunks)
        fields = {
            "centroid_embedding": np.mean([c.embedding for c in chunks], axis=0),
            "effective_chunk_count": totals.effective_chunk_count,
            "total_characters": totals.total_characters,
            "title": doc_id.replace("-", " ").title(),
        }
        fields.update(document_fields)
        return Document(id=doc_id, embedding_model=model, **fields), chunks

    return _build


@pytest.fixture
def scenario_store(build_document):
    """
    Source of 10000 characters and a candidate of 5000 characters.

    The candidate's five chunks align to the source's first three chunks,
    which cover 4500 source characters: source_score 0.45, target_score 1.0.
    """
    store = InMemoryEmbeddingStore()
    store.insert_document(
        *build_document(
            "source",
            axes=[0, 1, 2, 3, 4],
            sizes=[1500, 1500, 1500, 2500, 3000],
        )
    )
    store.insert_document(*build_document("candidate", axes=[0, 0, 1, 2, 2]))
    store.insert_document(*build_document("unrelated", axes=[5, 6, 7]))
    return store
