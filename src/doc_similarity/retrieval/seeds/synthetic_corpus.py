"""
Synthetic document corpus.

Deterministic chunk vectors for development, demos and benchmarks. Each
chunk embeds one "topic" vector plus a little noise, so two chunks that
share a topic are near duplicates and everything else is close to
orthogonal. Chunks are sliding windows that overlap their neighbours by a
fixed number of characters, the way the real chunker emits them.

CORPUS LAYOUT:
--------------
- policy-2024: the reference source document (10 topics)
- policy-2024-copy: near duplicate of the source
- policy-2024-excerpt: the second half of the source, re-paginated
- policy-2024-appendix: half the source plus unrelated material
- unrelated-NNN: random topics only
- policy-2024-legacy-model: a copy embedded with another model
- policy-2024-draft: a copy that has not finished processing
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

import numpy as np

from doc_similarity.retrieval.document import Chunk, Document
from doc_similarity.similarity.deoverlap import summarize_chunks

if TYPE_CHECKING:
    from doc_similarity.core import EmbeddingStore

SOURCE_DOCUMENT_ID = "policy-2024"
NEAR_DUPLICATE_ID = "policy-2024-copy"
EXCERPT_ID = "policy-2024-excerpt"
PARTIAL_OVERLAP_ID = "policy-2024-appendix"
FOREIGN_MODEL_ID = "policy-2024-legacy-model"
INCOMPLETE_ID = "policy-2024-draft"

DEFAULT_MODEL = "text-embedding-005"
LEGACY_MODEL = "text-embedding-004"

CHUNK_CHARACTERS = 1000
CHUNK_OVERLAP = 200


def _unit(vector: np.ndarray) -> np.ndarray:
    return vector / np.linalg.norm(vector)


def _random_topics(rng: np.random.Generator, count: int, dim: int) -> list[np.ndarray]:
    return [_unit(rng.standard_normal(dim)) for _ in range(count)]


def _build_document(
    document_id: str,
    title: str,
    topics: list[np.ndarray],
    rng: np.random.Generator,
    noise: float = 0.05,
    embedding_model: str = DEFAULT_MODEL,
) -> tuple[Document, list[Chunk]]:
    """Lay topics out as overlapping windows, two pages each."""
    step = CHUNK_CHARACTERS - CHUNK_OVERLAP
    chunks = []
    for index, topic in enumerate(topics):
        jitter = _unit(rng.standard_normal(topic.shape[0])) * noise
        chunks.append(
            Chunk(
                document_id=document_id,
                chunk_index=index,
                embedding=_unit(topic + jitter),
                start_page=index + 1,
                end_page=index + 2,
                character_count=CHUNK_CHARACTERS,
                char_start=index * step,
                char_end=index * step + CHUNK_CHARACTERS,
            )
        )

    totals = summarize_chunks(chunks)
    document = Document(
        id=document_id,
        embedding_model=embedding_model,
        centroid_embedding=np.mean([c.embedding for c in chunks], axis=0),
        effective_chunk_count=totals.effective_chunk_count,
        total_characters=totals.total_characters,
        title=title,
        filename=f"{document_id}.pdf",
        page_count=len(topics) + 1,
    )
    return document, chunks


def get_synthetic_corpus(
    unrelated_count: int = 20,
    dim: int = 64,
    seed: int = 7,
) -> list[tuple[Document, list[Chunk]]]:
    """
    Build the synthetic corpus.

    The same arguments always produce the same vectors.

    Args:
        unrelated_count: Number of filler documents with random topics
        dim: Embedding dimension
        seed: RNG seed
    """
    rng = np.random.default_rng(seed)
    source_topics = _random_topics(rng, 10, dim)

    corpus = [
        _build_document(SOURCE_DOCUMENT_ID, "Travel Policy 2024", source_topics, rng),
        _build_document(
            NEAR_DUPLICATE_ID, "Travel Policy 2024 (scan)", source_topics, rng, noise=0.08
        ),
        _build_document(
            EXCERPT_ID, "Travel Policy 2024 - Reimbursement", source_topics[5:], rng
        ),
        _build_document(
            PARTIAL_OVERLAP_ID,
            "Travel Policy Appendix",
            source_topics[:5] + _random_topics(rng, 5, dim),
            rng,
        ),
    ]

    for i in range(unrelated_count):
        corpus.append(
            _build_document(
                f"unrelated-{i:03d}",
                f"Unrelated Document {i}",
                _random_topics(rng, int(rng.integers(4, 13)), dim),
                rng,
            )
        )

    corpus.append(
        _build_document(
            FOREIGN_MODEL_ID,
            "Travel Policy 2024 (legacy embeddings)",
            source_topics,
            rng,
            embedding_model=LEGACY_MODEL,
        )
    )

    draft, draft_chunks = _build_document(
        INCOMPLETE_ID, "Travel Policy 2025 (draft)", source_topics, rng
    )
    corpus.append(
        (
            replace(
                draft,
                centroid_embedding=None,
                effective_chunk_count=None,
                total_characters=None,
                status="processing",
            ),
            draft_chunks,
        )
    )
    return corpus


def seed_embedding_store(store: EmbeddingStore, **corpus_kwargs) -> int:
    """
    Seed an embedding store with the synthetic corpus.

    Works with PgVectorEmbeddingStore, InMemoryEmbeddingStore, or any
    store exposing insert_document/insert_documents_batch.

    Returns:
        Number of documents inserted
    """
    corpus = get_synthetic_corpus(**corpus_kwargs)

    # Use batch insert if available, otherwise insert one by one
    if hasattr(store, "insert_documents_batch"):
        store.insert_documents_batch(corpus)
    elif hasattr(store, "insert_document"):
        for document, chunks in corpus:
            store.insert_document(document, chunks)
    else:
        raise TypeError(
            f"Store {type(store).__name__} does not support document insertion"
        )
    return len(corpus)
