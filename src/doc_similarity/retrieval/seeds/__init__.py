"""
Seed data for the embedding store.

Synthetic vectors stand in for a processed document corpus, so the whole
funnel can run without an embedding provider or a database:
- Demos run end to end on an in-memory store
- Benchmarks use a corpus of controlled size
- Tests assert exact expected matches
"""

from doc_similarity.retrieval.seeds.synthetic_corpus import (
    EXCERPT_ID,
    FOREIGN_MODEL_ID,
    INCOMPLETE_ID,
    NEAR_DUPLICATE_ID,
    PARTIAL_OVERLAP_ID,
    SOURCE_DOCUMENT_ID,
    get_synthetic_corpus,
    seed_embedding_store,
)

__all__ = [
    "get_synthetic_corpus",
    "seed_embedding_store",
    "SOURCE_DOCUMENT_ID",
    "NEAR_DUPLICATE_ID",
    "EXCERPT_ID",
    "PARTIAL_OVERLAP_ID",
    "FOREIGN_MODEL_ID",
    "INCOMPLETE_ID",
]
