"""
Retrieval module - read access to processed documents and chunk vectors.

This module provides:
- Document, Chunk: The stored models
- EmbeddingStoreConfig: Configuration for stores
- PgVectorEmbeddingStore: PostgreSQL production store
- InMemoryEmbeddingStore: Testing/development store
- get_embedding_store(): Factory function

Seed data lives in retrieval.seeds and is imported from there.

ARCHITECTURE:
-------------
1. Protocol defines the contract (in core.protocols)
2. Multiple implementations (PgVectorEmbeddingStore, InMemoryEmbeddingStore)
3. Factory function for instantiation
4. Test doubles for fast unit tests
"""

# Document models (must load before the stores)
from doc_similarity.retrieval.document import COMPLETED_STATUS, Chunk, Document

# Store implementations and factory
from doc_similarity.retrieval.store import (
    PGVECTOR_AVAILABLE,
    EmbeddingStoreConfig,
    InMemoryEmbeddingStore,
    PgVectorEmbeddingStore,
    get_embedding_store,
)

__all__ = [
    # Models
    "Document",
    "Chunk",
    "COMPLETED_STATUS",
    # Config
    "EmbeddingStoreConfig",
    "PGVECTOR_AVAILABLE",
    # Implementations
    "PgVectorEmbeddingStore",
    "InMemoryEmbeddingStore",
    # Factory
    "get_embedding_store",
]
