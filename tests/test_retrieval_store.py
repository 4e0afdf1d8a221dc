"""
Unit Tests for InMemoryEmbeddingStore and the seed corpus

Tests the store protocol and the in-memory double every other test relies on.

STAFF ENGINEER PATTERNS:
------------------------
1. Test through the protocol interface
2. Verify the filters Stage 0 depends on (model, completeness)
3. Pin the synthetic corpus shape the demo and benchmark use
"""

import numpy as np
import pytest

from doc_similarity.core import EmbeddingStore
from doc_similarity.retrieval.document import Document
from doc_similarity.retrieval.seeds import (
    FOREIGN_MODEL_ID,
    INCOMPLETE_ID,
    SOURCE_DOCUMENT_ID,
    get_synthetic_corpus,
    seed_embedding_store,
)
from doc_similarity.retrieval.store import InMemoryEmbeddingStore

from conftest import MODEL, axis_vector


@pytest.fixture
def store(build_document):
    store = InMemoryEmbeddingStore()
    store.insert_document(*build_document("a", axes=[0, 1]))
    store.insert_document(*build_document("b", axes=[0, 2]))
    store.insert_document(*build_document("c", axes=[3]))
    store.insert_document(*build_document("legacy", axes=[0, 1], model="legacy-model"))
    store.insert_document(
        *build_document("pending", axes=[0, 1], status="processing")
    )
    return store


# ---------------------------------------------------------------------------
# PROTOCOL
# ---------------------------------------------------------------------------


class TestProtocol:
    """Test the in-memory store satisfies the protocol."""

    def test_is_embedding_store(self):
        assert isinstance(InMemoryEmbeddingStore(), EmbeddingStore)

    def test_len(self, store):
        assert len(store) == 5


# ---------------------------------------------------------------------------
# CENTROID SEARCH
# ---------------------------------------------------------------------------


class TestApproximateNearestCentroids:
    """Test centroid search filters and ordering."""

    def test_ranked_by_cosine(self, store):
        hits = store.approximate_nearest_centroids(axis_vector(1), 10, MODEL)

        assert [h.document_id for h in hits] == ["a", "b", "c"]
        assert hits[0].score > hits[1].score

    def test_filters_model(self, store):
        hits = store.approximate_nearest_centroids(axis_vector(0), 10, "legacy-model")

        assert [h.document_id for h in hits] == ["legacy"]

    def test_skips_incomplete_documents(self, store):
        hits = store.approximate_nearest_centroids(axis_vector(0), 10, MODEL)

        assert "pending" not in [h.document_id for h in hits]

    def test_limit(self, store):
        assert len(store.approximate_nearest_centroids(axis_vector(0), 1, MODEL)) == 1

    def test_counts_queries(self, store):
        store.approximate_nearest_centroids(axis_vector(0), 1, MODEL)
        store.approximate_nearest_centroids(axis_vector(0), 0, MODEL)

        assert store.centroid_queries == 2


# ---------------------------------------------------------------------------
# DOCUMENT READS
# ---------------------------------------------------------------------------


class TestDocumentReads:
    """Test getters for documents, chunks and totals."""

    def test_get_document(self, store):
        assert store.get_document("a").id == "a"
        assert store.get_document("missing") is None

    def test_get_document_centroid(self, store):
        np.testing.assert_allclose(store.get_document_centroid("c"), axis_vector(3))
        assert store.get_document_centroid("missing") is None

    def test_chunks_ordered_by_index(self, build_document):
        store = InMemoryEmbeddingStore()
        doc, chunks = build_document("a", axes=[0, 1, 2])
        store.insert_document(doc, list(reversed(chunks)))

        assert [c.chunk_index for c in store.get_chunks("a")] == [0, 1, 2]

    def test_get_chunks_returns_copy(self, store):
        store.get_chunks("a").clear()

        assert len(store.get_chunks("a")) == 2

    def test_totals(self, store):
        totals = store.get_document_totals("a")

        assert totals.total_characters == 2000
        assert totals.effective_chunk_count == 2

    def test_totals_missing(self):
        store = InMemoryEmbeddingStore()
        store.insert_document(Document(id="raw", embedding_model=MODEL))

        assert store.get_document_totals("raw") is None

    def test_reinsert_without_chunks_keeps_chunks(self, store):
        store.insert_document(store.get_document("a"))

        assert len(store.get_chunks("a")) == 2


# ---------------------------------------------------------------------------
# SEED CORPUS
# ---------------------------------------------------------------------------


class TestSyntheticCorpus:
    """Test the seeded corpus."""

    def test_deterministic(self):
        first = get_synthetic_corpus(unrelated_count=3)
        second = get_synthetic_corpus(unrelated_count=3)

        for (doc_a, chunks_a), (doc_b, chunks_b) in zip(first, second):
            assert doc_a.id == doc_b.id
            np.testing.assert_array_equal(chunks_a[0].embedding, chunks_b[0].embedding)

    def test_totals_are_deoverlapped(self):
        corpus = dict((doc.id, (doc, chunks)) for doc, chunks in get_synthetic_corpus(0))
        source, chunks = corpus[SOURCE_DOCUMENT_ID]

        assert source.total_characters < sum(c.character_count for c in chunks)
        assert source.total_characters == 8200

    def test_seed_store(self):
        store = InMemoryEmbeddingStore()

        count = seed_embedding_store(store, unrelated_count=5)

        assert count == len(store) == 11
        assert store.get_document(FOREIGN_MODEL_ID).embedding_model != MODEL
        assert not store.get_document(INCOMPLETE_ID).is_searchable

    def test_seed_rejects_read_only_store(self):
        with pytest.raises(TypeError):
            seed_embedding_store(object())
