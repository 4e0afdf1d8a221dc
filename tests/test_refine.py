"""
Unit Tests for Stage 1 (refined ranking)

STAFF ENGINEER PATTERNS:
------------------------
1. Build profiles from synthetic chunks
2. Verify re-ranking changes Stage 0 order when chunks disagree with centroids
3. Cover degraded paths (fetch failure, foreign dimension, cancellation)
"""

import threading
from dataclasses import replace
from unittest.mock import MagicMock

import numpy as np
import pytest

from doc_similarity.core import SearchCancelled
from doc_similarity.retrieval.store import InMemoryEmbeddingStore
from doc_similarity.similarity.alignment import DocumentProfile
from doc_similarity.similarity.models import SimilarityCandidate
from doc_similarity.similarity.refine import refine_candidates

from conftest import MODEL


def _candidate(doc_id, score):
    return SimilarityCandidate(document_id=doc_id, embedding_model=MODEL, score=score)


@pytest.fixture
def setup(build_document):
    store = InMemoryEmbeddingStore()
    source_doc, source_chunks = build_document("source", axes=[0, 1, 2, 3])
    store.insert_document(source_doc, source_chunks)
    # Shares one exact chunk with the source
    store.insert_document(*build_document("one-shared-chunk", axes=[3, 5, 6, 7]))
    # No shared chunk at all
    store.insert_document(*build_document("no-shared-chunk", axes=[4, 5]))
    # Different vector dimension
    store.insert_document(*build_document("wide", axes=[0, 1], dim=16))
    profile = DocumentProfile.build(source_doc, source_chunks)
    return store, profile


class TestRefineCandidates:
    """Test Stage 1 re-ranking."""

    def test_reranks_by_best_chunk_pair(self, setup):
        store, profile = setup
        stage0 = [_candidate("no-shared-chunk", 0.9), _candidate("one-shared-chunk", 0.2)]

        refined = refine_candidates(store, profile, stage0, top_k=10)

        assert [c.document_id for c in refined] == ["one-shared-chunk", "no-shared-chunk"]
        assert refined[0].score == pytest.approx(1.0)
        assert refined[1].score == pytest.approx(0.0)
        assert all(c.stage == 1 for c in refined)

    def test_respects_top_k(self, setup):
        store, profile = setup
        stage0 = [_candidate("no-shared-chunk", 0.9), _candidate("one-shared-chunk", 0.2)]

        refined = refine_candidates(store, profile, stage0, top_k=1)

        assert [c.document_id for c in refined] == ["one-shared-chunk"]

    def test_output_never_larger_than_input(self, setup):
        store, profile = setup
        stage0 = [_candidate("one-shared-chunk", 0.5)]

        assert len(refine_candidates(store, profile, stage0, top_k=250)) == 1

    def test_excludes_dimension_mismatch(self, setup):
        store, profile = setup
        stage0 = [_candidate("wide", 0.99), _candidate("one-shared-chunk", 0.2)]

        refined = refine_candidates(store, profile, stage0, top_k=10)

        assert [c.document_id for c in refined] == ["one-shared-chunk"]

    def test_fetch_failure_keeps_stage0_score(self, setup):
        _, profile = setup
        failing_store = MagicMock()
        failing_store.get_chunks.side_effect = RuntimeError("connection reset")

        refined = refine_candidates(failing_store, profile, [_candidate("x", 0.42)], top_k=5)

        assert len(refined) == 1
        assert refined[0].score == 0.42
        assert refined[0].stage == 1

    def test_cancelled_before_candidate_raises(self, setup):
        store, profile = setup
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(SearchCancelled) as exc_info:
            refine_candidates(
                store, profile, [_candidate("one-shared-chunk", 0.5)], top_k=5, cancel_event=cancel
            )

        assert exc_info.value.stage == "stage1"

    def test_zero_top_k(self, setup):
        store, profile = setup

        assert refine_candidates(store, profile, [_candidate("one-shared-chunk", 0.5)], top_k=0) == []

    def test_malformed_chunk_vectors_excluded(self, setup, build_document):
        store, profile = setup
        doc, chunks = build_document("ragged", axes=[0, 1])
        chunks[1] = replace(chunks[1], embedding=np.ones(4))
        store.insert_document(doc, chunks)
        stage0 = [_candidate("ragged", 0.95), _candidate("one-shared-chunk", 0.2)]

        refined = refine_candidates(store, profile, stage0, top_k=10)

        assert [c.document_id for c in refined] == ["one-shared-chunk"]


class TestRefineOrdering:
    """Test reproducible ordering of equal refined scores."""

    def test_equal_scores_ordered_by_document_id(self, setup, build_document):
        store, profile = setup
        store.insert_document(*build_document("tie-a", axes=[1, 5]))
        store.insert_document(*build_document("tie-b", axes=[2, 6]))
        # Stage 0 hands them over in reverse id order
        stage0 = [_candidate("tie-b", 0.9), _candidate("tie-a", 0.1)]

        refined = refine_candidates(store, profile, stage0, top_k=10)

        assert [c.document_id for c in refined] == ["tie-a", "tie-b"]
        assert refined[0].score == refined[1].score

    def test_tie_break_applies_at_top_k_cut(self, setup, build_document):
        store, profile = setup
        store.insert_document(*build_document("tie-a", axes=[1, 5]))
        store.insert_document(*build_document("tie-b", axes=[2, 6]))
        stage0 = [_candidate("tie-b", 0.9), _candidate("tie-a", 0.1)]

        refined = refine_candidates(store, profile, stage0, top_k=1)

        assert [c.document_id for c in refined] == ["tie-a"]
