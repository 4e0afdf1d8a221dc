"""
Similarity search orchestrator.

Runs the funnel in order of cost:

1. Stage 0 - centroid prefilter (one index query)
2. Stage 1 - refined ranking (one matrix product per candidate)
3. Stage 2 - exact alignment (parallel, per candidate)

then applies the inclusion threshold and sorts. Each stage takes an explicit
candidate list and returns one; the orchestrator only slices, times and
checks for cancellation between them.

RESULT GUARANTEES:
------------------
- The source document is never in its own results
- A search either returns the complete result set for its options or raises
- Ordering is by primary score, then document id, independent of which
  Stage 2 worker finished first

INTERVIEW TALKING POINT:
------------------------
"The threshold is policy, not science. Stage 2 always reports both
directions - how much of the source the candidate covers and how much of the
candidate the source covers - and the orchestrator decides which one, or
which combination, has to clear 0.90. Changing that policy never touches
the scoring code."
"""

from __future__ import annotations

import logging
import threading
import time

from doc_similarity.core import (
    DocumentNotFound,
    EmbeddingStore,
    IncompleteDocument,
    InternalScoringError,
    SearchCancelled,
    SimilaritySearchError,
)
from doc_similarity.observability import get_tracer, timed_stage
from doc_similarity.observability.attributes import (
    SIMILARITY_CHUNK_MATCH_THRESHOLD,
    SIMILARITY_ERROR_TYPE,
    SIMILARITY_RESULT_COUNT,
    SIMILARITY_SOURCE_CHUNKS,
    SIMILARITY_SOURCE_MODEL,
    SIMILARITY_STAGE2_FAILED,
    SIMILARITY_STAGE2_WORKERS,
    SIMILARITY_STAGE_CANDIDATE_IDS,
    SIMILARITY_STAGE_OUTPUT_COUNT,
    SIMILARITY_TOTAL_MS,
    search_attributes,
    stage_attributes,
)
from doc_similarity.observability.config import get_config
from doc_similarity.retrieval.document import Document
from doc_similarity.similarity.alignment import DocumentProfile, score_candidates
from doc_similarity.similarity.models import (
    SearchResponse,
    SearchResult,
    SimilarityCandidate,
    Timing,
)
from doc_similarity.similarity.options import ScoreBasis, SearchOptions
from doc_similarity.similarity.prefilter import prefilter_candidates
from doc_similarity.similarity.refine import refine_candidates

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# THRESHOLD POLICY
# ---------------------------------------------------------------------------


def apply_threshold(
    results: list[SearchResult],
    threshold: float,
    score_basis: ScoreBasis,
    exclude_document_id: str | None = None,
) -> list[SearchResult]:
    """
    Keep results whose primary score clears the threshold, best first.

    Sets primary_score on every result it looks at. Ties are broken by
    document id so the order is reproducible.
    """
    kept = []
    for result in results:
        result.primary_score = score_basis.primary_score(result.source_score, result.target_score)
        if result.document.id == exclude_document_id:
            continue
        if result.primary_score >= threshold:
            kept.append(result)
    kept.sort(key=lambda r: (-r.primary_score, r.document.id))
    return kept


# ---------------------------------------------------------------------------
# SOURCE VALIDATION
# ---------------------------------------------------------------------------


def load_source_profile(store: EmbeddingStore, source_document_id: str) -> DocumentProfile:
    """
    Fetch the source document and check it is fully processed.

    Only document-level fields are checked before the chunks are read, so
    an unprocessed source fails without any index access.

    Raises:
        DocumentNotFound: no such document
        IncompleteDocument: centroid, totals or chunks are missing
    """
    document = store.get_document(source_document_id)
    if document is None:
        raise DocumentNotFound(source_document_id)
    _require_complete(document)

    chunks = store.get_chunks(source_document_id)
    if not chunks:
        raise IncompleteDocument(source_document_id, "chunks")

    totals = store.get_document_totals(source_document_id)
    try:
        return DocumentProfile.build(document, chunks, totals)
    except ValueError as exc:
        raise InternalScoringError(
            f"Source document {source_document_id} has malformed chunks",
            cause=exc,
        ) from exc


def _require_complete(document: Document) -> None:
    if document.centroid_embedding is None:
        raise IncompleteDocument(document.id, "centroid_embedding")
    if document.total_characters is None:
        raise IncompleteDocument(document.id, "total_characters")
    if not document.is_searchable:
        raise IncompleteDocument(document.id, f"completed status (is {document.status!r})")


# ---------------------------------------------------------------------------
# ORCHESTRATOR
# ---------------------------------------------------------------------------


class SimilaritySearch:
    """
    Multi-stage similarity search over one embedding store.

    Dependencies are INJECTED, not created internally, so tests run the
    whole funnel against InMemoryEmbeddingStore.
    """

    def __init__(self, store: EmbeddingStore, default_options: SearchOptions | None = None):
        self._store = store
        self._default_options = default_options

    @property
    def store(self) -> EmbeddingStore:
        return self._store

    def search(
        self,
        source_document_id: str,
        options: SearchOptions | None = None,
        cancel_event: threading.Event | None = None,
    ) -> SearchResponse:
        """
        Find documents similar to the source document.

        Args:
            source_document_id: Document to search from
            options: Funnel sizes and threshold policy (configured defaults if None)
            cancel_event: Set it from another thread to abort the search

        Returns:
            SearchResponse with thresholded, sorted results and timing

        Raises:
            DocumentNotFound, IncompleteDocument: before any index access
            SearchCancelled: cancel_event was set
            InternalScoringError: alignment failed for the whole run
            EmbeddingStoreError: the store failed outside Stage 2
        """
        options = options or self._default_options or SearchOptions.from_settings()
        tracer = get_tracer()
        trace_ids = get_config().trace_candidate_ids
        timing = Timing()
        started = time.perf_counter()

        with tracer.start_span(
            "similarity.search",
            attributes=search_attributes(
                source_document_id, options.threshold, options.score_basis.value
            ),
        ) as span:
            try:
                source = load_source_profile(self._store, source_document_id)
                span.set_attribute(SIMILARITY_SOURCE_MODEL, source.document.embedding_model)
                span.set_attribute(SIMILARITY_SOURCE_CHUNKS, len(source.chunks))
                self._check_cancelled(cancel_event, source_document_id, "stage0")

                # Stage 0
                with timed_stage(
                    tracer, "similarity.stage0", stage_attributes(0, 1, options.stage0_top_k)
                ) as stage:
                    stage0 = prefilter_candidates(
                        self._store, source.document, options.stage0_top_k
                    )
                    self._annotate(stage.span, stage0, trace_ids)
                timing.stage0_ms = stage.elapsed_ms
                timing.stage0_candidates = len(stage0)
                self._check_cancelled(cancel_event, source_document_id, "stage1")

                # Stage 1
                with timed_stage(
                    tracer,
                    "similarity.stage1",
                    stage_attributes(1, len(stage0), options.stage1_top_k),
                ) as stage:
                    stage1 = refine_candidates(
                        self._store,
                        source,
                        stage0,
                        options.stage1_top_k,
                        cancel_event=cancel_event,
                    )
                    self._annotate(stage.span, stage1, trace_ids)
                timing.stage1_ms = stage.elapsed_ms
                timing.stage1_candidates = len(stage1)
                self._check_cancelled(cancel_event, source_document_id, "stage2")

                # Stage 2
                stage2_input = stage1[: options.stage1_top_k]
                with timed_stage(
                    tracer, "similarity.stage2", stage_attributes(2, len(stage2_input))
                ) as stage:
                    stage.span.set_attribute(
                        SIMILARITY_STAGE2_WORKERS, options.stage2_parallel_workers
                    )
                    stage.span.set_attribute(
                        SIMILARITY_CHUNK_MATCH_THRESHOLD, options.chunk_match_threshold
                    )
                    outcome = score_candidates(
                        self._store,
                        source,
                        stage2_input,
                        chunk_match_threshold=options.chunk_match_threshold,
                        max_workers=options.stage2_parallel_workers,
                        cancel_event=cancel_event,
                    )
                    stage.span.set_attribute(SIMILARITY_STAGE_OUTPUT_COUNT, len(outcome.results))
                    stage.span.set_attribute(SIMILARITY_STAGE2_FAILED, outcome.failed)
                timing.stage2_ms = stage.elapsed_ms
                timing.stage2_scored = len(outcome.results)
                timing.stage2_failed = outcome.failed

                results = apply_threshold(
                    outcome.results,
                    options.threshold,
                    options.score_basis,
                    exclude_document_id=source_document_id,
                )

            except SimilaritySearchError as exc:
                span.set_attribute(SIMILARITY_ERROR_TYPE, type(exc).__name__)
                span.record_exception(exc)
                span.set_status("error", str(exc))
                if isinstance(exc, SearchCancelled):
                    logger.info(f"Search for {source_document_id} cancelled during {exc.stage}")
                else:
                    logger.error(f"Search for {source_document_id} failed: {exc}")
                raise

            timing.total_ms = (time.perf_counter() - started) * 1000
            span.set_attribute(SIMILARITY_RESULT_COUNT, len(results))
            span.set_attribute(SIMILARITY_TOTAL_MS, timing.total_ms)
            span.set_status("ok")

        logger.info(
            f"Search {source_document_id}: {timing.stage0_candidates} -> "
            f"{timing.stage1_candidates} -> {timing.stage2_scored} scored "
            f"({timing.stage2_failed} failed), {len(results)} above "
            f"{options.threshold:.2f} on {options.score_basis.value} "
            f"in {timing.total_ms:.0f}ms"
        )
        return SearchResponse(
            source_document_id=source_document_id,
            results=results,
            timing=timing,
        )

    @staticmethod
    def _check_cancelled(
        cancel_event: threading.Event | None,
        source_document_id: str,
        stage: str,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise SearchCancelled(source_document_id, stage)

    @staticmethod
    def _annotate(span, candidates: list[SimilarityCandidate], trace_ids: bool) -> None:
        span.set_attribute(SIMILARITY_STAGE_OUTPUT_COUNT, len(candidates))
        if trace_ids:
            span.set_attribute(
                SIMILARITY_STAGE_CANDIDATE_IDS, [c.document_id for c in candidates]
            )


# ---------------------------------------------------------------------------
# CONVENIENCE ENTRY POINT
# ---------------------------------------------------------------------------


def search(
    source_document_id: str,
    options: SearchOptions | None = None,
    store: EmbeddingStore | None = None,
    cancel_event: threading.Event | None = None,
) -> SearchResponse:
    """
    Run one similarity search.

    Uses the configured embedding store (see get_embedding_store) when no
    store is given.
    """
    if store is None:
        from doc_similarity.retrieval.store import get_embedding_store

        store = get_embedding_store(use_postgres=True)
    return SimilaritySearch(store).search(source_document_id, options, cancel_event)
