"""
Semantic Conventions for Span Attributes

Attribute keys for similarity search spans, under a custom
"similarity" namespace. One span per search, one child span per stage.
"""

# ---------------------------------------------------------------------------
# SEARCH LEVEL
# ---------------------------------------------------------------------------

SIMILARITY_SOURCE_DOCUMENT_ID = "similarity.source.document_id"
SIMILARITY_SOURCE_MODEL = "similarity.source.embedding_model"
SIMILARITY_SOURCE_CHUNKS = "similarity.source.chunk_count"

SIMILARITY_THRESHOLD = "similarity.threshold"
SIMILARITY_SCORE_BASIS = "similarity.score_basis"
SIMILARITY_RESULT_COUNT = "similarity.result_count"
SIMILARITY_TOTAL_MS = "similarity.total_ms"
SIMILARITY_ERROR_TYPE = "similarity.error_type"  # "IncompleteDocument", etc.


# ---------------------------------------------------------------------------
# STAGE LEVEL
# ---------------------------------------------------------------------------

SIMILARITY_STAGE = "similarity.stage"  # 0, 1, 2
SIMILARITY_STAGE_TOP_K = "similarity.stage.top_k"
SIMILARITY_STAGE_INPUT_COUNT = "similarity.stage.input_count"
SIMILARITY_STAGE_OUTPUT_COUNT = "similarity.stage.output_count"
SIMILARITY_STAGE_LATENCY_MS = "similarity.stage.latency_ms"
SIMILARITY_STAGE_CANDIDATE_IDS = "similarity.stage.candidate_ids"  # opt-in only

# Stage 2 specific
SIMILARITY_STAGE2_WORKERS = "similarity.stage2.workers"
SIMILARITY_STAGE2_FAILED = "similarity.stage2.failed"
SIMILARITY_CHUNK_MATCH_THRESHOLD = "similarity.stage2.chunk_match_threshold"


# ---------------------------------------------------------------------------
# HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def search_attributes(
    source_document_id: str,
    threshold: float,
    score_basis: str,
) -> dict:
    """Create attributes dict for the top-level search span."""
    return {
        SIMILARITY_SOURCE_DOCUMENT_ID: source_document_id,
        SIMILARITY_THRESHOLD: threshold,
        SIMILARITY_SCORE_BASIS: score_basis,
    }


def stage_attributes(
    stage: int,
    input_count: int,
    top_k: int | None = None,
) -> dict:
    """Create attributes dict for a stage span."""
    attrs = {
        SIMILARITY_STAGE: stage,
        SIMILARITY_STAGE_INPUT_COUNT: input_count,
    }
    if top_k is not None:
        attrs[SIMILARITY_STAGE_TOP_K] = top_k
    return attrs
