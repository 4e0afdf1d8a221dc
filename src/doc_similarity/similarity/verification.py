"""
Threshold verification.

When a user reports a false positive, the fix is usually a threshold
change. verify_threshold() runs the full pipeline for the reported source
document and checks whether the document that should NOT match is now
filtered out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from doc_similarity.similarity.models import SearchResponse, SearchResult
from doc_similarity.similarity.options import SearchOptions

logger = logging.getLogger(__name__)

SearchFn = Callable[[str, SearchOptions], SearchResponse]


@dataclass
class ThresholdVerification:
    """Outcome of one threshold verification run."""

    source_document_id: str
    not_similar_document_id: str
    options: SearchOptions
    response: SearchResponse
    offending_result: SearchResult | None = None
    top_results: list[SearchResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.offending_result is None

    def to_dict(self) -> dict:
        return {
            "source_document_id": self.source_document_id,
            "not_similar_document_id": self.not_similar_document_id,
            "passed": self.passed,
            "threshold": self.options.threshold,
            "score_basis": self.options.score_basis.value,
            "offending_result": (
                self.offending_result.to_dict() if self.offending_result else None
            ),
            "top_results": [r.to_dict() for r in self.top_results],
            "total": len(self.response.results),
            "timing": self.response.timing.to_dict(),
        }


def verify_threshold(
    search_fn: SearchFn,
    source_document_id: str,
    not_similar_document_id: str,
    options: SearchOptions | None = None,
    top_n: int = 5,
) -> ThresholdVerification:
    """
    Run the pipeline and check that a known dissimilar document is excluded.

    Args:
        search_fn: Called as search_fn(source_document_id, options)
        source_document_id: Document the false positive was reported for
        not_similar_document_id: Document that must not appear in results
        options: Search options (single Stage 2 worker by default, for stable timing)
        top_n: How many top results to keep for the report
    """
    options = options or SearchOptions.from_settings(stage2_parallel_workers=1)
    response = search_fn(source_document_id, options)

    offending = next(
        (r for r in response.results if r.document.id == not_similar_document_id),
        None,
    )
    if offending is not None:
        logger.warning(
            f"{not_similar_document_id} still matches {source_document_id} "
            f"(source {offending.source_score:.3f}, target {offending.target_score:.3f}) "
            f"at threshold {options.threshold:.2f}"
        )

    return ThresholdVerification(
        source_document_id=source_document_id,
        not_similar_document_id=not_similar_document_id,
        options=options,
        response=response,
        offending_result=offending,
        top_results=response.results[:top_n],
    )
