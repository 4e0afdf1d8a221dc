"""
Unit Tests for Chunk De-overlap

Sliding-window chunks repeat text. These tests pin down how overlapping
windows collapse into a character timeline and what the totals are.

STAFF ENGINEER PATTERNS:
------------------------
1. Hand-built spans with known answers
2. Idempotence checked directly, not inferred
3. Malformed input fails loudly
"""

import numpy as np
import pytest

from doc_similarity.retrieval.document import Chunk
from doc_similarity.similarity.deoverlap import (
    CharacterSpan,
    covered_characters,
    deoverlap,
    layout_chunk_spans,
    merge_spans,
    summarize_chunks,
)


def _chunk(index, start=None, end=None, count=1000, pages=(1, 1)):
    return Chunk(
        document_id="doc",
        chunk_index=index,
        embedding=np.ones(4),
        start_page=pages[0],
        end_page=pages[1],
        character_count=count,
        char_start=start,
        char_end=end,
    )


# ---------------------------------------------------------------------------
# MERGE TESTS
# ---------------------------------------------------------------------------


class TestMergeSpans:
    """Test interval merging."""

    def test_overlapping_spans_merge(self):
        spans = [CharacterSpan(0, 100, 1, 1), CharacterSpan(50, 150, 1, 2)]

        merged = merge_spans(spans)

        assert merged == [CharacterSpan(0, 150, 1, 2)]

    def test_touching_spans_merge(self):
        merged = merge_spans([CharacterSpan(0, 100, 1, 1), CharacterSpan(100, 200, 2, 2)])

        assert len(merged) == 1
        assert merged[0].length == 200

    def test_disjoint_spans_stay_separate(self):
        merged = merge_spans([CharacterSpan(300, 400, 3, 3), CharacterSpan(0, 100, 1, 1)])

        assert [s.start for s in merged] == [0, 300]

    def test_empty_spans_dropped(self):
        assert merge_spans([CharacterSpan(10, 10, 1, 1)]) == []

    def test_merge_is_idempotent(self):
        spans = [
            CharacterSpan(0, 100, 1, 1),
            CharacterSpan(80, 180, 1, 2),
            CharacterSpan(500, 600, 4, 4),
        ]

        once = merge_spans(spans)
        twice = merge_spans(once)

        assert once == twice

    def test_covered_characters_counts_once(self):
        spans = [CharacterSpan(0, 100, 1, 1), CharacterSpan(0, 100, 1, 1)]

        assert covered_characters(spans) == 100


# ---------------------------------------------------------------------------
# LAYOUT TESTS
# ---------------------------------------------------------------------------


class TestLayout:
    """Test how chunks are placed on the character timeline."""

    def test_offsets_used_when_present(self):
        spans = layout_chunk_spans([_chunk(0, 0, 1000), _chunk(1, 800, 1800)])

        assert spans[1] == CharacterSpan(800, 1800, 1, 1)

    def test_sequential_layout_without_offsets(self):
        spans = layout_chunk_spans([_chunk(1, count=300), _chunk(0, count=200)])

        assert spans[0].start == 0 and spans[0].end == 200
        assert spans[1].start == 200 and spans[1].end == 500

    def test_page_anchored_layout_without_offsets(self):
        # Each window puts 500 characters on each of its two pages
        chunks = [
            _chunk(0, pages=(1, 2)),
            _chunk(1, pages=(2, 3)),
            _chunk(2, pages=(3, 4)),
        ]

        spans = layout_chunk_spans(chunks)

        assert [(s.start, s.end) for s in spans.values()] == [(0, 1000), (500, 1500), (1000, 2000)]

    def test_overlap_limited_to_shared_page_characters(self):
        spans = layout_chunk_spans([_chunk(0, pages=(1, 1)), _chunk(1, pages=(1, 2))])

        assert spans[1] == CharacterSpan(500, 1500, 1, 2)

    def test_windows_on_distinct_pages_do_not_overlap(self):
        spans = layout_chunk_spans([_chunk(0, pages=(1, 2)), _chunk(1, pages=(3, 4))])

        assert spans[1].start == 1000

    def test_duplicate_chunk_index_rejected(self):
        with pytest.raises(ValueError, match="Duplicate chunk_index"):
            layout_chunk_spans([_chunk(0), _chunk(0)])

    def test_inverted_page_range_rejected(self):
        with pytest.raises(ValueError, match="ends on page"):
            layout_chunk_spans([_chunk(0, pages=(3, 2))])

    def test_inverted_character_range_rejected(self):
        with pytest.raises(ValueError, match="invalid character range"):
            layout_chunk_spans([_chunk(0, 500, 100)])


# ---------------------------------------------------------------------------
# DE-OVERLAP TESTS
# ---------------------------------------------------------------------------


class TestDeoverlap:
    """Test totals computed from overlapping windows."""

    def test_overlapping_windows_count_characters_once(self):
        # Three 1000-char windows, each overlapping the previous by 500
        chunks = [_chunk(0, 0, 1000), _chunk(1, 500, 1500), _chunk(2, 1000, 2000)]

        timeline = deoverlap(chunks)

        assert timeline.total_characters == 2000
        assert timeline.effective_chunk_count == 2

    def test_offsetless_windows_count_shared_pages_once(self):
        chunks = [
            _chunk(0, pages=(1, 2)),
            _chunk(1, pages=(2, 3)),
            _chunk(2, pages=(3, 4)),
        ]

        totals = summarize_chunks(chunks)

        assert totals.total_characters == 2000
        assert totals.effective_chunk_count == 2

    def test_offsetless_rerun_is_stable(self):
        chunks = [_chunk(i, pages=(i + 1, i + 2)) for i in range(4)]
        timeline = deoverlap(chunks)

        assert summarize_chunks(list(reversed(chunks))) == timeline.totals()
        assert covered_characters(timeline.spans) == timeline.total_characters

    def test_non_overlapping_chunks_sum(self):
        chunks = [_chunk(i, count=400) for i in range(3)]

        totals = summarize_chunks(chunks)

        assert totals.total_characters == 1200
        assert totals.effective_chunk_count == 3

    def test_duplicate_window_adds_nothing(self):
        chunks = [_chunk(0, 0, 1000), _chunk(1, 0, 1000)]

        totals = summarize_chunks(chunks)

        assert totals.total_characters == 1000
        assert totals.effective_chunk_count == 1

    def test_pages_unioned_across_merged_windows(self):
        chunks = [
            _chunk(0, 0, 1000, pages=(1, 2)),
            _chunk(1, 900, 1900, pages=(2, 3)),
        ]

        timeline = deoverlap(chunks)

        assert len(timeline.spans) == 1
        assert timeline.spans[0].start_page == 1
        assert timeline.spans[0].end_page == 3

    def test_deoverlap_is_deterministic(self):
        chunks = [_chunk(0, 0, 1000), _chunk(1, 700, 1700), _chunk(2, 1600, 2600)]

        assert summarize_chunks(chunks) == summarize_chunks(list(reversed(chunks)))

    def test_rerun_on_merged_spans_gives_same_total(self):
        chunks = [_chunk(0, 0, 1000), _chunk(1, 700, 1700), _chunk(2, 3000, 3500)]
        timeline = deoverlap(chunks)

        assert covered_characters(timeline.spans) == timeline.total_characters

    def test_empty_document(self):
        timeline = deoverlap([])

        assert timeline.total_characters == 0
        assert timeline.effective_chunk_count == 0
