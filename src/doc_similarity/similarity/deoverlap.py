"""
De-overlap - resolve overlapping chunk windows into a character timeline.

The upstream chunker emits sliding windows, so neighbouring chunks repeat
text (and pages). Summing raw chunk character counts would inflate every
ratio computed from them. This module lays each chunk out as a
page-anchored character span and interval-merges the spans, so a character
is counted at most once.

LAYOUT RULES:
-------------
1. A chunk with char_start/char_end uses those document-level offsets.
2. A chunk without offsets is anchored to its pages. Its characters are
   shared evenly across the pages it spans. Where it shares pages with the
   previous chunk and either of the two crosses a page break, it starts
   inside the previous chunk: the overlap is the smaller of the two chunks'
   characters on the shared pages. Otherwise it starts where the furthest
   previous span ended.
3. Chunks are laid out in chunk_index order.

The merge is idempotent: merging already merged spans returns them unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from doc_similarity.core.protocols import DocumentTotals
from doc_similarity.retrieval.document import Chunk


# ---------------------------------------------------------------------------
# DATA MODEL
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CharacterSpan:
    """Half-open character interval [start, end) anchored to a page range."""

    start: int
    end: int
    start_page: int
    end_page: int

    @property
    def length(self) -> int:
        return self.end - self.start


@dataclass
class CharacterTimeline:
    """Non-overlapping character timeline of one document."""

    spans: list[CharacterSpan]
    chunk_spans: dict[int, CharacterSpan] = field(default_factory=dict)
    effective_chunk_count: int = 0

    @property
    def total_characters(self) -> int:
        return sum(span.length for span in self.spans)

    def totals(self) -> DocumentTotals:
        return DocumentTotals(
            effective_chunk_count=self.effective_chunk_count,
            total_characters=self.total_characters,
        )


# ---------------------------------------------------------------------------
# INTERVAL MERGE
# ---------------------------------------------------------------------------


def merge_spans(spans: Iterable[CharacterSpan]) -> list[CharacterSpan]:
    """Merge overlapping or touching spans; page ranges are unioned."""
    ordered = sorted(
        (s for s in spans if s.length > 0),
        key=lambda s: (s.start, s.end),
    )
    merged: list[CharacterSpan] = []
    for span in ordered:
        if merged and span.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = CharacterSpan(
                start=last.start,
                end=max(last.end, span.end),
                start_page=min(last.start_page, span.start_page),
                end_page=max(last.end_page, span.end_page),
            )
        else:
            merged.append(span)
    return merged


def covered_characters(spans: Iterable[CharacterSpan]) -> int:
    """Number of distinct characters covered by the spans."""
    return sum(span.length for span in merge_spans(spans))


def _overlap(span: CharacterSpan, merged: Sequence[CharacterSpan]) -> int:
    total = 0
    for other in merged:
        if other.start >= span.end:
            break
        lo = max(span.start, other.start)
        hi = min(span.end, other.end)
        if hi > lo:
            total += hi - lo
    return total


# ---------------------------------------------------------------------------
# LAYOUT
# ---------------------------------------------------------------------------


def _characters_on_pages(chunk: Chunk, first_page: int, last_page: int) -> float:
    """Share of the chunk's characters that falls on pages first..last."""
    lo = max(chunk.start_page, first_page)
    hi = min(chunk.end_page, last_page)
    if hi < lo:
        return 0.0
    page_count = chunk.end_page - chunk.start_page + 1
    return chunk.character_count * (hi - lo + 1) / page_count


def _page_overlap(previous: Chunk | None, chunk: Chunk) -> int:
    """Characters an offset-less chunk repeats from the previous chunk."""
    if previous is None:
        return 0
    first = max(previous.start_page, chunk.start_page)
    last = min(previous.end_page, chunk.end_page)
    if last < first:
        return 0
    # Two windows on one page carry no page-break evidence of overlap
    if previous.start_page == previous.end_page and chunk.start_page == chunk.end_page:
        return 0
    return int(
        round(
            min(
                _characters_on_pages(previous, first, last),
                _characters_on_pages(chunk, first, last),
            )
        )
    )


def layout_chunk_spans(chunks: Sequence[Chunk]) -> dict[int, CharacterSpan]:
    """
    Assign every chunk a character span on the document timeline.

    Raises:
        ValueError: on duplicate chunk indexes or malformed ranges
    """
    spans: dict[int, CharacterSpan] = {}
    cursor = 0
    previous: Chunk | None = None
    for chunk in sorted(chunks, key=lambda c: c.chunk_index):
        if chunk.chunk_index in spans:
            raise ValueError(
                f"Duplicate chunk_index {chunk.chunk_index} in document {chunk.document_id}"
            )
        if chunk.end_page < chunk.start_page:
            raise ValueError(
                f"Chunk {chunk.chunk_index} of {chunk.document_id} ends on page "
                f"{chunk.end_page} before it starts on page {chunk.start_page}"
            )

        if chunk.has_offsets:
            start, end = chunk.char_start, chunk.char_end
        else:
            start = cursor
            if previous is not None and chunk.character_count > 0:
                start = max(
                    spans[previous.chunk_index].start,
                    cursor - _page_overlap(previous, chunk),
                )
            end = start + chunk.character_count

        if start < 0 or end < start:
            raise ValueError(
                f"Chunk {chunk.chunk_index} of {chunk.document_id} has invalid "
                f"character range [{start}, {end})"
            )

        spans[chunk.chunk_index] = CharacterSpan(
            start=start,
            end=end,
            start_page=chunk.start_page,
            end_page=chunk.end_page,
        )
        cursor = max(cursor, end)
        previous = chunk
    return spans


def deoverlap(chunks: Sequence[Chunk]) -> CharacterTimeline:
    """
    Resolve overlapping chunk windows into a non-overlapping timeline.

    effective_chunk_count counts each chunk by the fraction of its
    characters not already covered by earlier chunks, rounded to the
    nearest whole chunk. Three windows overlapping by half count as two.
    """
    chunk_spans = layout_chunk_spans(chunks)

    merged: list[CharacterSpan] = []
    fractional_chunks = 0.0
    for index in sorted(chunk_spans):
        span = chunk_spans[index]
        if span.length == 0:
            continue
        new_characters = span.length - _overlap(span, merged)
        fractional_chunks += new_characters / span.length
        merged = merge_spans([*merged, span])

    effective = int(fractional_chunks + 0.5)
    if merged and effective == 0:
        effective = 1

    return CharacterTimeline(
        spans=merged,
        chunk_spans=chunk_spans,
        effective_chunk_count=effective,
    )


def summarize_chunks(chunks: Sequence[Chunk]) -> DocumentTotals:
    """De-overlapped totals for a chunk set, as ingestion stores them."""
    return deoverlap(chunks).totals()
