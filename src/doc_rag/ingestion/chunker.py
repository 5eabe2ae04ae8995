"""Sliding-window text chunking.

Pages are concatenated into one text (joined by :data:`PAGE_SEPARATOR`)
and walked with a cursor.  Every chunk is an exact slice of that text, so
dropping each chunk's leading ``overlap`` characters and concatenating the
rest reproduces the joined text.
"""

from __future__ import annotations

import bisect
import logging
from typing import NamedTuple, Sequence

from doc_rag.ingestion.models import Chunk, PageText

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n"

# Preferred cut points, in priority order.  A chunk ends right after the
# separator so the boundary stays with the text it terminates.
BOUNDARIES: tuple[str, ...] = ("\n\n", "\n", ". ", "! ", "? ")


class Span(NamedTuple):
    start: int
    end: int
    overlap: int


def join_pages(pages: Sequence[PageText]) -> tuple[str, list[int], list[int]]:
    """Concatenate page texts.

    Returns
    -------
    tuple
        ``(text, offsets, page_numbers)`` where ``offsets[i]`` is the
        character offset at which ``page_numbers[i]`` begins.  Pages with
        no text are skipped.
    """
    parts: list[str] = []
    offsets: list[int] = []
    page_numbers: list[int] = []
    cursor = 0
    for page in pages:
        if not page.text:
            continue
        if parts:
            parts.append(PAGE_SEPARATOR)
            cursor += len(PAGE_SEPARATOR)
        offsets.append(cursor)
        page_numbers.append(page.page_number)
        parts.append(page.text)
        cursor += len(page.text)
    return "".join(parts), offsets, page_numbers


def split_text(
    text: str,
    chunk_size: int,
    chunk_overlap: int,
    boundary_window: int = 0,
) -> list[Span]:
    """Compute chunk spans over *text*.

    Parameters
    ----------
    text:
        The full text to split.
    chunk_size:
        Maximum number of characters per chunk.
    chunk_overlap:
        Characters shared by consecutive chunks; must be ``< chunk_size``.
    boundary_window:
        How many characters before the hard limit a chunk may end early
        to land on one of :data:`BOUNDARIES`.  ``0`` always cuts at the
        hard limit.

    Returns
    -------
    list[Span]
        Ordered, gap-free spans.  Empty text yields no spans; text no
        longer than *chunk_size* yields a single span with zero overlap.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if not 0 <= chunk_overlap < chunk_size:
        raise ValueError(
            f"chunk_overlap ({chunk_overlap}) must be >= 0 and < chunk_size ({chunk_size})"
        )

    spans: list[Span] = []
    length = len(text)
    start = 0
    overlap = 0
    while start < length:
        hard_end = min(start + chunk_size, length)
        end = _pick_end(text, start, hard_end, chunk_overlap, boundary_window)
        spans.append(Span(start, end, overlap))
        if end >= length:
            break
        # Cap the overlap below the chunk length so the cursor always advances.
        overlap = min(chunk_overlap, end - start - 1)
        start = end - overlap
    return spans


def chunk_pages(
    pages: Sequence[PageText],
    collection_id: str,
    *,
    chunk_size: int,
    chunk_overlap: int,
    boundary_window: int = 0,
) -> list[Chunk]:
    """Split paginated text into ordered, overlapping :class:`Chunk` objects.

    Each chunk records the page of its first character and an ordinal
    starting at 0.
    """
    text, offsets, page_numbers = join_pages(pages)
    spans = split_text(text, chunk_size, chunk_overlap, boundary_window)

    chunks = [
        Chunk(
            collection_id=collection_id,
            ordinal=ordinal,
            page=page_numbers[bisect.bisect_right(offsets, span.start) - 1],
            start=span.start,
            overlap=span.overlap,
            text=text[span.start : span.end],
        )
        for ordinal, span in enumerate(spans)
    ]
    logger.debug(
        "Chunked %d chars from %d page(s) into %d chunk(s) for %s",
        len(text),
        len(page_numbers),
        len(chunks),
        collection_id,
    )
    return chunks


def reassemble(chunks: Sequence[Chunk]) -> str:
    """Rebuild the concatenated source text from its chunks."""
    return "".join(chunk.text[chunk.overlap :] for chunk in chunks)


def _pick_end(
    text: str,
    start: int,
    hard_end: int,
    chunk_overlap: int,
    boundary_window: int,
) -> int:
    if hard_end >= len(text) or boundary_window <= 0:
        return hard_end

    # Never end so early that the next chunk would fail to advance.
    earliest = max(start + chunk_overlap + 1, hard_end - boundary_window)
    window = text[earliest:hard_end]
    for sep in BOUNDARIES:
        idx = window.rfind(sep)
        if idx != -1:
            return earliest + idx + len(sep)
    return hard_end
