"""
CoachBot - Chunker
===================
Splits raw source text into overlapping, boundary-aware segments.

Algorithm
---------
1. Text no longer than ``chunk_size`` → a single chunk.
2. Otherwise slide a window.  For a candidate end ``start + chunk_size``
   that is not the end of the text, look backwards for, in order:
       a. a sentence terminator (``.``, ``!``, ``?``),
       b. a paragraph / line break,
       c. any whitespace.
   A boundary is only accepted if it lies past the window midpoint,
   otherwise the hard cut stands (no degenerate tiny chunks).
3. Advance ``start`` to ``end - overlap``; if that would not move past
   the previous chunk's start, jump to ``end`` instead.
4. Back-fill ``total_chunks`` once every chunk exists.

``[start_char, end_char)`` ranges never leave gaps: every chunk starts
at or before the previous chunk's end, the first starts at 0 and the
last ends at ``len(text)``.
"""

from __future__ import annotations

from coachbot.config.settings import settings
from coachbot.src.core.models import DocumentChunk
from coachbot.src.utils.logger import get_logger

logger = get_logger(__name__)

_SENTENCE_TERMINATORS = ".!?"
_PARAGRAPH_BREAKS = "\n"


def chunk_text(text: str, source_id: str, chunk_size: int | None = None, overlap: int | None = None) -> list[DocumentChunk]:
    """
    Split *text* into ordered ``DocumentChunk`` objects.

    Parameters
    ----------
    text
        Raw source text.  Offsets refer to this exact string.
    source_id
        Identifier stamped on every chunk.
    chunk_size
        Target window in characters.  Defaults to ``settings.CHUNK_SIZE``.
    overlap
        Characters shared by consecutive chunks.  Defaults to
        ``settings.CHUNK_OVERLAP``.

    Returns
    -------
    list[DocumentChunk]
        Empty for empty input.
    """
    size = chunk_size if chunk_size is not None else settings.CHUNK_SIZE
    step_back = overlap if overlap is not None else settings.CHUNK_OVERLAP
    if size <= 0:
        raise ValueError(f"chunk_size must be positive, got {size}")
    if step_back < 0:
        raise ValueError(f"overlap must be non-negative, got {step_back}")

    length = len(text)
    if length == 0:
        return []

    if length <= size:
        return [DocumentChunk(content=text.strip(), source_id=source_id, chunk_index=0, total_chunks=1, start_char=0, end_char=length)]

    spans: list[tuple[int, int]] = []
    start = 0
    while start < length:
        end = start + size
        if end < length:
            end = _find_boundary(text, start, end, size)
        else:
            end = length

        spans.append((start, end))
        if end >= length:
            break

        next_start = end - step_back
        if next_start <= start:
            next_start = end
        start = next_start

    total = len(spans)
    chunks = [
        DocumentChunk(content=text[s:e].strip(), source_id=source_id, chunk_index=i, total_chunks=total, start_char=s, end_char=e)
        for i, (s, e) in enumerate(spans)
    ]
    logger.debug("[CHUNK] '%s' → %d chunk(s) (size=%d, overlap=%d, chars=%d).", source_id, total, size, step_back, length)
    return chunks


def _find_boundary(text: str, start: int, end: int, size: int) -> int:
    """Return the preferred cut position in ``(start + size/2, end]``."""
    midpoint = start + size / 2

    sentence_end = _rfind_any(text, _SENTENCE_TERMINATORS, start, end)
    if sentence_end > midpoint:
        return sentence_end + 1

    paragraph_end = _rfind_any(text, _PARAGRAPH_BREAKS, start, end)
    if paragraph_end > midpoint:
        return paragraph_end

    word_end = _rfind_whitespace(text, start, end)
    if word_end > midpoint:
        return word_end

    return end


def _rfind_any(text: str, characters: str, start: int, end: int) -> int:
    return max(text.rfind(ch, start, end) for ch in characters)


def _rfind_whitespace(text: str, start: int, end: int) -> int:
    for position in range(end - 1, start - 1, -1):
        if text[position].isspace():
            return position
    return -1
