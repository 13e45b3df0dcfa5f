"""Word-window text chunking.

Splits extracted document text into overlapping windows of words, the unit
of embedding and retrieval.  Windows are produced lazily so that the
ingestion loop never holds the full list of chunk strings for a very large
document; the word list itself is the only full-size structure.

Chunk ids are positional: chunk ``i`` of document ``d`` is stored under
``f"{d}_{i}"``, and :func:`parse_chunk_index` recovers ``i`` from the id.
"""

from __future__ import annotations

from collections.abc import Iterator

DEFAULT_WINDOW_SIZE = 300
DEFAULT_OVERLAP = 20


def chunk_text(
    text: str,
    window_size: int = DEFAULT_WINDOW_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> Iterator[str]:
    """Yield overlapping word windows of *text*.

    The window advances by ``window_size - overlap`` words, clamped to at
    least one word so an overlap as large as the window still terminates.
    Generation stops once a window reaches the last word.  Empty or
    whitespace-only text yields nothing.

    Parameters
    ----------
    text:
        Source text.  Any whitespace run separates words.
    window_size:
        Words per chunk.
    overlap:
        Words shared between consecutive chunks.

    Raises
    ------
    ValueError
        If ``window_size < 1`` or ``overlap < 0``.
    """
    if window_size < 1:
        raise ValueError(f"window_size must be >= 1, got {window_size}")
    if overlap < 0:
        raise ValueError(f"overlap must be >= 0, got {overlap}")

    words = text.split()
    total = len(words)
    step = max(1, window_size - overlap)

    start = 0
    while start < total:
        end = min(start + window_size, total)
        window = " ".join(words[start:end]).strip()
        if window:
            yield window
        if end >= total:
            break
        start += step


def make_chunk_id(document_id: str, index: int) -> str:
    """Return the vector-record id of chunk *index* of *document_id*."""
    if index < 0:
        raise ValueError(f"chunk index must be >= 0, got {index}")
    return f"{document_id}_{index}"


def parse_chunk_index(chunk_id: str) -> int | None:
    """Recover the chunk index from a record id, or None if it has none.

    The index is the segment after the *last* underscore, so document ids
    that themselves contain underscores round-trip correctly.
    """
    _, sep, suffix = chunk_id.rpartition("_")
    if not sep or not suffix.isdigit():
        return None
    return int(suffix)


class TextChunker:
    """Configured word-window chunker.

    Parameters
    ----------
    window_size:
        Words per chunk (default 300).
    overlap:
        Words of overlap between consecutive chunks (default 20).
    """

    def __init__(self, window_size: int = DEFAULT_WINDOW_SIZE, overlap: int = DEFAULT_OVERLAP) -> None:
        if window_size < 1:
            raise ValueError(f"window_size must be >= 1, got {window_size}")
        if overlap < 0:
            raise ValueError(f"overlap must be >= 0, got {overlap}")
        self._window_size = window_size
        self._overlap = overlap

    @property
    def window_size(self) -> int:
        return self._window_size

    @property
    def overlap(self) -> int:
        return self._overlap

    def chunk(self, text: str) -> Iterator[str]:
        """Return a fresh lazy chunk sequence for *text*."""
        return chunk_text(text, self._window_size, self._overlap)
