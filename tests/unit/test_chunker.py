"""Unit tests for the word-window chunker and positional chunk ids."""

from __future__ import annotations

import types

import pytest

from notemind.services.ingestion.chunker import (
    TextChunker,
    chunk_text,
    make_chunk_id,
    parse_chunk_index,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _words(n: int) -> str:
    return " ".join(f"w{i}" for i in range(n))


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestWindows:
    def test_short_text_is_one_chunk(self) -> None:
        chunks = list(chunk_text(_words(120)))
        assert len(chunks) == 1
        assert chunks[0].split()[0] == "w0"
        assert chunks[0].split()[-1] == "w119"

    def test_exact_window_is_one_chunk(self) -> None:
        assert len(list(chunk_text(_words(300)))) == 1

    def test_one_word_over_window_makes_two_chunks(self) -> None:
        chunks = list(chunk_text(_words(301)))
        assert len(chunks) == 2
        assert chunks[1].split()[0] == "w280"
        assert chunks[1].split()[-1] == "w300"

    def test_windows_advance_by_window_minus_overlap(self) -> None:
        chunks = list(chunk_text(_words(650), window_size=300, overlap=20))
        assert [c.split()[0] for c in chunks] == ["w0", "w280", "w560"]
        assert chunks[-1].split()[-1] == "w649"

    def test_consecutive_chunks_share_overlap_words(self) -> None:
        chunks = list(chunk_text(_words(1000), window_size=50, overlap=10))
        for left, right in zip(chunks, chunks[1:]):
            assert left.split()[-10:] == right.split()[:10]

    def test_every_word_is_covered(self) -> None:
        text = _words(777)
        seen: set[str] = set()
        for chunk in chunk_text(text, window_size=64, overlap=8):
            seen.update(chunk.split())
        assert seen == set(text.split())

    def test_whitespace_runs_collapse(self) -> None:
        chunks = list(chunk_text("alpha\n\n  beta\tgamma   delta"))
        assert chunks == ["alpha beta gamma delta"]

    @pytest.mark.parametrize("text", ["", "   ", "\n\t\n"])
    def test_empty_text_yields_nothing(self, text: str) -> None:
        assert list(chunk_text(text)) == []

    def test_overlap_as_large_as_window_still_terminates(self) -> None:
        chunks = list(chunk_text(_words(5), window_size=3, overlap=3))
        assert [c.split()[0] for c in chunks] == ["w0", "w1", "w2"]

    def test_invalid_parameters_raise(self) -> None:
        with pytest.raises(ValueError):
            list(chunk_text("a b", window_size=0))
        with pytest.raises(ValueError):
            list(chunk_text("a b", overlap=-1))


class TestTextChunker:
    def test_defaults(self) -> None:
        chunker = TextChunker()
        assert chunker.window_size == 300
        assert chunker.overlap == 20

    def test_chunk_is_lazy(self) -> None:
        result = TextChunker(window_size=10, overlap=2).chunk(_words(10_000))
        assert isinstance(result, types.GeneratorType)
        assert next(result).split()[0] == "w0"

    def test_each_call_restarts(self) -> None:
        chunker = TextChunker(window_size=10, overlap=0)
        text = _words(25)
        assert list(chunker.chunk(text)) == list(chunker.chunk(text))

    def test_constructor_validates(self) -> None:
        with pytest.raises(ValueError):
            TextChunker(window_size=0)
        with pytest.raises(ValueError):
            TextChunker(overlap=-5)


class TestChunkIds:
    def test_make_chunk_id(self) -> None:
        assert make_chunk_id("doc-1", 0) == "doc-1_0"
        assert make_chunk_id("doc-1", 42) == "doc-1_42"

    def test_negative_index_rejected(self) -> None:
        with pytest.raises(ValueError):
            make_chunk_id("doc-1", -1)

    def test_parse_uses_last_underscore(self) -> None:
        assert parse_chunk_index("my_doc_id_7") == 7
        assert parse_chunk_index(make_chunk_id("a_b", 13)) == 13

    @pytest.mark.parametrize("chunk_id", ["nounderscore", "doc_", "doc_x1", "doc_-1"])
    def test_parse_rejects_ids_without_index(self, chunk_id: str) -> None:
        assert parse_chunk_index(chunk_id) is None
