"""Tests for overlapping word-window chunking."""

from __future__ import annotations

import pytest

from llmedge.exceptions import InvalidConfigError
from llmedge.rag.text_splitter import TextChunker


def _reassemble(chunks: list[str], chunk_overlap: int) -> list[str]:
    words = chunks[0].split()
    for chunk in chunks[1:]:
        words.extend(chunk.split()[chunk_overlap:])
    return words


class TestConstruction:
    def test_defaults(self):
        chunker = TextChunker()
        assert chunker.chunk_size == 400
        assert chunker.chunk_overlap == 80
        assert chunker.stride == 320

    @pytest.mark.parametrize(
        ("chunk_size", "chunk_overlap"),
        [(0, 0), (-3, 0), (5, 5), (5, 6), (5, -1)],
    )
    def test_invalid_config_fails_at_construction(self, chunk_size, chunk_overlap):
        with pytest.raises(InvalidConfigError):
            TextChunker(chunk_size, chunk_overlap)


class TestSplit:
    @pytest.mark.parametrize("text", ["", "   ", "\n\t  \r\n"])
    def test_blank_text_gives_no_chunks(self, text):
        assert TextChunker(3, 1).split(text) == []

    def test_stride_one_windows(self):
        chunks = TextChunker(chunk_size=2, chunk_overlap=1).split("a b c d e f")
        assert chunks == ["a b", "b c", "c d", "d e", "e f"]

    def test_non_overlapping_with_short_tail(self):
        assert TextChunker(chunk_size=3, chunk_overlap=0).split("a b c d e") == ["a b c", "d e"]

    def test_whitespace_runs_collapse_to_single_spaces(self):
        text = "  alpha\t\tbeta\n\ngamma   delta  "
        assert TextChunker(chunk_size=2, chunk_overlap=0).split(text) == ["alpha beta", "gamma delta"]

    def test_text_shorter_than_window_is_one_chunk(self):
        assert TextChunker(chunk_size=10, chunk_overlap=2).split("one two three") == ["one two three"]

    def test_no_duplicate_window_when_last_window_ends_exactly(self):
        chunks = TextChunker(chunk_size=4, chunk_overlap=2).split("a b c d e f")
        assert chunks == ["a b c d", "c d e f"]

    @pytest.mark.parametrize(("chunk_size", "chunk_overlap"), [(3, 1), (5, 2), (7, 0), (4, 3)])
    def test_non_overlapping_parts_reproduce_the_words(self, chunk_size, chunk_overlap):
        words = [f"w{i}" for i in range(23)]
        chunks = TextChunker(chunk_size, chunk_overlap).split(" ".join(words))
        assert all(len(c.split()) <= chunk_size for c in chunks)
        assert _reassemble(chunks, chunk_overlap) == words
