"""Overlapping word-window chunking for retrieval indexes."""
from __future__ import annotations

from ..exceptions import InvalidConfigError


class TextChunker:
    """Split text into windows of ``chunk_size`` words.

    Consecutive windows share ``chunk_overlap`` words. The last window holds
    whatever words remain and is always the final chunk.
    """

    def __init__(self, chunk_size: int = 400, chunk_overlap: int = 80) -> None:
        if chunk_size <= 0:
            raise InvalidConfigError(f"chunk_size must be > 0, got {chunk_size}")
        if not 0 <= chunk_overlap < chunk_size:
            raise InvalidConfigError(
                f"chunk_overlap must be in [0, {chunk_size}), got {chunk_overlap}"
            )
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    @property
    def stride(self) -> int:
        return max(self.chunk_size - self.chunk_overlap, 1)

    def split(self, text: str) -> list[str]:
        words = text.split()
        chunks: list[str] = []
        start = 0
        while start < len(words):
            end = min(start + self.chunk_size, len(words))
            chunks.append(" ".join(words[start:end]))
            if end == len(words):
                break
            start += self.stride
        return chunks
