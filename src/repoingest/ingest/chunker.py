"""Fixed-window text chunker with character overlap."""

from __future__ import annotations

from collections.abc import Iterator


class TextChunker:
    """Split text into overlapping fixed-size character windows.

    Line endings are normalised to ``\\n`` first. The overlap is clamped to
    ``[0, chunk_size - 1]`` so the scan always advances.

    Args:
        chunk_size: Window width in characters (>= 1).
        overlap: Characters shared by consecutive windows.
    """

    def __init__(self, chunk_size: int = 1200, overlap: int = 200) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.chunk_size = chunk_size
        self.overlap = max(min(overlap, chunk_size - 1), 0)

    @property
    def step(self) -> int:
        return self.chunk_size - self.overlap

    @staticmethod
    def normalize(text: str) -> str:
        return text.replace("\r\n", "\n")

    def spans(self, text: str) -> Iterator[tuple[int, int]]:
        """Yield ``(start, end)`` offsets of every window over *text* (already normalised)."""
        length = len(text)
        start = 0
        while start < length:
            end = min(start + self.chunk_size, length)
            yield start, end
            if end >= length:
                break
            start += self.step

    def chunk(self, text: str, limit: int | None = None) -> list[str]:
        """Return the stripped, non-empty windows of *text* in order.

        Args:
            text: Raw file text.
            limit: Keep at most this many chunks.
        """
        normalized = self.normalize(text)
        chunks: list[str] = []
        for start, end in self.spans(normalized):
            segment = normalized[start:end].strip()
            if segment:
                chunks.append(segment)
                if limit is not None and len(chunks) >= limit:
                    break
        return chunks
