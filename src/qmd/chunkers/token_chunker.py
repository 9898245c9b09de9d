"""Overlapping token-window chunking strategy."""

import re

from qmd.models import Chunk

# Words and individual punctuation marks. Not any model's tokenizer, but a
# stable approximation: the same text always yields the same tokens.
TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]")

PARAGRAPH_BREAK = "\n\n"


def count_tokens(text: str) -> int:
    """Approximate token count of a text."""
    return sum(1 for _ in TOKEN_PATTERN.finditer(text))


class TokenChunker:
    """Default chunking: fixed token windows with fractional overlap.

    - Windows hold ``chunk_size`` tokens and consecutive windows share
      ``int(chunk_size * overlap)`` tokens
    - A window ending mid-document is pulled back to a paragraph break if
      one occurs within its overlap region
    - Each chunk runs up to the first token of the following window, so
      chunks cover the text without gaps
    """

    DEFAULT_CHUNK_SIZE = 800
    DEFAULT_OVERLAP = 0.15

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE, overlap: float = DEFAULT_OVERLAP):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= overlap < 1:
            raise ValueError("overlap must be in [0, 1)")
        self.chunk_size = chunk_size
        self.overlap_tokens = int(chunk_size * overlap)

    def chunk(self, text: str) -> list[Chunk]:
        """Split text into overlapping token windows.

        Args:
            text: The document text

        Returns:
            Chunks ordered by sequence; always at least one
        """
        starts = [match.start() for match in TOKEN_PATTERN.finditer(text)]
        total = len(starts)

        if total <= self.chunk_size:
            return [Chunk(sequence=0, position=0, text=text, token_count=total)]

        chunks: list[Chunk] = []
        first = 0
        while True:
            position = starts[first] if chunks else 0
            end = first + self.chunk_size

            if end >= total:
                chunks.append(
                    Chunk(
                        sequence=len(chunks),
                        position=position,
                        text=text[position:],
                        token_count=total - first,
                    )
                )
                return chunks

            end = self._paragraph_end(text, starts, first, end)
            chunks.append(
                Chunk(
                    sequence=len(chunks),
                    position=position,
                    text=text[position : starts[end]],
                    token_count=end - first,
                )
            )
            first = max(end - self.overlap_tokens, first + 1)

    def _paragraph_end(self, text: str, starts: list[int], first: int, end: int) -> int:
        """Move a window end back to a paragraph break inside the overlap region.

        The window keeps more than ``overlap_tokens`` tokens so the next
        window still starts after this one.
        """
        floor = max(end - self.overlap_tokens, first + self.overlap_tokens + 1)
        for candidate in range(end, floor - 1, -1):
            if candidate <= first:
                break
            if PARAGRAPH_BREAK in text[starts[candidate - 1] : starts[candidate]]:
                return candidate
        return end
