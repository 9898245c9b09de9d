"""Protocol for text chunking strategies."""

from typing import Protocol, runtime_checkable

from qmd.models import Chunk


@runtime_checkable
class ChunkingStrategy(Protocol):
    """Protocol for text chunking strategies.

    Chunk boundaries are persisted alongside embeddings, so implementations
    must be pure functions of the text.
    """

    def chunk(self, text: str) -> list[Chunk]:
        """Split text into ordered chunks covering the whole text."""
        ...
