"""Text chunking strategies."""

from qmd.chunkers.token_chunker import TokenChunker, count_tokens

__all__ = ["TokenChunker", "count_tokens"]
