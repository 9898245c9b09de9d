"""Protocol definitions for extensible components."""

from qmd.protocols.chunker import ChunkingStrategy
from qmd.protocols.embedder import EmbeddingProvider
from qmd.protocols.generator import GenerationProvider
from qmd.protocols.ingester import Ingester

__all__ = ["Ingester", "EmbeddingProvider", "GenerationProvider", "ChunkingStrategy"]
