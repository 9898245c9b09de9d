"""Embedding and generation providers.

``SentenceTransformerEmbedder`` lives in ``qmd.providers.sentence_transformer``
and is imported on demand so the API-only install does not load torch.
"""

from qmd.providers.openrouter import EMBEDDING_DIMENSIONS, OpenRouterProvider

__all__ = ["EMBEDDING_DIMENSIONS", "OpenRouterProvider"]
