"""Protocol for embedding model providers."""

from typing import Optional, Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Protocol for embedding model providers.

    Allows swapping between API-based models (OpenRouter), local models
    (sentence-transformers), or test doubles. Failed calls raise
    ``qmd.errors.ProviderError``.
    """

    @property
    def dimension(self) -> int:
        """Return the embedding dimension of ``model_name``."""
        ...

    @property
    def model_name(self) -> str:
        """Return identifier for the model used."""
        ...

    def embed(self, text: str, model: Optional[str] = None) -> np.ndarray:
        """Embed a single text."""
        ...

    def embed_batch(
        self, texts: list[str], model: Optional[str] = None
    ) -> list[Optional[np.ndarray]]:
        """Embed several texts in one call.

        Returns: one entry per input text, in input order. An entry is None
        when the provider returned nothing usable for that text.
        """
        ...
