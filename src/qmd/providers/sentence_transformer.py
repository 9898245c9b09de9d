"""SentenceTransformer-based embedding provider."""

from typing import Optional

import numpy as np
from sentence_transformers import SentenceTransformer

from qmd.errors import ConfigurationError, ProviderError


class SentenceTransformerEmbedder:
    """Local embedding provider using the sentence-transformers library.

    Uses all-MiniLM-L6-v2 by default - a fast, lightweight model
    that produces good quality embeddings for semantic search.
    """

    DEFAULT_MODEL = "all-MiniLM-L6-v2"

    def __init__(self, model_name: str | None = None):
        """Initialize the embedder.

        Args:
            model_name: Name of the sentence-transformers model to use.
                       Defaults to all-MiniLM-L6-v2.
        """
        self._model_name = model_name or self.DEFAULT_MODEL
        self._model: SentenceTransformer | None = None

    @property
    def model(self) -> SentenceTransformer:
        """Lazy-load the model on first access."""
        if self._model is None:
            try:
                self._model = SentenceTransformer(self._model_name)
            except (OSError, RuntimeError, ValueError) as e:
                raise ProviderError(f"Could not load {self._model_name}: {e}") from e
        return self._model

    @property
    def dimension(self) -> int:
        """Return the embedding dimension."""
        return self.model.get_sentence_embedding_dimension()

    @property
    def model_name(self) -> str:
        """Return identifier for the model used."""
        return self._model_name

    def embed(self, text: str, model: Optional[str] = None) -> np.ndarray:
        return self.embed_batch([text], model=model)[0]

    def embed_batch(
        self, texts: list[str], model: Optional[str] = None
    ) -> list[Optional[np.ndarray]]:
        """Generate embeddings for a batch of texts.

        The model runs in-process, so results are always in input order.
        """
        if model is not None and model != self._model_name:
            raise ConfigurationError(
                f"{self._model_name} cannot produce embeddings for model {model}"
            )
        if not texts:
            return []

        try:
            embeddings = self.model.encode(
                texts,
                convert_to_numpy=True,
                normalize_embeddings=True,  # For cosine similarity
            )
        except (RuntimeError, ValueError) as e:
            raise ProviderError(f"{self._model_name} failed to embed {len(texts)} texts: {e}") from e
        return [row.astype(np.float32) for row in embeddings]

    def close(self) -> None:
        self._model = None
