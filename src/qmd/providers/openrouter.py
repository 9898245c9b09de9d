"""OpenRouter client for embeddings and chat completions.

OpenRouter exposes OpenAI, Anthropic and other models through a single
OpenAI-compatible API, so one client serves both the embedding pipeline
and the query expander.
"""

import logging
from typing import Any, Optional

import httpx
import numpy as np

from qmd.config import DEFAULT_BASE_URL, DEFAULT_CHAT_MODEL, DEFAULT_EMBED_MODEL, Settings
from qmd.errors import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)

# Embedding dimensions by model
EMBEDDING_DIMENSIONS: dict[str, int] = {
    "openai/text-embedding-3-large": 3072,
    "openai/text-embedding-3-small": 1536,
    "openai/text-embedding-ada-002": 1536,
}


class OpenRouterProvider:
    """Embedding and generation provider backed by the OpenRouter API.

    The caller owns the instance: construct it once, hand it to the
    pipeline and expander, and close it at shutdown.
    """

    def __init__(
        self,
        api_key: Optional[str],
        embed_model: str = DEFAULT_EMBED_MODEL,
        chat_model: str = DEFAULT_CHAT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            api_key: OpenRouter API key
            embed_model: Model used for embeddings
            chat_model: Model used for generation
            base_url: API root
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)

        Raises:
            ConfigurationError: if the key is missing or the embedding
                model's dimension is unknown
        """
        if not api_key:
            raise ConfigurationError(
                "OpenRouter API key required. Set OPENROUTER_API_KEY environment variable."
            )
        if embed_model not in EMBEDDING_DIMENSIONS:
            raise ConfigurationError(f"Unknown embedding dimension for model {embed_model}")

        self._embed_model = embed_model
        self.chat_model = chat_model
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_key}",
                "HTTP-Referer": "https://github.com/tobi/qmd",
                "X-Title": "qmd",
            },
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenRouterProvider":
        return cls(
            api_key=settings.openrouter_api_key,
            embed_model=settings.embed_model,
            chat_model=settings.chat_model,
            base_url=settings.base_url,
            timeout=settings.request_timeout,
        )

    @property
    def model_name(self) -> str:
        return self._embed_model

    @property
    def dimension(self) -> int:
        return EMBEDDING_DIMENSIONS[self._embed_model]

    def _request(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST to the API, turning transport and HTTP errors into ProviderError."""
        try:
            response = self._client.post(endpoint, json=body)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"OpenRouter API error ({e.response.status_code}): {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"OpenRouter request failed: {e}") from e
        except ValueError as e:
            raise ProviderError(f"OpenRouter returned invalid JSON: {e}") from e

    def embed(self, text: str, model: Optional[str] = None) -> np.ndarray:
        result = self.embed_batch([text], model=model)[0]
        if result is None:
            raise ProviderError("OpenRouter returned no embedding")
        return result

    def embed_batch(
        self, texts: list[str], model: Optional[str] = None
    ) -> list[Optional[np.ndarray]]:
        """Embed texts in one request.

        Response items are placed by their ``index`` field; the API does not
        promise to return them in input order.
        """
        if not texts:
            return []

        response = self._request(
            "/embeddings",
            {"model": model or self._embed_model, "input": texts},
        )

        results: list[Optional[np.ndarray]] = [None] * len(texts)
        for item in response.get("data") or []:
            index = item.get("index")
            embedding = item.get("embedding")
            if not isinstance(index, int) or not 0 <= index < len(texts) or not embedding:
                logger.warning("Ignoring malformed embedding item at index %r", index)
                continue
            results[index] = np.asarray(embedding, dtype=np.float32)
        return results

    def generate(self, prompt: str, max_tokens: int = 500, temperature: float = 0.0) -> str:
        response = self._request(
            "/chat/completions",
            {
                "model": self.chat_model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": max_tokens,
                "temperature": temperature,
            },
        )
        choices = response.get("choices") or []
        if not choices:
            raise ProviderError("OpenRouter returned no choices")
        return (choices[0].get("message") or {}).get("content") or ""

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "OpenRouterProvider":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
