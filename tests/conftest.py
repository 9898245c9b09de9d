"""Shared fixtures: a temporary index and deterministic providers."""

import re
import threading
import zlib
from typing import Optional

import numpy as np
import pytest

from qmd.errors import ProviderError
from qmd.storage import IndexStore

WORD = re.compile(r"[a-z0-9]+")


class HashingEmbedder:
    """Bag-of-words embedder: each word bumps one hashed dimension.

    Texts containing any of ``fail_on`` make the call raise ProviderError.
    """

    def __init__(self, model_name: str = "test/hashing", dimension: int = 512, fail_on=()):
        self._model_name = model_name
        self._dimension = dimension
        self.fail_on = tuple(fail_on)
        self.calls = 0
        self.batches: list[list[str]] = []
        self._lock = threading.Lock()

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dimension(self) -> int:
        return self._dimension

    def vector(self, text: str) -> np.ndarray:
        vec = np.zeros(self._dimension, dtype=np.float32)
        for word in WORD.findall(text.lower()):
            vec[zlib.crc32(word.encode("utf-8")) % self._dimension] += 1.0
        return vec

    def _check(self, texts: list[str]) -> None:
        with self._lock:
            self.calls += 1
            self.batches.append(list(texts))
        for text in texts:
            if any(marker in text for marker in self.fail_on):
                raise ProviderError(f"refusing {text[:20]!r}")

    def embed(self, text: str, model: Optional[str] = None) -> np.ndarray:
        self._check([text])
        return self.vector(text)

    def embed_batch(self, texts: list[str], model: Optional[str] = None) -> list[Optional[np.ndarray]]:
        self._check(texts)
        return [self.vector(text) for text in texts]

    def close(self) -> None:
        pass


class ScriptedGenerator:
    """Generation provider returning a fixed completion, or raising."""

    def __init__(self, output: str = "", error: Optional[Exception] = None):
        self.output = output
        self.error = error
        self.prompts: list[str] = []

    def generate(self, prompt: str, max_tokens: int = 500, temperature: float = 0.0) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.output


AUTH_DOC = """# Authentication Guide

Authentication is configured using environment variables.
To configure authentication, set AUTH_SECRET to a secure random string.
JWT tokens expire after 24 hours by default.
Use OAuth2 for third-party integrations.
"""

DATABASE_DOC = """# Database Configuration

PostgreSQL is the recommended database.
Set DATABASE_URL to your PostgreSQL connection string.
Run migrations with: npm run migrate
Enable connection pooling for production.
"""

DEPLOYMENT_DOC = """# Deployment Guide

Deploy to production using Docker containers.
Set NODE_ENV=production for optimal performance.
Use a reverse proxy like nginx for SSL termination.
Add health checks for load balancers.
"""

SAMPLE_DOCS = {
    "auth.md": AUTH_DOC,
    "database.md": DATABASE_DOC,
    "deployment.md": DEPLOYMENT_DOC,
}


@pytest.fixture
def store(tmp_path) -> IndexStore:
    store = IndexStore(tmp_path / "index.sqlite")
    store.initialize()
    return store


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder()
