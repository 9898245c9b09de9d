"""Protocol for text generation providers."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class GenerationProvider(Protocol):
    """Protocol for chat/completion models used for query expansion."""

    def generate(self, prompt: str, max_tokens: int = 500, temperature: float = 0.0) -> str:
        """Return the completion text for a prompt."""
        ...
