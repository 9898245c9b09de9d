"""Runtime configuration loaded from the environment."""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_EMBED_MODEL = "openai/text-embedding-3-large"
DEFAULT_CHAT_MODEL = "openai/gpt-4o-mini"


class Settings(BaseSettings):
    """qmd settings.

    Built once by the top-level process and passed to the components that
    need it; nothing in the library reads the environment on its own.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    # Provider
    openrouter_api_key: Optional[str] = Field(None, alias="OPENROUTER_API_KEY")
    embed_model: str = Field(DEFAULT_EMBED_MODEL, alias="QMD_EMBED_MODEL")
    chat_model: str = Field(DEFAULT_CHAT_MODEL, alias="QMD_CHAT_MODEL")
    base_url: str = Field(DEFAULT_BASE_URL, alias="QMD_BASE_URL")
    request_timeout: float = Field(60.0, alias="QMD_REQUEST_TIMEOUT")

    # Storage
    index_path: Path = Field(Path.home() / ".cache" / "qmd" / "index.sqlite", alias="INDEX_PATH")

    # Chunking and embedding
    chunk_size: int = Field(800, alias="QMD_CHUNK_SIZE", gt=0)
    chunk_overlap: float = Field(0.15, alias="QMD_CHUNK_OVERLAP")
    embed_batch_size: int = Field(32, alias="QMD_EMBED_BATCH_SIZE", gt=0)
    embed_concurrency: int = Field(4, alias="QMD_EMBED_CONCURRENCY", gt=0)

    log_level: str = Field("INFO", alias="QMD_LOG_LEVEL")

    @field_validator("chunk_overlap")
    @classmethod
    def validate_chunk_overlap(cls, v: float) -> float:
        """Overlap is a fraction of the chunk size."""
        if not 0 <= v < 1:
            raise ValueError("chunk_overlap must be in [0, 1)")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return v.upper()
