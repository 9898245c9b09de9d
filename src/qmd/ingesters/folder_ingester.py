"""Ingester for local folders."""

import logging
from pathlib import Path
from typing import Iterator

from qmd.models import SourceDocument

logger = logging.getLogger(__name__)

# Directories never indexed, in addition to hidden ones
SKIP_DIRECTORIES = {
    "__pycache__",
    "node_modules",
    "venv",
    "env",
    "dist",
    "build",
}


class FolderIngester:
    """Ingester for local filesystem folders."""

    source_type = "folder"

    def can_handle(self, source: Path) -> bool:
        """Check if this is an existing directory."""
        return source.is_dir()

    def ingest(self, source: Path, mask: str = "**/*.md") -> Iterator[SourceDocument]:
        """Yield text documents under a folder that match a glob mask.

        Args:
            source: Path to the folder
            mask: Glob pattern relative to the folder

        Yields:
            SourceDocument objects, in path order, for non-empty files
        """
        for full_path in sorted(source.glob(mask)):
            if not full_path.is_file():
                continue
            rel_path = full_path.relative_to(source)
            if self._should_skip(rel_path):
                continue

            try:
                content = full_path.read_bytes().decode("utf-8", errors="replace")
            except OSError as e:
                logger.warning("Cannot read %s: %s", full_path, e)
                continue

            if not content.strip():
                continue

            yield SourceDocument(path=rel_path.as_posix(), content=content)

    def _should_skip(self, path: Path) -> bool:
        """Skip hidden files/folders and common build artifacts."""
        return any(
            part.startswith(".") or part in SKIP_DIRECTORIES or part.endswith(".egg-info")
            for part in path.parts
        )
