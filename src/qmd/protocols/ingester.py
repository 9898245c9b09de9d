"""Protocol for input source handlers."""

from pathlib import Path
from typing import Iterator, Protocol, runtime_checkable

from qmd.models import SourceDocument


@runtime_checkable
class Ingester(Protocol):
    """Protocol for input source handlers.

    Uses structural subtyping - no inheritance required.
    """

    @property
    def source_type(self) -> str:
        """Return identifier for this source type (e.g., 'folder')."""
        ...

    def can_handle(self, source: Path) -> bool:
        """Check if this ingester can process the given source."""
        ...

    def ingest(self, source: Path, mask: str) -> Iterator[SourceDocument]:
        """Yield text documents under the source matching the glob mask."""
        ...
