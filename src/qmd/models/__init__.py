"""Data models for qmd."""

from qmd.models.document import (
    Chunk,
    ChunkHit,
    DocumentRecord,
    DocumentScore,
    EmbedReport,
    QueryOutcome,
    QueryType,
    QueryVariant,
    SearchResult,
    SourceDocument,
    docid_for,
)

__all__ = [
    "Chunk",
    "ChunkHit",
    "DocumentRecord",
    "DocumentScore",
    "EmbedReport",
    "QueryOutcome",
    "QueryType",
    "QueryVariant",
    "SearchResult",
    "SourceDocument",
    "docid_for",
]
