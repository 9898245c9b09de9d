"""Core data models for documents, chunks and search results."""

from dataclasses import dataclass, field
from typing import Literal, Optional

DOCID_LENGTH = 6

QueryType = Literal["lex", "vec", "hyde"]


def docid_for(content_hash: str) -> str:
    """Short user-facing identifier for a content hash."""
    return content_hash[:DOCID_LENGTH]


@dataclass(frozen=True)
class Chunk:
    """A token window of a document's text."""

    sequence: int
    position: int
    text: str
    token_count: int


@dataclass(frozen=True)
class SourceDocument:
    """A document read from an input source, before indexing."""

    path: str
    content: str
    title: Optional[str] = None


@dataclass(frozen=True)
class DocumentRecord:
    """A row of the documents table."""

    collection: str
    path: str
    title: str
    content_hash: str
    created_at: str
    modified_at: str

    @property
    def docid(self) -> str:
        return docid_for(self.content_hash)


@dataclass(frozen=True)
class ChunkHit:
    """A single chunk returned by vector search."""

    content_hash: str
    sequence: int
    score: float
    position: int = 0


@dataclass(frozen=True)
class QueryVariant:
    """One formulation of a user query and the backend it targets."""

    type: QueryType
    text: str


@dataclass
class DocumentScore:
    """A document with its fused score and best-scoring chunk."""

    document: DocumentRecord
    score: float
    best_chunk: ChunkHit


@dataclass(frozen=True)
class SearchResult:
    """Stable result record handed to callers."""

    docid: str
    content_hash: str
    score: float
    collection: str
    path: str
    title: str
    snippet: Optional[str] = None
    position: Optional[int] = None

    def to_dict(self) -> dict:
        data = {
            "docid": self.docid,
            "score": round(self.score, 4),
            "collection": self.collection,
            "path": self.path,
            "title": self.title,
        }
        if self.snippet is not None:
            data["snippet"] = self.snippet
        return data


@dataclass
class EmbedReport:
    """Chunk counts from an embedding run."""

    embedded: int = 0
    skipped: int = 0
    failed: int = 0
    documents: int = 0

    def merge(self, other: "EmbedReport") -> None:
        self.embedded += other.embedded
        self.skipped += other.skipped
        self.failed += other.failed
        self.documents += other.documents


@dataclass
class QueryOutcome:
    """Ranked results plus what happened to each query variant."""

    results: list[SearchResult] = field(default_factory=list)
    variants: list[QueryVariant] = field(default_factory=list)
    failed_variants: int = 0
