"""Indexing of documents into the content store."""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Literal, Optional

from qmd.ingesters import get_ingester
from qmd.storage import IndexStore
from qmd.storage.store import utc_now

logger = logging.getLogger(__name__)

IndexStatus = Literal["added", "updated", "unchanged"]

HEADING = re.compile(r"^\s{0,3}#{1,6}\s+(.+?)\s*#*\s*$", re.MULTILINE)


def extract_title(content: str, path: str) -> str:
    """First markdown heading, else the file name without extension."""
    match = HEADING.search(content)
    if match:
        return match.group(1).strip()
    return PurePosixPath(path).stem


@dataclass(frozen=True)
class IndexResult:
    collection: str
    path: str
    content_hash: str
    status: IndexStatus


@dataclass
class FolderReport:
    added: int = 0
    updated: int = 0
    unchanged: int = 0
    removed: int = 0
    results: list[IndexResult] = field(default_factory=list)


class Indexer:
    """Writes documents and their content into an IndexStore."""

    def __init__(self, store: IndexStore):
        self.store = store

    def index_document(
        self,
        collection: str,
        path: str,
        content: str,
        title: Optional[str] = None,
    ) -> IndexResult:
        """Store a document body and point (collection, path) at it."""
        now = utc_now()
        existing = self.store.get_document(collection, path)
        digest = self.store.put_content(content, created_at=now)
        title = title or extract_title(content, path)

        if existing is not None and existing.content_hash == digest and existing.title == title:
            return IndexResult(collection, path, digest, "unchanged")

        self.store.put_document(
            collection,
            path,
            title,
            digest,
            created_at=existing.created_at if existing else now,
            modified_at=now,
        )
        status: IndexStatus = "added" if existing is None else "updated"
        return IndexResult(collection, path, digest, status)

    def index_folder(self, collection: str, root: Path | str, mask: str = "**/*.md") -> FolderReport:
        """Index every file under a folder matching ``mask``.

        Documents of the collection whose files are gone are removed.

        Raises:
            ValueError: if no ingester can read the source
        """
        source = Path(root)
        ingester = get_ingester(source)
        if ingester is None:
            raise ValueError(f"Cannot index {source}: not a folder")

        report = FolderReport()
        seen: set[str] = set()
        for doc in ingester.ingest(source, mask):
            result = self.index_document(collection, doc.path, doc.content, doc.title)
            seen.add(doc.path)
            report.results.append(result)
            if result.status == "unchanged":
                report.unchanged += 1
                continue
            if result.status == "added":
                report.added += 1
            else:
                report.updated += 1
            logger.info("  %s %s", result.status, doc.path)

        for existing in self.store.list_documents(collection):
            if existing.path not in seen:
                self.store.remove_document(collection, existing.path)
                report.removed += 1
                logger.info("  removed %s", existing.path)

        return report
