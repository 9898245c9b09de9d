"""SQLite-backed storage for the qmd index."""

import hashlib
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional

import numpy as np

from qmd.errors import ConfigurationError, DataIntegrityError
from qmd.models import ChunkHit, DocumentRecord
from qmd.storage.schema import SCHEMA

logger = logging.getLogger(__name__)

_DOCUMENT_COLUMNS = "collection, path, title, hash, created_at, modified_at"


def content_hash(text: str) -> str:
    """SHA-256 hex digest of a document body."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_document(row: sqlite3.Row) -> DocumentRecord:
    return DocumentRecord(
        collection=row["collection"],
        path=row["path"],
        title=row["title"],
        content_hash=row["hash"],
        created_at=row["created_at"],
        modified_at=row["modified_at"],
    )


class IndexStore:
    """SQLite-backed storage for content, documents and embeddings.

    Every call opens its own connection, so one store can be shared by
    indexing and search threads.
    """

    BUSY_TIMEOUT = 30.0

    def __init__(self, path: Path | str):
        self.path = Path(path)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        conn = sqlite3.connect(self.path, timeout=self.BUSY_TIMEOUT)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create schema if not exists."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)

    # Content and documents

    def put_content(self, text: str, created_at: Optional[str] = None) -> str:
        """Store a document body once and return its hash."""
        digest = content_hash(text)
        with self.connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO content (hash, doc, created_at) VALUES (?, ?, ?)",
                (digest, text, created_at or utc_now()),
            )
        return digest

    def get_content(self, digest: str) -> Optional[str]:
        with self.connection() as conn:
            row = conn.execute("SELECT doc FROM content WHERE hash = ?", (digest,)).fetchone()
            return row["doc"] if row else None

    def put_document(
        self,
        collection: str,
        path: str,
        title: str,
        digest: str,
        created_at: str,
        modified_at: str,
    ) -> bool:
        """Insert or update a document by (collection, path).

        Returns:
            True if the document is new or now points at different content
        """
        with self.connection() as conn:
            row = conn.execute(
                "SELECT hash FROM documents WHERE collection = ? AND path = ?",
                (collection, path),
            ).fetchone()
            conn.execute(
                """INSERT INTO documents (collection, path, title, hash, created_at, modified_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT (collection, path) DO UPDATE SET
                       title = excluded.title,
                       hash = excluded.hash,
                       modified_at = excluded.modified_at""",
                (collection, path, title, digest, created_at, modified_at),
            )
        if row is not None and row["hash"] != digest:
            logger.debug("Content changed for %s/%s", collection, path)
        return row is None or row["hash"] != digest

    def get_document(self, collection: str, path: str) -> Optional[DocumentRecord]:
        with self.connection() as conn:
            row = conn.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE collection = ? AND path = ?",
                (collection, path),
            ).fetchone()
            return _to_document(row) if row else None

    def find_by_path(self, path: str) -> list[DocumentRecord]:
        """Find documents by relative path or ``collection/path``."""
        with self.connection() as conn:
            cursor = conn.execute(
                f"""SELECT {_DOCUMENT_COLUMNS} FROM documents
                    WHERE path = ? OR collection || '/' || path = ?
                    ORDER BY collection, path""",
                (path, path),
            )
            return [_to_document(row) for row in cursor]

    def find_by_docid(self, docid: str) -> list[DocumentRecord]:
        """Find every document whose content hash starts with ``docid``.

        More than one distinct hash in the result means the short id is
        ambiguous; the caller decides what to do with it.
        """
        prefix = docid.lstrip("#").lower()
        if not prefix or any(c not in "0123456789abcdef" for c in prefix):
            return []
        with self.connection() as conn:
            cursor = conn.execute(
                f"""SELECT {_DOCUMENT_COLUMNS} FROM documents
                    WHERE hash LIKE ? ORDER BY hash, collection, path""",
                (f"{prefix}%",),
            )
            return [_to_document(row) for row in cursor]

    def list_documents(self, collection: Optional[str] = None) -> list[DocumentRecord]:
        with self.connection() as conn:
            if collection is None:
                cursor = conn.execute(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY collection, path"
                )
            else:
                cursor = conn.execute(
                    f"""SELECT {_DOCUMENT_COLUMNS} FROM documents
                        WHERE collection = ? ORDER BY path""",
                    (collection,),
                )
            return [_to_document(row) for row in cursor]

    def list_collections(self) -> list[dict]:
        with self.connection() as conn:
            cursor = conn.execute(
                """SELECT collection AS name, COUNT(*) AS documents,
                          MAX(modified_at) AS last_modified
                   FROM documents GROUP BY collection ORDER BY collection"""
            )
            return [dict(row) for row in cursor]

    def remove_document(self, collection: str, path: str) -> bool:
        with self.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND path = ?",
                (collection, path),
            )
            return cursor.rowcount > 0

    def remove_collection(self, collection: str) -> int:
        """Drop a collection's documents. Content and embeddings are kept."""
        with self.connection() as conn:
            cursor = conn.execute("DELETE FROM documents WHERE collection = ?", (collection,))
            return cursor.rowcount

    def content_to_embed(self, collection: Optional[str] = None) -> list[tuple[str, str, str]]:
        """Distinct (hash, text, title) reachable from documents."""
        query = """SELECT d.hash AS hash, c.doc AS doc, MIN(d.title) AS title
                   FROM documents d JOIN content c ON c.hash = d.hash"""
        params: tuple = ()
        if collection is not None:
            query += " WHERE d.collection = ?"
            params = (collection,)
        query += " GROUP BY d.hash ORDER BY d.hash"
        with self.connection() as conn:
            return [(row["hash"], row["doc"], row["title"]) for row in conn.execute(query, params)]

    # Models and embeddings

    def declare_model(self, model: str, dimension: int) -> None:
        """Record the vector dimension of a model.

        Raises:
            ConfigurationError: if the model was declared with another dimension
        """
        if dimension <= 0:
            raise ConfigurationError(f"Invalid dimension {dimension} for model {model}")
        with self.connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO models (model, dimension) VALUES (?, ?)",
                (model, dimension),
            )
            row = conn.execute(
                "SELECT dimension FROM models WHERE model = ?", (model,)
            ).fetchone()
        if row["dimension"] != dimension:
            raise ConfigurationError(
                f"Model {model} already declared with dimension {row['dimension']}, "
                f"not {dimension}"
            )

    def model_dimension(self, model: str) -> Optional[int]:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT dimension FROM models WHERE model = ?", (model,)
            ).fetchone()
            return row["dimension"] if row else None

    def embedded_sequences(self, digest: str, model: str) -> set[int]:
        with self.connection() as conn:
            cursor = conn.execute(
                "SELECT seq FROM content_vectors WHERE hash = ? AND model = ?",
                (digest, model),
            )
            return {row["seq"] for row in cursor}

    def put_embedding(
        self,
        digest: str,
        sequence: int,
        position: int,
        tokens: int,
        vector: np.ndarray,
        model: str,
        created_at: Optional[str] = None,
    ) -> None:
        """Write one chunk embedding, replacing any previous vector for the key.

        Raises:
            ConfigurationError: if the model has no declared dimension
            DataIntegrityError: if the vector length does not match it
        """
        dimension = self.model_dimension(model)
        if dimension is None:
            raise ConfigurationError(f"No dimension declared for model {model}")
        data = np.asarray(vector, dtype=np.float32).reshape(-1)
        if data.shape[0] != dimension:
            raise DataIntegrityError(
                f"Vector for {digest[:12]}:{sequence} has {data.shape[0]} dimensions, "
                f"model {model} declares {dimension}"
            )
        with self.connection() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO content_vectors
                   (hash, seq, pos, tokens, model, embedding, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (digest, sequence, position, tokens, model, data.tobytes(), created_at or utc_now()),
            )

    def delete_embeddings(self, digest: str, model: str, from_sequence: int = 0) -> int:
        """Delete a hash's embeddings for a model from ``from_sequence`` on."""
        with self.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM content_vectors WHERE hash = ? AND model = ? AND seq >= ?",
                (digest, model, from_sequence),
            )
            return cursor.rowcount

    def search_vec(
        self,
        query_vector: np.ndarray,
        model: str,
        limit: int,
        collection: Optional[str] = None,
    ) -> list[ChunkHit]:
        """Find the chunks of ``model`` most similar to a query vector.

        Only content that a document points at (in ``collection``, if
        given) is a candidate. Scores are cosine similarities. Ties are
        broken by (hash, seq).
        """
        if limit <= 0:
            return []
        query = np.asarray(query_vector, dtype=np.float32).reshape(-1)
        sql = """SELECT hash, seq, pos, embedding FROM content_vectors
                 WHERE model = ? AND hash IN (SELECT hash FROM documents{where})"""
        params: list = [model]
        if collection is not None:
            sql = sql.format(where=" WHERE collection = ?")
            params.append(collection)
        else:
            sql = sql.format(where="")
        with self.connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        if not rows:
            return []

        matrix = np.vstack([np.frombuffer(row["embedding"], dtype=np.float32) for row in rows])
        if matrix.shape[1] != query.shape[0]:
            raise DataIntegrityError(
                f"Query vector has {query.shape[0]} dimensions, "
                f"model {model} stores {matrix.shape[1]}"
            )
        scores = self._cosine_similarities(matrix, query)

        hits = [
            ChunkHit(
                content_hash=row["hash"],
                sequence=row["seq"],
                score=float(score),
                position=row["pos"],
            )
            for row, score in zip(rows, scores)
        ]
        hits.sort(key=lambda h: (-h.score, h.content_hash, h.sequence))
        return hits[:limit]

    def documents_for_hashes(
        self, hashes: Iterable[str], collection: Optional[str] = None
    ) -> dict[str, list[DocumentRecord]]:
        """Map content hashes to the documents that currently use them."""
        unique = sorted(set(hashes))
        if not unique:
            return {}
        placeholders = ", ".join("?" for _ in unique)
        query = f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE hash IN ({placeholders})"
        params: list = list(unique)
        if collection is not None:
            query += " AND collection = ?"
            params.append(collection)
        query += " ORDER BY collection, path"

        result: dict[str, list[DocumentRecord]] = {}
        with self.connection() as conn:
            for row in conn.execute(query, params):
                doc = _to_document(row)
                result.setdefault(doc.content_hash, []).append(doc)
        return result

    # Metadata

    def set_metadata(self, key: str, value: str) -> None:
        """Store a metadata key-value pair."""
        with self.connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                (key, value),
            )

    def get_metadata(self, key: str) -> Optional[str]:
        """Retrieve a metadata value by key."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT value FROM metadata WHERE key = ?", (key,)
            ).fetchone()
            return row["value"] if row else None

    def status(self) -> dict:
        """Row counts for the status command."""
        with self.connection() as conn:
            documents = conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
            content = conn.execute("SELECT COUNT(*) FROM content").fetchone()[0]
            models = {
                row["model"]: {"dimension": row["dimension"], "vectors": row["vectors"]}
                for row in conn.execute(
                    """SELECT m.model AS model, m.dimension AS dimension,
                              COUNT(v.hash) AS vectors
                       FROM models m LEFT JOIN content_vectors v ON v.model = m.model
                       GROUP BY m.model ORDER BY m.model"""
                )
            }
        return {
            "documents": documents,
            "content": content,
            "collections": self.list_collections(),
            "models": models,
        }

    @staticmethod
    def _cosine_similarities(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
        """Cosine similarity of each matrix row with the query."""
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = np.where(norms > 0, dots / norms, 0.0)
        return np.clip(scores, -1.0, 1.0)
