"""Database schema for the qmd index."""

SCHEMA = """
-- Content table: raw document text keyed by its SHA-256 digest
CREATE TABLE IF NOT EXISTS content (
    hash TEXT PRIMARY KEY,
    doc TEXT NOT NULL,
    created_at TEXT NOT NULL
);

-- Documents table: one row per (collection, path), pointing at content
CREATE TABLE IF NOT EXISTS documents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    collection TEXT NOT NULL,
    path TEXT NOT NULL,
    title TEXT NOT NULL,
    hash TEXT NOT NULL,
    created_at TEXT NOT NULL,
    modified_at TEXT NOT NULL,
    UNIQUE (collection, path),
    FOREIGN KEY (hash) REFERENCES content(hash)
);

-- Models table: embedding dimension, declared before any vector is written
CREATE TABLE IF NOT EXISTS models (
    model TEXT PRIMARY KEY,
    dimension INTEGER NOT NULL
);

-- Vectors table: one embedding per (hash, seq, model)
CREATE TABLE IF NOT EXISTS content_vectors (
    hash TEXT NOT NULL,
    seq INTEGER NOT NULL,
    pos INTEGER NOT NULL DEFAULT 0,
    tokens INTEGER NOT NULL DEFAULT 0,
    model TEXT NOT NULL,
    embedding BLOB NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (hash, seq, model),
    FOREIGN KEY (hash) REFERENCES content(hash),
    FOREIGN KEY (model) REFERENCES models(model)
);

-- Metadata table: stores index metadata
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT
);

-- Indexes for efficient queries
CREATE INDEX IF NOT EXISTS idx_documents_hash ON documents(hash);
CREATE INDEX IF NOT EXISTS idx_documents_path ON documents(path);
CREATE INDEX IF NOT EXISTS idx_vectors_model ON content_vectors(model);
"""
