"""SQLite storage for the qmd index."""

from qmd.storage.store import IndexStore, content_hash

__all__ = ["IndexStore", "content_hash"]
