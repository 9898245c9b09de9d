"""qmd - content-addressed document index with multi-query vector search."""

__version__ = "0.3.0"
