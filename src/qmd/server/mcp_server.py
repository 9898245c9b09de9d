"""FastMCP server exposing a qmd index."""

from mcp.server.fastmcp import FastMCP

from qmd.errors import SearchError
from qmd.search import Searcher
from qmd.storage import IndexStore


def create_mcp_server(store: IndexStore, searcher: Searcher) -> FastMCP:
    """Create an MCP server over an index.

    The store and searcher (and the provider behind it) are owned by the
    caller and outlive the server.

    Args:
        store: Index to serve
        searcher: Searcher bound to the same store

    Returns:
        Configured FastMCP server instance
    """
    mcp = FastMCP(
        name="qmd",
    )

    @mcp.tool()
    def query(query: str, limit: int = 5, min_score: float = 0.0, collection: str = "") -> str:
        """Semantic search across the index with query expansion.

        Use this to find documents by concept, not just keyword. The query
        is rephrased several ways and the best-matching chunk of each
        document decides its score.

        Args:
            query: Natural language description of what you're looking for
            limit: Maximum number of documents to return (default: 5)
            min_score: Drop documents scoring below this (default: 0.0)
            collection: Optional collection name to restrict the search

        Returns:
            Ranked list of documents with docid, score and snippet
        """
        try:
            outcome = searcher.query(
                query,
                limit=limit,
                min_score=min_score or None,
                collection=collection or None,
            )
        except SearchError as e:
            return f"Error: {e}"

        if not outcome.results:
            return f"No results found for: {query}"

        lines = []
        for i, r in enumerate(outcome.results, 1):
            snippet = (r.snippet or "")[:200].replace("\n", " ")
            lines.append(f"{i}. [{r.score:.3f}] #{r.docid} {r.collection}/{r.path}")
            if snippet:
                lines.append(f"   {snippet}")
            lines.append("")
        if outcome.failed_variants:
            lines.append(f"({outcome.failed_variants} query variants failed)")

        return "\n".join(lines)

    @mcp.tool()
    def get(ref: str) -> str:
        """Read a document by docid (e.g. "#a1b2c3") or path.

        Args:
            ref: A docid, a relative path, or collection/path

        Returns:
            Document content, or a list of candidates if the ref is ambiguous
        """
        docs = store.find_by_path(ref) or store.find_by_docid(ref)
        if not docs:
            return f"Error: Document not found: {ref}"

        hashes = {d.content_hash for d in docs}
        if len(hashes) > 1:
            candidates = "\n".join(f"  #{d.content_hash[:12]} {d.collection}/{d.path}" for d in docs)
            return f"Ambiguous reference {ref}, matches:\n{candidates}"

        return store.get_content(docs[0].content_hash) or ""

    @mcp.tool()
    def ls(collection: str = "") -> str:
        """List indexed documents.

        Args:
            collection: Optional collection name to filter results

        Returns:
            One line per document with docid and path
        """
        docs = store.list_documents(collection or None)
        if not docs:
            return f"No documents found in '{collection}'" if collection else "Index is empty"

        return "\n".join(f"#{d.docid}  {d.collection}/{d.path:<60} {d.title}" for d in docs)

    @mcp.tool()
    def status() -> str:
        """Summarize collections and embeddings in the index."""
        info = store.status()
        lines = [f"Documents: {info['documents']}  Unique content: {info['content']}"]
        for c in info["collections"]:
            lines.append(f"  {c['name']}: {c['documents']} documents")
        for model, m in info["models"].items():
            lines.append(f"  {model} ({m['dimension']}d): {m['vectors']} vectors")
        return "\n".join(lines)

    return mcp
