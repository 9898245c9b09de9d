"""CLI entry point for qmd."""

import argparse
import json
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError

from qmd.chunkers import TokenChunker
from qmd.config import Settings
from qmd.embedding import EmbeddingPipeline
from qmd.errors import ConfigurationError, QmdError
from qmd.expander import QueryExpander
from qmd.indexer import Indexer
from qmd.models import QueryOutcome
from qmd.providers import OpenRouterProvider
from qmd.search import Searcher
from qmd.storage import IndexStore

logger = logging.getLogger(__name__)


def open_store(settings: Settings) -> IndexStore:
    store = IndexStore(settings.index_path)
    store.initialize()
    return store


@contextmanager
def open_provider(settings: Settings, local: bool = False) -> Iterator:
    """Construct the provider for this process and close it on exit."""
    if local:
        # Import here to avoid loading torch unless needed
        from qmd.providers.sentence_transformer import SentenceTransformerEmbedder

        provider = SentenceTransformerEmbedder()
    else:
        provider = OpenRouterProvider.from_settings(settings)
    try:
        yield provider
    finally:
        provider.close()


def add(settings: Settings, source: str, name: str | None, mask: str) -> None:
    """Index a folder as a collection.

    Args:
        source: Folder to scan
        name: Collection name (default: folder name)
        mask: Glob pattern of files to include
    """
    source_path = Path(source).resolve()
    collection = name or source_path.name
    store = open_store(settings)

    logger.info(f"Indexing {source_path} as '{collection}' ({mask})")
    report = Indexer(store).index_folder(collection, source_path, mask)

    logger.info("")
    logger.info(
        f"Collection {collection}: {report.added} added, {report.updated} updated, "
        f"{report.unchanged} unchanged, {report.removed} removed"
    )
    logger.info("Run 'qmd embed' to create embeddings.")


def embed(settings: Settings, force: bool = False, local: bool = False) -> int:
    """Embed every indexed document that is missing vectors.

    Returns:
        Process exit code
    """
    store = open_store(settings)
    chunker = TokenChunker(settings.chunk_size, settings.chunk_overlap)

    with open_provider(settings, local) as provider:
        pipeline = EmbeddingPipeline(
            store,
            provider,
            chunker,
            batch_size=settings.embed_batch_size,
            concurrency=settings.embed_concurrency,
        )
        report = pipeline.embed_pending(force=force)

    logger.info("")
    if report.embedded == 0 and report.failed == 0:
        logger.info("All documents already have embeddings.")
    else:
        logger.info(
            f"Done! {report.embedded} chunks embedded, {report.skipped} skipped, "
            f"{report.failed} failed across {report.documents} documents"
        )
    return 1 if report.failed else 0


def print_outcome(outcome: QueryOutcome, as_json: bool) -> None:
    if as_json:
        print(json.dumps([r.to_dict() for r in outcome.results], indent=2))
        return

    if not outcome.results:
        print("No results found.")
        return

    for r in outcome.results:
        print(f"#{r.docid}  {r.score:.3f}  {r.collection}/{r.path}")
        print(f"  {r.title}")
        if r.snippet:
            snippet = r.snippet[:200].replace("\n", " ")
            print(f"  {snippet}")
        print()

    if outcome.failed_variants:
        logger.warning(f"{outcome.failed_variants} query variants failed")


def search(settings: Settings, args: argparse.Namespace, expand: bool) -> int:
    """Run a query or vsearch command."""
    store = open_store(settings)

    with open_provider(settings, args.local) as provider:
        expander = None
        if expand and not args.local:
            expander = QueryExpander(provider)
        searcher = Searcher(store, provider, expander)
        outcome = searcher.query(
            args.query,
            limit=args.n,
            min_score=args.min_score,
            all_matches=args.all,
            collection=args.collection,
            expand=expand,
        )

    print_outcome(outcome, args.json)
    return 0


def get(settings: Settings, ref: str) -> int:
    """Print a document by docid or path."""
    store = open_store(settings)
    docs = store.find_by_path(ref) or store.find_by_docid(ref)

    if not docs:
        logger.error(f"Document not found: {ref}")
        return 1

    if len({d.content_hash for d in docs}) > 1:
        logger.error(f"Ambiguous docid {ref}, matches:")
        for d in docs:
            logger.error(f"  #{d.content_hash[:12]}  {d.collection}/{d.path}")
        return 1

    print(store.get_content(docs[0].content_hash) or "")
    return 0


def status(settings: Settings, local: bool = False) -> None:
    """Show information about the index."""
    store = open_store(settings)
    info = store.status()
    last_model = store.get_metadata("embedding_model")

    print("QMD Status")
    print(f"  Index: {settings.index_path}")
    print(f"  Documents: {info['documents']}")
    print(f"  Unique content: {info['content']}")
    print("")
    print("Collections:")
    for c in info["collections"]:
        print(f"  {c['name']}: {c['documents']} documents (updated {c['last_modified']})")
    print("")
    print("Embeddings:")
    for model, m in info["models"].items():
        print(f"  {model} ({m['dimension']}d): {m['vectors']} vectors")
    if last_model:
        print(f"  Last embedded with: {last_model}")
        if not local and last_model != settings.embed_model:
            logger.warning(
                f"Index was last embedded with {last_model}, "
                f"but QMD_EMBED_MODEL is {settings.embed_model}. Run 'qmd embed'."
            )


def remove(settings: Settings, name: str) -> int:
    store = open_store(settings)
    removed = store.remove_collection(name)
    if not removed:
        logger.error(f"No collection named {name}")
        return 1
    logger.info(f"Removed collection {name} ({removed} documents)")
    return 0


def serve(settings: Settings, transport: str = "stdio", local: bool = False) -> None:
    """Start an MCP server over the index.

    Args:
        transport: Transport protocol (stdio or sse)
    """
    # Import here to avoid loading MCP unless needed
    from qmd.server import create_mcp_server

    from typing import cast, Literal

    store = open_store(settings)
    with open_provider(settings, local) as provider:
        expander = None if local else QueryExpander(provider)
        mcp = create_mcp_server(store, Searcher(store, provider, expander))
        logger.info(f"Serving {settings.index_path} via {transport}")
        mcp.run(transport=cast(Literal["stdio", "sse", "streamable-http"], transport))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qmd",
        description="qmd - index documents and search them by meaning",
        epilog=(
            "Environment: OPENROUTER_API_KEY (required for the API provider), "
            "QMD_EMBED_MODEL (default: openai/text-embedding-3-large), "
            "QMD_CHAT_MODEL, INDEX_PATH"
        ),
    )
    parser.add_argument(
        "--local",
        action="store_true",
        help="Embed with a local sentence-transformers model instead of OpenRouter",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # add command
    add_parser = subparsers.add_parser("add", help="Index a folder as a collection")
    add_parser.add_argument("source", help="Folder to index")
    add_parser.add_argument("--name", help="Collection name (default: folder name)")
    add_parser.add_argument(
        "--mask",
        default="**/*.md",
        help="Glob pattern of files to index (default: **/*.md)",
    )

    # embed command
    embed_parser = subparsers.add_parser("embed", help="Create missing embeddings")
    embed_parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Re-embed chunks that already have vectors",
    )

    # query and vsearch commands
    for command, help_text in (
        ("query", "Search with query expansion"),
        ("vsearch", "Vector search with the query as given"),
    ):
        search_parser = subparsers.add_parser(command, help=help_text)
        search_parser.add_argument("query", help="Search query")
        search_parser.add_argument("-n", type=int, default=5, help="Number of results (default: 5)")
        search_parser.add_argument("--min-score", type=float, default=None, help="Minimum score")
        search_parser.add_argument("--all", action="store_true", help="Return all matches")
        search_parser.add_argument("-c", "--collection", help="Restrict to one collection")
        search_parser.add_argument("--json", action="store_true", help="JSON output")

    # get command
    get_parser = subparsers.add_parser("get", help="Print a document by docid or path")
    get_parser.add_argument("ref", help="Docid (#abc123) or path")

    # status command
    subparsers.add_parser("status", help="Show information about the index")

    # remove command
    remove_parser = subparsers.add_parser("remove", help="Remove a collection")
    remove_parser.add_argument("name", help="Collection name")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start MCP server for the index")
    serve_parser.add_argument(
        "--transport",
        choices=["stdio", "sse"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = Settings()
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    logging.basicConfig(
        level=settings.log_level,
        format="%(message)s",
    )

    code = 0
    try:
        if args.command == "add":
            add(settings, args.source, args.name, args.mask)
        elif args.command == "embed":
            code = embed(settings, args.force, args.local)
        elif args.command == "query":
            code = search(settings, args, expand=True)
        elif args.command == "vsearch":
            code = search(settings, args, expand=False)
        elif args.command == "get":
            code = get(settings, args.ref)
        elif args.command == "status":
            status(settings, args.local)
        elif args.command == "remove":
            code = remove(settings, args.name)
        elif args.command == "serve":
            serve(settings, args.transport, args.local)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        code = 2
    except (QmdError, ValueError) as e:
        logger.error(f"Error: {e}")
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
