"""Multi-variant vector search with best-chunk-wins fusion."""

import logging
import sys
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Iterable, Optional

from qmd.errors import ProviderError, SearchError
from qmd.expander import QueryExpander
from qmd.models import (
    ChunkHit,
    DocumentRecord,
    DocumentScore,
    QueryOutcome,
    QueryVariant,
    SearchResult,
)
from qmd.protocols import EmbeddingProvider
from qmd.storage import IndexStore

logger = logging.getLogger(__name__)

SEARCHABLE_TYPES = ("vec", "hyde")
DEFAULT_LIMIT = 5
DEFAULT_CANDIDATE_LIMIT = 30
SNIPPET_LENGTH = 300


def fuse(
    variant_results: list[list[ChunkHit]],
    documents_by_hash: dict[str, list[DocumentRecord]],
    per_variant_limit: Optional[int] = None,
) -> list[DocumentScore]:
    """Merge chunk hits from every variant into one score per document.

    A document scores the maximum over all its chunks and all variants
    (best chunk wins; chunk scores are not summed).

    Ordering is score descending, then shortest path, then content hash.
    """
    best: dict[tuple[str, str], DocumentScore] = {}
    for hits in variant_results:
        if per_variant_limit is not None:
            hits = hits[:per_variant_limit]
        for hit in hits:
            for doc in documents_by_hash.get(hit.content_hash, ()):
                key = (doc.collection, doc.path)
                current = best.get(key)
                if current is None or hit.score > current.score:
                    best[key] = DocumentScore(document=doc, score=hit.score, best_chunk=hit)

    return sorted(
        best.values(),
        key=lambda s: (
            -s.score,
            len(s.document.path),
            s.document.content_hash,
            s.document.collection,
            s.document.path,
        ),
    )


def rank(
    fused: Iterable[DocumentScore],
    min_score: Optional[float] = None,
    limit: Optional[int] = DEFAULT_LIMIT,
    all_matches: bool = False,
) -> list[DocumentScore]:
    """Apply the score threshold, then the result limit."""
    ranked = [s for s in fused if min_score is None or s.score >= min_score]
    if all_matches or limit is None:
        return ranked
    return ranked[:limit]


def rerank(query: str, scored: list[DocumentScore]) -> list[DocumentScore]:
    """Reranking hook. Currently keeps the fused order."""
    return list(scored)


class Searcher:
    """Answers queries against an index with one embedding provider."""

    def __init__(
        self,
        store: IndexStore,
        embedder: EmbeddingProvider,
        expander: Optional[QueryExpander] = None,
        model: Optional[str] = None,
        max_workers: int = 4,
    ):
        self.store = store
        self.embedder = embedder
        self.expander = expander
        self.model = model or embedder.model_name
        self.max_workers = max_workers

    def search_vec(self, text: str, limit: int, collection: Optional[str] = None) -> list[ChunkHit]:
        """Embed a query text and return the nearest chunks."""
        vector = self.embedder.embed(text, model=self.model)
        return self.store.search_vec(vector, self.model, limit, collection=collection)

    def expand(self, query: str, context: Optional[str] = None) -> list[QueryVariant]:
        original = QueryVariant(type="vec", text=query)
        if self.expander is None:
            return [original]
        variants = self.expander.expand(query, context=context)
        if not variants or variants[0] != original:
            variants = [original, *(v for v in variants if v != original)]
        return variants

    def query(
        self,
        query: str,
        limit: int = DEFAULT_LIMIT,
        min_score: Optional[float] = None,
        all_matches: bool = False,
        collection: Optional[str] = None,
        expand: bool = True,
        candidate_limit: Optional[int] = None,
        context: Optional[str] = None,
    ) -> QueryOutcome:
        """Search with every variant of a query and fuse the results.

        Raises:
            SearchError: if the original query cannot be embedded
        """
        variants = self.expand(query, context) if expand else [QueryVariant("vec", query)]
        searchable = [v for v in variants if v.type in SEARCHABLE_TYPES]
        if candidate_limit is None:
            candidate_limit = sys.maxsize if all_matches else max(DEFAULT_CANDIDATE_LIMIT, limit * 3)

        variant_results, failed = self._search_variants(searchable, candidate_limit, collection)

        hashes = {hit.content_hash for hits in variant_results for hit in hits}
        documents = self.store.documents_for_hashes(hashes, collection=collection)
        fused = fuse(variant_results, documents)
        ranked = rerank(query, rank(fused, min_score=min_score, limit=limit, all_matches=all_matches))

        logger.debug(
            "Query %r: %d variants, %d failed, %d documents", query, len(searchable), failed, len(ranked)
        )
        return QueryOutcome(
            results=self._to_results(ranked),
            variants=variants,
            failed_variants=failed,
        )

    def vsearch(self, query: str, **kwargs) -> QueryOutcome:
        """Single-variant search with the query as given."""
        return self.query(query, expand=False, **kwargs)

    def _search_variants(
        self, variants: list[QueryVariant], limit: int, collection: Optional[str] = None
    ) -> tuple[list[list[ChunkHit]], int]:
        workers = max(1, min(self.max_workers, len(variants)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(self.search_vec, v.text, limit, collection) for v in variants
            ]
            wait(futures)

        results: list[list[ChunkHit]] = []
        failed = 0
        for index, (variant, future) in enumerate(zip(variants, futures)):
            try:
                results.append(future.result())
            except ProviderError as e:
                if index == 0:
                    raise SearchError(f"Could not embed query {variant.text!r}: {e}") from e
                logger.warning("Skipping %s variant %r: %s", variant.type, variant.text, e)
                failed += 1
        return results, failed

    def _to_results(self, ranked: list[DocumentScore]) -> list[SearchResult]:
        texts: dict[str, Optional[str]] = {}
        results = []
        for scored in ranked:
            doc = scored.document
            if doc.content_hash not in texts:
                texts[doc.content_hash] = self.store.get_content(doc.content_hash)
            text = texts[doc.content_hash]
            position = scored.best_chunk.position
            snippet = text[position : position + SNIPPET_LENGTH].strip() if text else None
            results.append(
                SearchResult(
                    docid=doc.docid,
                    content_hash=doc.content_hash,
                    score=scored.score,
                    collection=doc.collection,
                    path=doc.path,
                    title=doc.title,
                    snippet=snippet,
                    position=position,
                )
            )
        return results
