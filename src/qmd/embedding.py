"""Embedding pipeline: chunk content and persist one vector per chunk."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Optional

import numpy as np

from qmd.chunkers import TokenChunker
from qmd.errors import ConfigurationError, DataIntegrityError, ProviderError
from qmd.models import Chunk, EmbedReport
from qmd.protocols import ChunkingStrategy, EmbeddingProvider
from qmd.storage import IndexStore

logger = logging.getLogger(__name__)


def embed_input(text: str, title: Optional[str] = None) -> str:
    """Text sent to the provider for a chunk; the title is never stored."""
    return f"{title}\n\n{text}" if title else text


class EmbeddingPipeline:
    """Embeds every chunk of a document that has no vector yet.

    Provider calls are batched and run on a bounded thread pool. Results are
    written from the calling thread, one row per transaction.
    """

    DEFAULT_BATCH_SIZE = 32
    DEFAULT_CONCURRENCY = 4

    def __init__(
        self,
        store: IndexStore,
        provider: EmbeddingProvider,
        chunker: Optional[ChunkingStrategy] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
    ):
        if batch_size <= 0 or concurrency <= 0:
            raise ValueError("batch_size and concurrency must be positive")
        self.store = store
        self.provider = provider
        self.chunker = chunker or TokenChunker()
        self.batch_size = batch_size
        self.concurrency = concurrency
        store.declare_model(provider.model_name, provider.dimension)

    def embed_document(
        self,
        digest: str,
        text: str,
        model: Optional[str] = None,
        force: bool = False,
        title: Optional[str] = None,
    ) -> EmbedReport:
        """Embed the chunks of one piece of content.

        Args:
            digest: Content hash the chunks belong to
            text: The content text
            model: Embedding model, defaults to the provider's model
            force: Re-embed chunks that already have a vector
            title: Optional prefix sent with each chunk

        Returns:
            Counts of embedded, skipped and failed chunks

        Raises:
            ConfigurationError: if the model has no declared dimension
        """
        model = model or self.provider.model_name
        if self.store.model_dimension(model) is None:
            raise ConfigurationError(f"No dimension declared for model {model}")

        chunks = self.chunker.chunk(text)
        done = set() if force else self.store.embedded_sequences(digest, model)
        pending = [chunk for chunk in chunks if chunk.sequence not in done]
        report = EmbedReport(skipped=len(chunks) - len(pending), documents=1)

        if pending:
            self._embed_chunks(digest, pending, model, title, report)

        if force:
            stale = self.store.delete_embeddings(digest, model, from_sequence=len(chunks))
            if stale:
                logger.debug("Removed %d stale chunk vectors for %s", stale, digest[:12])

        return report

    def embed_pending(
        self,
        model: Optional[str] = None,
        force: bool = False,
        collection: Optional[str] = None,
    ) -> EmbedReport:
        """Embed all content reachable from documents."""
        model = model or self.provider.model_name
        report = EmbedReport()
        items = self.store.content_to_embed(collection)
        logger.info("Embedding %d documents with %s", len(items), model)

        for digest, text, title in items:
            doc_report = self.embed_document(digest, text, model=model, force=force, title=title)
            report.merge(doc_report)
            if doc_report.embedded or doc_report.failed:
                logger.info(
                    "  %s  %d embedded, %d failed", title, doc_report.embedded, doc_report.failed
                )

        self.store.set_metadata("embedding_model", model)
        return report

    def _embed_chunks(
        self,
        digest: str,
        chunks: list[Chunk],
        model: str,
        title: Optional[str],
        report: EmbedReport,
    ) -> None:
        batches = [
            chunks[i : i + self.batch_size] for i in range(0, len(chunks), self.batch_size)
        ]
        workers = min(self.concurrency, len(batches))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self._request_batch, batch, model, title): batch
                for batch in batches
            }
            for future in as_completed(futures):
                batch = futures[future]
                try:
                    vectors = future.result()
                except ProviderError as e:
                    logger.warning(
                        "Embedding failed for %d chunks of %s: %s", len(batch), digest[:12], e
                    )
                    report.failed += len(batch)
                    continue

                for chunk, vector in zip(batch, vectors):
                    if vector is None:
                        report.failed += 1
                        continue
                    try:
                        self.store.put_embedding(
                            digest,
                            chunk.sequence,
                            chunk.position,
                            chunk.token_count,
                            vector,
                            model,
                        )
                    except DataIntegrityError as e:
                        logger.warning("Rejected vector: %s", e)
                        report.failed += 1
                        continue
                    report.embedded += 1

    def _request_batch(
        self, batch: list[Chunk], model: str, title: Optional[str]
    ) -> list[Optional[np.ndarray]]:
        texts = [embed_input(chunk.text, title) for chunk in batch]
        vectors = self.provider.embed_batch(texts, model=model)
        if len(vectors) != len(batch):
            raise ProviderError(f"Expected {len(batch)} embeddings, got {len(vectors)}")
        return vectors
