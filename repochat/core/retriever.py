"""Ingestion and retrieval against the chunk index.

Retriever is the knowledge-backend contract: it maps a source descriptor
to a corpus id, drives loader -> chunker -> embedder -> store at ingestion
time, and returns ranked chunks with provenance at query time. Ranking
itself is RelevanceScorer's job (scoring.py).
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

import numpy as np

from .chunk import Chunk, LoadedSource, RetrievedChunk
from .chunk_store import ChunkStore
from .chunking import FileChunker
from .embedder import Embedder
from .errors import InvalidInputError, PartialIngestionError, RepoChatError, UpstreamError
from .loader import SourceLoader, corpus_id_for
from .scoring import RelevanceScorer

logger = logging.getLogger(__name__)


@dataclass
class RetrievalConfig:
    """Configuration for ingestion and retrieval."""

    top_k: int = 5  # Results requested from search
    min_results: int = 3  # Widen meta queries that return fewer than this
    max_results: int = 8  # Cap after widening
    embed_batch_size: int = 256  # Texts per embedding call
    timeout_seconds: float = 120.0  # Per external call (loader, embedding)


class Retriever:
    """Builds corpora and retrieves chunks from them.

    Ingestion:
    1. Derive a stable corpus id from the descriptor
    2. Load files through the source loader
    3. Chunk every file (undecodable files are skipped)
    4. Embed all chunks in order-preserving batches
    5. Atomically replace the corpus in the store

    A failure in steps 2 or 4 aborts ingestion and leaves the previously
    indexed corpus untouched.

    Retrieval searches one corpus and, for "what language is this?" queries
    that come back thin, widens the result set with manifest, README and
    matching-extension files.
    """

    def __init__(
        self,
        store: ChunkStore,
        loader: SourceLoader,
        chunker: FileChunker,
        embedder: Embedder,
        scorer: Optional[RelevanceScorer] = None,
        config: Optional[RetrievalConfig] = None,
    ):
        """Initialize the retriever.

        Args:
            store: ChunkStore holding every corpus.
            loader: SourceLoader for fetching repository files.
            chunker: FileChunker for splitting files.
            embedder: Embedder for encoding chunks.
            scorer: RelevanceScorer for meta-query detection and widening
                (shared with the store; the store's scorer if None).
            config: Retrieval configuration (uses defaults if not provided).
        """
        self.store = store
        self.loader = loader
        self.chunker = chunker
        self.embedder = embedder
        self.scorer = scorer or store.scorer
        self.config = config or RetrievalConfig()
        self._ingest_locks: dict[str, asyncio.Lock] = {}
        self._ingest_users: dict[str, int] = {}

    async def ingest(self, descriptor: str) -> str:
        """Index a source, replacing any previous content of its corpus.

        Repeated ingestion of the same descriptor yields the same corpus id.
        Concurrent ingestions of one corpus run one after another; different
        corpora ingest independently.

        Args:
            descriptor: Local path or repository URL.

        Returns:
            The corpus id.

        Raises:
            InvalidInputError: Malformed descriptor.
            UpstreamError: The loader failed or timed out.
            PartialIngestionError: Embedding failed; nothing was indexed.
        """
        corpus_id, _ = await self.ingest_loaded(descriptor)
        return corpus_id

    async def ingest_loaded(self, descriptor: str) -> tuple[str, LoadedSource]:
        """Like ingest, but also return what the loader produced."""
        corpus_id = corpus_id_for(descriptor)

        async with self._corpus_lock(corpus_id):
            source = await self.load_source(descriptor)
            chunks = self.chunker.chunk_files(source.files, corpus_id)
            logger.info(
                "Chunked %d files of %s into %d chunks",
                len(source.files),
                corpus_id,
                len(chunks),
            )
            if chunks:
                await self._embed(chunks)
            else:
                logger.warning("No chunkable content in %s", descriptor)
            self.store.replace_corpus(corpus_id, chunks)

        return corpus_id, source

    async def retrieve(self, corpus_id: str, query: str) -> list[RetrievedChunk]:
        """Ranked chunks of one corpus for a query.

        Args:
            corpus_id: Corpus to search.
            query: User question.

        Returns:
            RetrievedChunks, best first. Empty when the corpus has not been
            ingested (not an error).

        Raises:
            InvalidInputError: Empty query or corpus id.
        """
        if not query or not query.strip():
            raise InvalidInputError("Query must not be empty")
        if not corpus_id:
            raise InvalidInputError("Corpus id must not be empty")

        with self.store.lock:
            corpus_chunks = self.store.list_by_corpus(corpus_id)
            if not corpus_chunks:
                logger.info("Corpus %s is not ingested", corpus_id)
                return []
            results = self.store.search(query, self.config.top_k, corpus_id=corpus_id)

        if self.scorer.is_meta_query(query) and len(results) < self.config.min_results:
            results = self._widen(query, results, corpus_chunks)

        logger.info(
            "Retrieved %d chunks from %s: %s",
            len(results),
            corpus_id,
            [rc.file_path for rc in results],
        )
        return results

    async def load_source(self, descriptor: str) -> LoadedSource:
        """Run the loader, wrapping its failures as UpstreamError."""
        try:
            return await self._call(self.loader.load, descriptor)
        except RepoChatError:
            raise
        except Exception as exc:
            raise UpstreamError(
                f"Failed to load {descriptor!r}: {exc}", service="loader"
            ) from exc

    def _widen(
        self,
        query: str,
        results: list[RetrievedChunk],
        corpus_chunks: list[Chunk],
    ) -> list[RetrievedChunk]:
        """Append language-indicative files not already in results."""
        widened = list(results)
        present = {rc.chunk.id for rc in widened}
        for chunk in corpus_chunks:
            if len(widened) >= self.config.max_results:
                break
            if chunk.id in present:
                continue
            if self.scorer.matches_language_file(query, chunk.file_path):
                widened.append(
                    RetrievedChunk(chunk=chunk, score=self.scorer.config.widened_chunk_score)
                )
                present.add(chunk.id)

        logger.debug("Widened %d results to %d", len(results), len(widened))
        return widened

    async def _embed(self, chunks: list[Chunk]) -> None:
        """Attach embeddings to chunks, all or nothing."""
        texts = [chunk.content for chunk in chunks]
        size = max(1, self.config.embed_batch_size)
        vectors: list[np.ndarray] = []

        for start in range(0, len(texts), size):
            batch = texts[start : start + size]
            try:
                embedded = await self._call(self.embedder.embed_batch, batch)
            except Exception as exc:
                raise PartialIngestionError(
                    f"Embedding failed after chunking {len(chunks)} chunks: {exc}",
                    service="embedding",
                ) from exc
            if len(embedded) != len(batch):
                raise PartialIngestionError(
                    f"Embedding service returned {len(embedded)} vectors for {len(batch)} texts",
                    service="embedding",
                )
            vectors.extend(np.asarray(vec, dtype=np.float32) for vec in embedded)

        for chunk, vec in zip(chunks, vectors):
            chunk.embedding = vec

    async def _call(self, fn: Callable, *args):
        return await asyncio.wait_for(
            asyncio.to_thread(fn, *args), timeout=self.config.timeout_seconds
        )

    @asynccontextmanager
    async def _corpus_lock(self, corpus_id: str) -> AsyncIterator[None]:
        """Hold the ingestion lock of one corpus.

        The lock is dropped once its last holder or waiter leaves.
        """
        lock = self._ingest_locks.get(corpus_id)
        if lock is None:
            lock = self._ingest_locks[corpus_id] = asyncio.Lock()
        self._ingest_users[corpus_id] = self._ingest_users.get(corpus_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._ingest_users[corpus_id] -= 1
            if not self._ingest_users[corpus_id]:
                del self._ingest_users[corpus_id]
                del self._ingest_locks[corpus_id]
