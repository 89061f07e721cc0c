"""Chunk index on an in-memory DuckDB table.

This module handles storage and ranked lookup of repository chunks.
The Chunk dataclass is imported from chunk.py (pure data, no logic here).
Ranking is delegated to RelevanceScorer in scoring.py.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

import duckdb
import numpy as np

from .chunk import Chunk, RetrievedChunk
from .scoring import RelevanceScorer

logger = logging.getLogger(__name__)

_COLUMNS = "id, content, file_path, start_line, end_line, corpus_id, token_count, embedding"


class ChunkStore:
    """Index of repository chunks, keyed by chunk id and scoped by corpus.

    All reads and writes go through one re-entrant lock, so a search never
    observes a corpus half-way through replacement or deletion. Insertion
    order is tracked in a ``seq`` column and used to break score ties.
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        scorer: Optional[RelevanceScorer] = None,
    ):
        """Initialize the chunk store.

        Args:
            db_path: DuckDB database path, ":memory:" for process-lifetime storage.
            scorer: RelevanceScorer used by search. Uses defaults if None.
        """
        self.db_path = db_path
        self.scorer = scorer or RelevanceScorer()
        self.conn = duckdb.connect(db_path)
        self._lock = threading.RLock()
        self._init_schema()
        self._next_seq = self._max_seq() + 1

    def _init_schema(self):
        """Create the chunks table if it does not exist."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS chunks (
                id VARCHAR NOT NULL,
                seq BIGINT NOT NULL,
                content TEXT NOT NULL,
                file_path VARCHAR NOT NULL,
                start_line INTEGER NOT NULL,
                end_line INTEGER NOT NULL,
                corpus_id VARCHAR NOT NULL,
                token_count INTEGER NOT NULL,
                embedding FLOAT[]
            )
        """)
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_corpus ON chunks(corpus_id)"
        )

    def _max_seq(self) -> int:
        result = self.conn.execute("SELECT MAX(seq) FROM chunks").fetchone()
        return result[0] if result and result[0] is not None else 0

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        with self._lock:
            self.conn.execute("BEGIN TRANSACTION")
            try:
                yield
            except BaseException:
                self.conn.execute("ROLLBACK")
                raise
            self.conn.execute("COMMIT")

    def insert(self, chunks: Iterable[Chunk]) -> None:
        """Upsert chunks by id.

        An existing id has its content and embedding overwritten and keeps
        its original position in insertion order. No error on replacement.

        Args:
            chunks: Chunks to insert or replace.
        """
        with self._transaction():
            self._upsert(chunks)

    def replace_corpus(self, corpus_id: str, chunks: Iterable[Chunk]) -> int:
        """Atomically swap the whole content of a corpus.

        Args:
            corpus_id: Corpus to replace.
            chunks: New chunks (all should carry corpus_id).

        Returns:
            Number of chunks now stored for the corpus.
        """
        with self._transaction():
            self.conn.execute("DELETE FROM chunks WHERE corpus_id = ?", [corpus_id])
            self._upsert(chunks)
            count = self.count(corpus_id)
        logger.info("Corpus %s replaced with %d chunks", corpus_id, count)
        return count

    def _upsert(self, chunks: Iterable[Chunk]) -> None:
        # Later duplicates win, first occurrence keeps the position.
        latest: dict[str, Chunk] = {}
        for chunk in chunks:
            latest[chunk.id] = chunk
        if not latest:
            return

        ids = list(latest)
        existing = dict(
            self.conn.execute(
                "SELECT id, seq FROM chunks WHERE id IN (SELECT UNNEST(?))", [ids]
            ).fetchall()
        )
        self.conn.execute("DELETE FROM chunks WHERE id IN (SELECT UNNEST(?))", [ids])

        rows = []
        for chunk in latest.values():
            seq = existing.get(chunk.id)
            if seq is None:
                seq = self._next_seq
                self._next_seq += 1
            rows.append([
                chunk.id,
                seq,
                chunk.content,
                chunk.file_path,
                chunk.start_line,
                chunk.end_line,
                chunk.corpus_id,
                chunk.token_count,
                chunk.embedding.tolist() if chunk.embedding is not None else None,
            ])

        self.conn.executemany(
            """
            INSERT INTO chunks (
                id, seq, content, file_path, start_line, end_line,
                corpus_id, token_count, embedding
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
            rows,
        )

    def search(
        self,
        query: str,
        limit: int = 5,
        corpus_id: Optional[str] = None,
    ) -> list[RetrievedChunk]:
        """Rank indexed chunks for a query.

        Scores every chunk (or every chunk of one corpus), discards
        non-positive scores, sorts by descending score with ties in
        insertion order, and truncates to limit.

        Args:
            query: Query text.
            limit: Maximum number of results.
            corpus_id: Restrict the scan to one corpus if given.

        Returns:
            RetrievedChunks, best first.
        """
        candidates = self._select(corpus_id)
        results = self.scorer.rank(query, candidates, limit=limit)
        logger.debug(
            "Search %r over %d chunks returned %d", query, len(candidates), len(results)
        )
        return results

    def list_by_corpus(self, corpus_id: str) -> list[Chunk]:
        """All chunks of a corpus (empty if the corpus is not indexed)."""
        return self._select(corpus_id)

    def delete_by_corpus(self, corpus_id: str) -> int:
        """Remove every chunk of a corpus. Idempotent.

        Args:
            corpus_id: Corpus to remove.

        Returns:
            Number of deleted chunks.
        """
        with self._transaction():
            count = self.count(corpus_id)
            self.conn.execute("DELETE FROM chunks WHERE corpus_id = ?", [corpus_id])
        return count

    def get(self, chunk_id: str) -> Optional[Chunk]:
        """Get a specific chunk by id, None if absent."""
        with self._lock:
            row = self.conn.execute(
                f"SELECT {_COLUMNS} FROM chunks WHERE id = ?", [chunk_id]
            ).fetchone()
        return self._row_to_chunk(row) if row else None

    def count(self, corpus_id: Optional[str] = None) -> int:
        """Count chunks in store, optionally filtered by corpus."""
        with self._lock:
            if corpus_id is not None:
                result = self.conn.execute(
                    "SELECT COUNT(*) FROM chunks WHERE corpus_id = ?", [corpus_id]
                ).fetchone()
            else:
                result = self.conn.execute("SELECT COUNT(*) FROM chunks").fetchone()
        return result[0] if result else 0

    def corpora(self) -> list[str]:
        """Ids of all corpora that currently hold chunks."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT corpus_id FROM chunks GROUP BY corpus_id ORDER BY MIN(seq)"
            ).fetchall()
        return [row[0] for row in rows]

    @property
    def lock(self) -> threading.RLock:
        """Store lock; hold it to make several reads one consistent snapshot."""
        return self._lock

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def _select(self, corpus_id: Optional[str]) -> list[Chunk]:
        with self._lock:
            if corpus_id is None:
                rows = self.conn.execute(
                    f"SELECT {_COLUMNS} FROM chunks ORDER BY seq"
                ).fetchall()
            else:
                rows = self.conn.execute(
                    f"SELECT {_COLUMNS} FROM chunks WHERE corpus_id = ? ORDER BY seq",
                    [corpus_id],
                ).fetchall()
        return [self._row_to_chunk(row) for row in rows]

    def _row_to_chunk(self, row: tuple) -> Chunk:
        """Convert database row to Chunk object."""
        return Chunk(
            id=row[0],
            content=row[1],
            file_path=row[2],
            start_line=row[3],
            end_line=row[4],
            corpus_id=row[5],
            token_count=row[6],
            embedding=np.array(row[7], dtype=np.float32) if row[7] is not None else None,
        )
