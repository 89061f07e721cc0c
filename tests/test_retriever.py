"""Tests for Retriever ingestion and retrieval."""

import asyncio
import time

import numpy as np
import pytest

from repochat.core.chunk import SourceFile
from repochat.core.chunking import ChunkingConfig, FileChunker
from repochat.core.embedder import HashingEmbedder
from repochat.core.errors import InvalidInputError, PartialIngestionError, UpstreamError
from repochat.core.retriever import RetrievalConfig, Retriever

from fakes import GO_CORPUS_ID, GO_REPO_URL, InMemoryLoader

LANGUAGE_QUERY = "what language is this written in?"


class FailingEmbedder:
    """Embedder whose service is down."""

    def embed_batch(self, texts):
        raise RuntimeError("embedding service unavailable")


class ShortEmbedder:
    """Embedder that drops the last vector of every batch."""

    def embed_batch(self, texts):
        return np.zeros((max(0, len(texts) - 1), 4), dtype=np.float32)


class RecordingEmbedder(HashingEmbedder):
    """Hashing embedder that records batch sizes."""

    def __init__(self):
        super().__init__(dim=8)
        self.batches = []

    def embed_batch(self, texts):
        self.batches.append(len(texts))
        return super().embed_batch(texts)


class SlowLoader:
    def load(self, descriptor):
        time.sleep(0.5)
        raise AssertionError("should have timed out first")


class TestIngest:
    """Tests for Retriever.ingest."""

    @pytest.mark.asyncio
    async def test_ingest_indexes_every_file(self, retriever, store):
        """Test that ingestion derives the corpus id and stores all chunks."""
        corpus_id = await retriever.ingest(GO_REPO_URL)

        assert corpus_id == GO_CORPUS_ID
        paths = [c.file_path for c in store.list_by_corpus(corpus_id)]
        assert paths == ["go.mod", "main.go", "README.md"]
        assert all(c.embedding is not None for c in store.list_by_corpus(corpus_id))

    @pytest.mark.asyncio
    async def test_reingest_is_stable(self, retriever, store):
        """Test that ingesting twice gives the same id and no duplicates."""
        first = await retriever.ingest(GO_REPO_URL)
        count = store.count(first)
        second = await retriever.ingest(GO_REPO_URL)

        assert first == second
        assert store.count(second) == count

    @pytest.mark.asyncio
    async def test_reingest_replaces_content(self, store, embedder, scorer):
        """Test that files gone from the source disappear from the corpus."""
        loader = InMemoryLoader({GO_REPO_URL: [SourceFile("a.go", "package a\n"), SourceFile("b.go", "package b\n")]})
        retriever = Retriever(store, loader, FileChunker(), embedder, scorer)
        await retriever.ingest(GO_REPO_URL)

        loader.sources[GO_REPO_URL] = [SourceFile("a.go", "package a\n")]
        await retriever.ingest(GO_REPO_URL)

        assert [c.file_path for c in store.list_by_corpus(GO_CORPUS_ID)] == ["a.go"]

    @pytest.mark.asyncio
    async def test_concurrent_ingest_same_corpus(self, retriever, store, loader):
        """Test that overlapping ingestions of one corpus serialize cleanly."""
        await asyncio.gather(retriever.ingest(GO_REPO_URL), retriever.ingest(GO_REPO_URL))

        assert loader.calls == 2
        assert store.count(GO_CORPUS_ID) == 3

    @pytest.mark.asyncio
    async def test_concurrent_ingest_different_corpora(self, store, embedder, scorer, go_files):
        """Test that two corpora ingest side by side without mixing."""
        other = "https://github.com/acme/other"
        loader = InMemoryLoader({GO_REPO_URL: go_files, other: [SourceFile("x.py", "x = 1\n")]})
        retriever = Retriever(store, loader, FileChunker(), embedder, scorer)

        ids = await asyncio.gather(retriever.ingest(GO_REPO_URL), retriever.ingest(other))

        assert ids == [GO_CORPUS_ID, "github-acme-other"]
        assert store.count(GO_CORPUS_ID) == 3
        assert store.count("github-acme-other") == 1

    @pytest.mark.asyncio
    async def test_ingest_locks_are_released(self, store, loader, scorer, retriever):
        """Test that per-corpus locks do not outlive their ingestions."""
        await asyncio.gather(*(retriever.ingest(GO_REPO_URL) for _ in range(3)))
        assert retriever._ingest_locks == {}

        failing = Retriever(store, loader, FileChunker(), FailingEmbedder(), scorer)
        with pytest.raises(PartialIngestionError):
            await failing.ingest(GO_REPO_URL)
        assert failing._ingest_locks == {}
        assert failing._ingest_users == {}

    @pytest.mark.asyncio
    async def test_embedding_batches_preserve_order(self, store, loader, scorer):
        """Test that batched embedding zips vectors back by position."""
        embedder = RecordingEmbedder()
        retriever = Retriever(
            store, loader, FileChunker(), embedder, scorer, RetrievalConfig(embed_batch_size=2)
        )
        await retriever.ingest(GO_REPO_URL)

        assert embedder.batches == [2, 1]
        for chunk in store.list_by_corpus(GO_CORPUS_ID):
            np.testing.assert_allclose(chunk.embedding, embedder.embed(chunk.content), rtol=1e-6)

    @pytest.mark.asyncio
    async def test_embedding_failure_keeps_old_corpus(self, retriever, store):
        """Test that a failed re-ingestion leaves the previous index intact."""
        await retriever.ingest(GO_REPO_URL)
        before = [c.id for c in store.list_by_corpus(GO_CORPUS_ID)]

        retriever.embedder = FailingEmbedder()
        with pytest.raises(PartialIngestionError) as exc_info:
            await retriever.ingest(GO_REPO_URL)

        assert exc_info.value.service == "embedding"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert [c.id for c in store.list_by_corpus(GO_CORPUS_ID)] == before

    @pytest.mark.asyncio
    async def test_embedding_length_mismatch(self, retriever, store):
        """Test that too few vectors abort ingestion."""
        retriever.embedder = ShortEmbedder()

        with pytest.raises(PartialIngestionError):
            await retriever.ingest(GO_REPO_URL)
        assert store.count(GO_CORPUS_ID) == 0

    @pytest.mark.asyncio
    async def test_loader_failure(self, retriever):
        """Test that loader errors surface as UpstreamError."""
        with pytest.raises(UpstreamError) as exc_info:
            await retriever.ingest("https://github.com/acme/missing")

        assert exc_info.value.service == "loader"
        assert isinstance(exc_info.value.__cause__, KeyError)

    @pytest.mark.asyncio
    async def test_loader_timeout(self, store, embedder, scorer):
        """Test that a hung loader is cut off by the timeout."""
        retriever = Retriever(
            store, SlowLoader(), FileChunker(), embedder, scorer, RetrievalConfig(timeout_seconds=0.05)
        )

        with pytest.raises(UpstreamError):
            await retriever.ingest(GO_REPO_URL)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("descriptor", ["", "   ", "ftp://example.com/repo", "https://gitlab.com/a/b"])
    async def test_invalid_descriptor(self, retriever, loader, descriptor):
        """Test that malformed descriptors fail before loading."""
        with pytest.raises(InvalidInputError):
            await retriever.ingest(descriptor)
        assert loader.calls == 0

    @pytest.mark.asyncio
    async def test_ingest_loaded_returns_source(self, retriever):
        """Test that the loaded source comes back with the corpus id."""
        corpus_id, source = await retriever.ingest_loaded(GO_REPO_URL)

        assert corpus_id == GO_CORPUS_ID
        assert source.file_tree() == ["go.mod", "main.go", "README.md"]
        assert source.readme.startswith("# gotool")


class TestRetrieve:
    """Tests for Retriever.retrieve."""

    @pytest.mark.asyncio
    async def test_unknown_corpus_is_empty(self, retriever):
        """Test that retrieving from a never-ingested corpus is not an error."""
        assert await retriever.retrieve("unknown-corpus", "anything") == []

    @pytest.mark.asyncio
    async def test_empty_query_rejected(self, retriever):
        """Test that a blank query is invalid input."""
        with pytest.raises(InvalidInputError):
            await retriever.retrieve(GO_CORPUS_ID, "  ")

    @pytest.mark.asyncio
    async def test_language_question_ranks_manifest_over_readme(self, retriever):
        """Test that go.mod outranks an unrelated README for a language question."""
        corpus_id = await retriever.ingest(GO_REPO_URL)
        results = await retriever.retrieve(corpus_id, LANGUAGE_QUERY)

        paths = [rc.file_path for rc in results]
        assert paths[0] == "go.mod"
        assert paths.index("go.mod") < paths.index("README.md")

    @pytest.mark.asyncio
    async def test_results_carry_provenance(self, retriever):
        """Test that each result has file and line range."""
        corpus_id = await retriever.ingest(GO_REPO_URL)
        results = await retriever.retrieve(corpus_id, "is this written in go?")

        go_mod = next(rc for rc in results if rc.file_path == "go.mod")
        assert (go_mod.start_line, go_mod.end_line) == (1, 5)
        assert str(go_mod.to_source()) == "go.mod:1-5"

    @pytest.mark.asyncio
    async def test_widening_for_thin_meta_results(self, store, loader, embedder, scorer):
        """Test that a thin language answer is widened with language files."""
        retriever = Retriever(
            store, loader, FileChunker(), embedder, scorer, RetrievalConfig(top_k=1)
        )
        corpus_id = await retriever.ingest(GO_REPO_URL)
        results = await retriever.retrieve(corpus_id, "is this written in go?")

        assert [rc.file_path for rc in results] == ["go.mod", "main.go", "README.md"]
        assert [rc.score for rc in results[1:]] == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_widening_capped(self, store, embedder, scorer):
        """Test that widening stops at max_results."""
        files = [SourceFile(f"pkg{i}/file.go", f"package pkg{i}\n") for i in range(20)]
        loader = InMemoryLoader({GO_REPO_URL: files})
        retriever = Retriever(
            store, loader, FileChunker(), embedder, scorer, RetrievalConfig(top_k=1, max_results=8)
        )
        corpus_id = await retriever.ingest(GO_REPO_URL)
        results = await retriever.retrieve(corpus_id, "is this written in go?")

        assert len(results) == 8
        assert len({rc.chunk.id for rc in results}) == 8

    @pytest.mark.asyncio
    async def test_no_widening_for_plain_questions(self, store, loader, embedder, scorer):
        """Test that ordinary questions are never widened."""
        retriever = Retriever(
            store, loader, FileChunker(), embedder, scorer, RetrievalConfig(top_k=1)
        )
        corpus_id = await retriever.ingest(GO_REPO_URL)
        results = await retriever.retrieve(corpus_id, "where is fmt.Println called")

        assert [rc.file_path for rc in results] == ["main.go"]

    @pytest.mark.asyncio
    async def test_retrieval_scoped_to_corpus(self, store, embedder, scorer, go_files):
        """Test that another corpus never leaks into results."""
        other = "https://github.com/acme/other"
        loader = InMemoryLoader({
            GO_REPO_URL: go_files,
            other: [SourceFile("go.mod", "module github.com/acme/other\n")],
        })
        retriever = Retriever(store, loader, FileChunker(), embedder, scorer)
        await retriever.ingest(GO_REPO_URL)
        await retriever.ingest(other)

        results = await retriever.retrieve(GO_CORPUS_ID, LANGUAGE_QUERY)
        assert all(rc.chunk.corpus_id == GO_CORPUS_ID for rc in results)

    @pytest.mark.asyncio
    async def test_small_chunks_span_file(self, store, loader, embedder, scorer):
        """Test that multi-chunk files are retrievable chunk by chunk."""
        chunker = FileChunker(ChunkingConfig(max_tokens=5, overlap_tokens=0))
        retriever = Retriever(store, loader, chunker, embedder, scorer)
        corpus_id = await retriever.ingest(GO_REPO_URL)

        main_chunks = [c for c in store.list_by_corpus(corpus_id) if c.file_path == "main.go"]
        assert len(main_chunks) > 1
