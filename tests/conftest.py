"""Pytest fixtures for repochat tests.

Everything here runs offline: HashingEmbedder instead of a model,
DummyGenerator instead of a completion service, and an in-memory loader
instead of a filesystem or network fetch.
"""

from pathlib import Path

import pytest

from repochat.core.chunk import SourceFile
from repochat.core.chunk_store import ChunkStore
from repochat.core.chunking import FileChunker
from repochat.core.embedder import HashingEmbedder
from repochat.core.generator import DummyGenerator
from repochat.core.retriever import Retriever
from repochat.core.scoring import RelevanceScorer

from fakes import GO_MOD, GO_REPO_URL, MAIN_GO, README, InMemoryLoader


@pytest.fixture
def go_files() -> list[SourceFile]:
    """Small Go repository: manifest, entry point, README."""
    return [
        SourceFile("go.mod", GO_MOD),
        SourceFile("main.go", MAIN_GO),
        SourceFile("README.md", README),
    ]


@pytest.fixture
def loader(go_files) -> InMemoryLoader:
    """Loader that knows the Go repository URL."""
    return InMemoryLoader({GO_REPO_URL: go_files})


@pytest.fixture
def scorer() -> RelevanceScorer:
    return RelevanceScorer()


@pytest.fixture
def store(scorer):
    """Fresh in-memory chunk store."""
    chunk_store = ChunkStore(":memory:", scorer=scorer)
    yield chunk_store
    chunk_store.close()


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder(dim=32)


@pytest.fixture
def generator() -> DummyGenerator:
    return DummyGenerator()


@pytest.fixture
def retriever(store, loader, embedder, scorer) -> Retriever:
    """Retriever wired to the in-memory loader and store."""
    return Retriever(
        store=store,
        loader=loader,
        chunker=FileChunker(),
        embedder=embedder,
        scorer=scorer,
    )


@pytest.fixture
def go_checkout(tmp_path: Path) -> Path:
    """The Go repository written to disk, plus files a loader must skip."""
    root = tmp_path / "gotool"
    root.mkdir()
    (root / "go.mod").write_text(GO_MOD)
    (root / "main.go").write_text(MAIN_GO)
    (root / "README.md").write_text(README)

    (root / "node_modules" / "left-pad").mkdir(parents=True)
    (root / "node_modules" / "left-pad" / "index.js").write_text("module.exports = 1;\n")
    (root / ".git").mkdir()
    (root / ".git" / "config").write_text("[core]\n")
    (root / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n")
    return root
