"""PipelineBuilder for wiring all repository Q&A components.

This factory handles all component instantiation and dependency injection,
keeping RepoAssistant thin and focused on orchestration.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

from .assistant import AnswerConfig, RepoAssistant
from .chunk_store import ChunkStore
from .chunking import ChunkingConfig, FileChunker
from .context_assembler import ContextAssembler, ContextConfig
from .conversation import ConversationManager
from .embedder import APIEmbedder, Embedder, HashingEmbedder, SentenceTransformerEmbedder
from .errors import InvalidInputError
from .generator import DummyGenerator, Generator
from .loader import LocalRepoLoader, SourceLoader
from .retriever import RetrievalConfig, Retriever
from .scoring import RelevanceScorer, ScoringConfig

_SECTIONS = {
    "chunking": ChunkingConfig,
    "scoring": ScoringConfig,
    "retrieval": RetrievalConfig,
    "context": ContextConfig,
    "answer": AnswerConfig,
}


@dataclass
class PipelineConfig:
    """Unified configuration for all pipeline components.

    Groups the per-component configs in one place. Each section can also be
    passed to its component directly for fine-grained control.

    Attributes:
        db_path: Path to DuckDB database (":memory:" for in-memory).
        embedding_backend: "local" (sentence-transformers) or "api"
            (OpenAI-compatible embeddings endpoint).
        embedding_model: Model name for the chosen embedding backend.
        completion_model: Model name for the API generator.
        offline: Use the hashing embedder and no network services.
        max_file_bytes: Files larger than this are not loaded.
    """

    # Storage
    db_path: str = ":memory:"

    # External services
    embedding_backend: str = "local"
    embedding_model: str = "BAAI/bge-small-en-v1.5"
    completion_model: str = "gpt-3.5-turbo"
    offline: bool = False

    # Loading
    max_file_bytes: int = 1_000_000

    # Component sections
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    answer: AnswerConfig = field(default_factory=AnswerConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "PipelineConfig":
        """Build a config from nested dicts, e.g. parsed YAML.

        Raises:
            InvalidInputError: On unknown keys or a non-mapping section.
        """
        data = dict(data or {})
        kwargs = {}
        for name, section_cls in _SECTIONS.items():
            if name in data:
                kwargs[name] = _build_section(name, section_cls, data.pop(name))

        known = {f.name for f in fields(cls)} - set(_SECTIONS)
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidInputError(f"Unknown config keys: {', '.join(unknown)}")
        kwargs.update(data)
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "PipelineConfig":
        """Load a config file.

        Example file:
            db_path: repochat.duckdb
            chunking:
              max_tokens: 400
            retrieval:
              top_k: 8
        """
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is not None and not isinstance(data, dict):
            raise InvalidInputError(f"Config file {path} must contain a mapping")
        return cls.from_dict(data or {})


def _build_section(name: str, section_cls: type, values) -> object:
    if not isinstance(values, dict):
        raise InvalidInputError(f"Config section '{name}' must be a mapping")
    known = {f.name for f in fields(section_cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise InvalidInputError(
            f"Unknown keys in config section '{name}': {', '.join(unknown)}"
        )
    return section_cls(**values)


class PipelineBuilder:
    """Fluent builder for creating configured RepoAssistant instances.

    Example:
        >>> assistant = (
        ...     PipelineBuilder()
        ...     .with_generator(my_generator)
        ...     .with_db_path("repochat.duckdb")
        ...     .with_retrieval_config(top_k=8)
        ...     .build()
        ... )

        >>> # Or use convenience function
        >>> from repochat import create_assistant
        >>> assistant = create_assistant(generator=my_generator, offline=True)
    """

    def __init__(self, config: Optional[PipelineConfig] = None):
        """Initialize builder with optional unified configuration.

        Args:
            config: Unified configuration. Uses defaults if None.
        """
        self.config = config or PipelineConfig()
        self._generator: Optional[Generator] = None
        self._embedder: Optional[Embedder] = None
        self._loader: Optional[SourceLoader] = None
        self._store: Optional[ChunkStore] = None

    def with_generator(self, generator: Generator) -> "PipelineBuilder":
        """Set the completion backend (APIGenerator, DummyGenerator, ...)."""
        self._generator = generator
        return self

    def with_embedder(self, embedder: Embedder) -> "PipelineBuilder":
        """Use an existing Embedder instance.

        Useful when sharing an embedder across assistants to avoid loading
        the model multiple times.
        """
        self._embedder = embedder
        return self

    def with_loader(self, loader: SourceLoader) -> "PipelineBuilder":
        """Set the source loader (defaults to LocalRepoLoader)."""
        self._loader = loader
        return self

    def with_existing_store(self, store: ChunkStore) -> "PipelineBuilder":
        """Use an existing ChunkStore instance.

        The store keeps its own scorer; the builder's scoring section is
        then only used for widening decisions in the retriever.
        """
        self._store = store
        return self

    def with_db_path(self, path: str) -> "PipelineBuilder":
        """Set the database path for chunk storage."""
        self.config.db_path = path
        return self

    def with_offline(self, enabled: bool = True) -> "PipelineBuilder":
        """Use the hashing embedder instead of a model."""
        self.config.offline = enabled
        return self

    def with_chunking_config(
        self,
        max_tokens: Optional[int] = None,
        overlap_tokens: Optional[int] = None,
    ) -> "PipelineBuilder":
        """Configure chunk size and overlap.

        Args:
            max_tokens: Maximum estimated tokens per chunk.
            overlap_tokens: Tokens carried over into the next chunk.

        Returns:
            Self for method chaining.
        """
        if max_tokens is not None:
            self.config.chunking.max_tokens = max_tokens
        if overlap_tokens is not None:
            self.config.chunking.overlap_tokens = overlap_tokens
        return self

    def with_retrieval_config(
        self,
        top_k: Optional[int] = None,
        min_results: Optional[int] = None,
        max_results: Optional[int] = None,
    ) -> "PipelineBuilder":
        """Configure retrieval parameters.

        Args:
            top_k: Number of chunks requested from search.
            min_results: Meta queries with fewer results are widened.
            max_results: Cap on results after widening.

        Returns:
            Self for method chaining.
        """
        if top_k is not None:
            self.config.retrieval.top_k = top_k
        if min_results is not None:
            self.config.retrieval.min_results = min_results
        if max_results is not None:
            self.config.retrieval.max_results = max_results
        return self

    def with_history_limit(self, limit: int) -> "PipelineBuilder":
        """Set how many prior messages are carried into each prompt."""
        self.config.context.history_limit = limit
        return self

    def build(self) -> RepoAssistant:
        """Build and return a fully configured RepoAssistant.

        The scorer is shared between ChunkStore and Retriever so search
        ranking and widening agree on what a meta query is.
        """
        config = self.config

        scorer = RelevanceScorer(config.scoring)
        store = self._store or ChunkStore(config.db_path, scorer=scorer)
        embedder = self._embedder or self._default_embedder()
        loader = self._loader or LocalRepoLoader(max_file_bytes=config.max_file_bytes)

        retriever = Retriever(
            store=store,
            loader=loader,
            chunker=FileChunker(config.chunking),
            embedder=embedder,
            scorer=scorer,
            config=config.retrieval,
        )

        return RepoAssistant(
            retriever=retriever,
            conversations=ConversationManager(),
            assembler=ContextAssembler(config.context),
            generator=self._generator or DummyGenerator(),
            config=config.answer,
        )

    def _default_embedder(self) -> Embedder:
        backend = self.config.embedding_backend
        if self.config.offline:
            return HashingEmbedder()
        if backend == "local":
            return SentenceTransformerEmbedder(self.config.embedding_model)
        if backend == "api":
            from openai import OpenAI

            return APIEmbedder(OpenAI(), model=self.config.embedding_model)
        raise InvalidInputError(f"Unknown embedding backend: {backend!r}")


def create_assistant(
    db_path: str = ":memory:",
    generator: Optional[Generator] = None,
    loader: Optional[SourceLoader] = None,
    **kwargs,
) -> RepoAssistant:
    """Convenience function to create an assistant with defaults.

    For more control, use PipelineBuilder directly.

    Args:
        db_path: Path to DuckDB database (":memory:" for in-memory).
        generator: Generator instance (uses DummyGenerator if None).
        loader: Source loader (uses LocalRepoLoader if None).
        **kwargs: Additional options passed to PipelineConfig.

    Returns:
        Configured RepoAssistant instance.

    Example:
        >>> assistant = create_assistant(offline=True)
        >>> corpus_id, summary = await assistant.register("~/src/my-repo")
    """
    builder = PipelineBuilder(PipelineConfig(db_path=db_path, **kwargs))

    if generator:
        builder.with_generator(generator)
    if loader:
        builder.with_loader(loader)

    return builder.build()
