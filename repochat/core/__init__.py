"""Core components for RepoChat.

This module contains all the core implementation classes for the
repository question-answering pipeline.
"""

# Core data structures
from .chunk import (
    Chunk,
    ChatResponse,
    ConversationRecord,
    LoadedSource,
    Message,
    RetrievedChunk,
    SourceFile,
    SourceReference,
)

# Errors
from .errors import (
    AnswerGenerationError,
    InvalidInputError,
    NotFoundError,
    PartialIngestionError,
    RepoChatError,
    UpstreamError,
)

# Chunking
from .chunking import FileChunker, ChunkingConfig

# Storage
from .chunk_store import ChunkStore

# Loading
from .loader import LocalRepoLoader, SourceLoader, corpus_id_for

# Embedding
from .embedder import Embedder, APIEmbedder, HashingEmbedder, SentenceTransformerEmbedder

# Scoring
from .scoring import RelevanceScorer, ScoringConfig

# Retrieval
from .retriever import Retriever, RetrievalConfig

# Conversations
from .conversation import ConversationManager

# Context assembly
from .context_assembler import ContextAssembler, ContextConfig

# Generation
from .generator import Generator, APIGenerator, DummyGenerator

# Orchestration
from .assistant import RepoAssistant, AnswerConfig

# Builder
from .builder import PipelineBuilder, PipelineConfig, create_assistant

__all__ = [
    # Core data structures
    "Chunk",
    "ChatResponse",
    "ConversationRecord",
    "LoadedSource",
    "Message",
    "RetrievedChunk",
    "SourceFile",
    "SourceReference",
    # Errors
    "AnswerGenerationError",
    "InvalidInputError",
    "NotFoundError",
    "PartialIngestionError",
    "RepoChatError",
    "UpstreamError",
    # Chunking
    "FileChunker",
    "ChunkingConfig",
    # Storage
    "ChunkStore",
    # Loading
    "LocalRepoLoader",
    "SourceLoader",
    "corpus_id_for",
    # Embedding
    "Embedder",
    "APIEmbedder",
    "HashingEmbedder",
    "SentenceTransformerEmbedder",
    # Scoring
    "RelevanceScorer",
    "ScoringConfig",
    # Retrieval
    "Retriever",
    "RetrievalConfig",
    # Conversations
    "ConversationManager",
    # Context assembly
    "ContextAssembler",
    "ContextConfig",
    # Generation
    "Generator",
    "APIGenerator",
    "DummyGenerator",
    # Orchestration
    "RepoAssistant",
    "AnswerConfig",
    # Builder
    "PipelineBuilder",
    "PipelineConfig",
    "create_assistant",
]
