"""RepoChat: question answering over source repositories.

Ingests a repository into line-addressed chunks, ranks them for a question
with lexical and language/file-type heuristics, and asks a completion
service to answer strictly from the retrieved context, citing files and
line ranges.

Key components:
- FileChunker: Splits files into overlapping, line-addressed chunks
- ChunkStore: DuckDB-backed chunk index scoped by corpus
- RelevanceScorer: Heuristic scoring for ranking and widening
- Retriever: Ingestion (load -> chunk -> embed -> index) and retrieval
- ConversationManager: Per-session message history
- ContextAssembler: Grounded prompt layout with cited sources
- RepoAssistant: Thin orchestration layer
- PipelineBuilder: Factory for creating configured assistants

Example usage:
    import asyncio
    from repochat import create_assistant

    assistant = create_assistant(offline=True)

    async def main():
        corpus_id, summary = await assistant.register("~/src/my-repo")
        reply = await assistant.ask(corpus_id, "What language is this written in?")
        print(reply.answer, [str(s) for s in reply.sources])

    asyncio.run(main())
"""

# Re-export the public API from core
from .core import (
    # Core data structures
    Chunk,
    ChatResponse,
    Message,
    RetrievedChunk,
    SourceReference,
    # Errors
    AnswerGenerationError,
    InvalidInputError,
    NotFoundError,
    PartialIngestionError,
    RepoChatError,
    UpstreamError,
    # Components
    FileChunker,
    ChunkStore,
    LocalRepoLoader,
    RelevanceScorer,
    Retriever,
    ConversationManager,
    ContextAssembler,
    RepoAssistant,
    # Builder
    PipelineBuilder,
    PipelineConfig,
    create_assistant,
)

__all__ = [
    # Core data structures
    "Chunk",
    "ChatResponse",
    "Message",
    "RetrievedChunk",
    "SourceReference",
    # Errors
    "AnswerGenerationError",
    "InvalidInputError",
    "NotFoundError",
    "PartialIngestionError",
    "RepoChatError",
    "UpstreamError",
    # Components
    "FileChunker",
    "ChunkStore",
    "LocalRepoLoader",
    "RelevanceScorer",
    "Retriever",
    "ConversationManager",
    "ContextAssembler",
    "RepoAssistant",
    # Builder
    "PipelineBuilder",
    "PipelineConfig",
    "create_assistant",
]

__version__ = "0.1.0"
