"""Pure data classes for repository chunks and conversations.

This module contains only data structures with no business logic.
Splitting lives in chunking.py, ranking in scoring.py.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional

import numpy as np


@dataclass
class Chunk:
    """Line-addressed slice of one source file.

    Attributes:
        id: Deterministic identifier "{corpus_id}:{file_path}:{start}-{end}".
        content: Trimmed text of lines [start_line, end_line].
        file_path: Path of the file inside the repository.
        start_line: First line covered (1-based).
        end_line: Last line covered (1-based, inclusive).
        corpus_id: Corpus this chunk belongs to.
        token_count: Estimated tokens in content.
        embedding: Float32 vector from the embedding service, if any.
    """

    id: str
    content: str
    file_path: str
    start_line: int
    end_line: int
    corpus_id: str
    token_count: int = 0
    embedding: Optional[np.ndarray] = None

    def __post_init__(self):
        """Validate line range and embedding dtype."""
        if self.start_line < 1 or self.end_line < self.start_line:
            raise ValueError(
                f"Invalid line range {self.start_line}-{self.end_line} for {self.file_path}"
            )
        if self.embedding is not None:
            self.embedding = np.asarray(self.embedding, dtype=np.float32)


@dataclass(frozen=True)
class SourceReference:
    """Where an answer came from."""

    file_path: str
    start_line: int
    end_line: int

    def to_dict(self) -> dict:
        return {
            "file_path": self.file_path,
            "start_line": self.start_line,
            "end_line": self.end_line,
        }

    def __str__(self) -> str:
        return f"{self.file_path}:{self.start_line}-{self.end_line}"


@dataclass(frozen=True)
class RetrievedChunk:
    """Chunk with the score it received for one query.

    Never stored; produced per query by ChunkStore.search and the Retriever.
    """

    chunk: Chunk
    score: float = 0.0

    @property
    def content(self) -> str:
        return self.chunk.content

    @property
    def file_path(self) -> str:
        return self.chunk.file_path

    @property
    def start_line(self) -> int:
        return self.chunk.start_line

    @property
    def end_line(self) -> int:
        return self.chunk.end_line

    def to_source(self) -> SourceReference:
        return SourceReference(self.file_path, self.start_line, self.end_line)


@dataclass
class SourceFile:
    """One text file returned by a source loader."""

    path: str
    content: str


@dataclass
class LoadedSource:
    """Everything a source loader returns for one descriptor."""

    files: list[SourceFile] = field(default_factory=list)
    readme: Optional[str] = None
    owner: Optional[str] = None
    name: Optional[str] = None

    def file_tree(self) -> list[str]:
        return [f.path for f in self.files]


@dataclass(frozen=True)
class Message:
    """A single conversation turn."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class ConversationRecord:
    """Append-only message history for one chat session.

    Attributes:
        id: Unique conversation identifier.
        corpus_id: Corpus the questions are asked against.
        messages: Chronological, append-only list of messages.
        created_at: Creation time.
        updated_at: Refreshed on every append.
    """

    id: str
    corpus_id: str
    messages: list[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "corpus_id": self.corpus_id,
            "messages": [
                {**m.to_dict(), "timestamp": m.timestamp.isoformat()}
                for m in self.messages
            ],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class ChatResponse:
    """Answer to one question plus its provenance."""

    conversation_id: str
    answer: str
    sources: list[SourceReference] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "conversation_id": self.conversation_id,
            "answer": self.answer,
            "sources": [s.to_dict() for s in self.sources],
        }
