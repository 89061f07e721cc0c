"""Line-based chunking of source files.

Separates chunking logic from storage - ChunkStore handles indexing,
this module handles where one chunk ends and the next begins.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from .chunk import Chunk, SourceFile
from .errors import InvalidInputError

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def chunk_id(corpus_id: str, file_path: str, start_line: int, end_line: int) -> str:
    """Deterministic chunk identity, stable across re-ingestion."""
    return f"{corpus_id}:{file_path}:{start_line}-{end_line}"


@dataclass
class ChunkingConfig:
    """Configuration for file chunking.

    Attributes:
        max_tokens: Soft upper bound of estimated tokens per chunk. A single
            line longer than this still becomes its own chunk.
        overlap_tokens: Estimated tokens of whole trailing lines repeated at
            the start of the next chunk.
    """

    max_tokens: int = 800
    overlap_tokens: int = 100


class FileChunker:
    """Splits a file into overlapping, line-addressed chunks.

    Lines are accumulated until adding the next one would push the buffer
    over ``max_tokens``. The closed buffer's last few lines (up to
    ``overlap_tokens``) seed the next chunk so context carries across
    boundaries.

    Example:
        >>> chunker = FileChunker(ChunkingConfig(max_tokens=40, overlap_tokens=10))
        >>> chunks = chunker.chunk("main.go", source, corpus_id="github-acme-tool")
        >>> for c in chunks:
        ...     print(c.start_line, c.end_line)
    """

    def __init__(self, config: ChunkingConfig | None = None):
        """Initialize chunker.

        Args:
            config: Chunking configuration. Uses defaults if None.
        """
        self.config = config or ChunkingConfig()
        self._validate(self.config.max_tokens, self.config.overlap_tokens)

    def chunk(
        self,
        file_path: str,
        content: Union[str, bytes],
        corpus_id: str,
        max_tokens: Optional[int] = None,
        overlap_tokens: Optional[int] = None,
    ) -> list[Chunk]:
        """Split one file into chunks.

        Args:
            file_path: Repository-relative path, recorded on every chunk.
            content: File text (bytes are decoded as UTF-8).
            corpus_id: Corpus the chunks belong to.
            max_tokens: Per-call override of config.max_tokens.
            overlap_tokens: Per-call override of config.overlap_tokens.

        Returns:
            Chunks in file order. Empty or blank files give an empty list.

        Raises:
            UnicodeDecodeError: If bytes content is not valid UTF-8.
        """
        max_tokens = self.config.max_tokens if max_tokens is None else max_tokens
        overlap_tokens = (
            self.config.overlap_tokens if overlap_tokens is None else overlap_tokens
        )
        self._validate(max_tokens, overlap_tokens)

        if isinstance(content, bytes):
            content = content.decode("utf-8")

        lines = content.split("\n")
        if lines and lines[-1] == "":
            lines.pop()

        chunks: list[Chunk] = []
        buffer: list[str] = []
        buffer_chars = 0
        start_line = 1

        for line_no, raw in enumerate(lines, start=1):
            line = raw + "\n"
            over_budget = (
                math.ceil((buffer_chars + len(line)) / CHARS_PER_TOKEN) > max_tokens
            )
            if buffer and over_budget:
                closed = self._make_chunk(
                    buffer, file_path, start_line, line_no - 1, corpus_id
                )
                if closed is not None:
                    chunks.append(closed)

                overlap = self._overlap_lines(buffer, overlap_tokens, line, max_tokens)
                buffer = overlap + [line]
                buffer_chars = sum(len(part) for part in buffer)
                start_line = max(1, line_no - len(overlap))
            else:
                buffer.append(line)
                buffer_chars += len(line)

        if buffer:
            final = self._make_chunk(buffer, file_path, start_line, len(lines), corpus_id)
            if final is not None:
                chunks.append(final)

        return chunks

    def chunk_files(self, files: Iterable[SourceFile], corpus_id: str) -> list[Chunk]:
        """Chunk many files, skipping any that cannot be processed.

        Args:
            files: Files returned by a source loader.
            corpus_id: Corpus the chunks belong to.

        Returns:
            All chunks, grouped by file in input order.
        """
        chunks: list[Chunk] = []
        for source in files:
            try:
                chunks.extend(self.chunk(source.path, source.content, corpus_id))
            except UnicodeDecodeError as exc:
                logger.warning("Skipping %s: cannot decode (%s)", source.path, exc)
        return chunks

    def count_tokens(self, text: str) -> int:
        """Estimated token count of text."""
        return estimate_tokens(text)

    def _make_chunk(
        self,
        lines: list[str],
        file_path: str,
        start_line: int,
        end_line: int,
        corpus_id: str,
    ) -> Optional[Chunk]:
        content = "".join(lines).strip()
        if not content:
            return None
        return Chunk(
            id=chunk_id(corpus_id, file_path, start_line, end_line),
            content=content,
            file_path=file_path,
            start_line=start_line,
            end_line=end_line,
            corpus_id=corpus_id,
            token_count=estimate_tokens(content),
        )

    def _overlap_lines(
        self,
        closed: list[str],
        overlap_tokens: int,
        next_line: str,
        max_tokens: int,
    ) -> list[str]:
        """Trailing whole lines of the closed buffer to repeat in the next chunk.

        Walks backward summing per-line estimates while the total stays within
        overlap_tokens. Oldest overlap lines are then dropped until overlap plus
        the incoming line fits max_tokens, so the overlap never pushes a chunk
        over budget on its own.
        """
        overlap: list[str] = []
        tokens = 0
        for line in reversed(closed):
            line_tokens = estimate_tokens(line)
            if tokens + line_tokens > overlap_tokens:
                break
            overlap.insert(0, line)
            tokens += line_tokens

        while overlap and estimate_tokens("".join(overlap) + next_line) > max_tokens:
            overlap.pop(0)

        return overlap

    @staticmethod
    def _validate(max_tokens: int, overlap_tokens: int) -> None:
        if max_tokens <= 0:
            raise InvalidInputError(f"max_tokens must be positive, got {max_tokens}")
        if overlap_tokens < 0:
            raise InvalidInputError(
                f"overlap_tokens must be non-negative, got {overlap_tokens}"
            )
