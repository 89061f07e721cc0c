"""Prompt assembly for grounded question answering.

Formats retrieved chunks into a cited context block, wraps it in fixed
instructions, and lays out history and the new question as chat messages
for the completion service.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from .chunk import Message, RetrievedChunk

NO_CONTEXT_MARKER = "No relevant context found."
CONTEXT_SEPARATOR = "\n---\n\n"

SYSTEM_PROMPT_TEMPLATE = """You are an AI assistant that answers questions strictly based on the provided repository context.

Your guidelines:
1. Answer ONLY based on the provided context below
2. If the context doesn't contain relevant information, clearly state that you don't have enough information
3. When referencing code or files, mention the specific file paths and line numbers when available
4. Be concise but comprehensive in your explanations
5. If you're explaining code, break it down step by step
6. Do not make assumptions or add information not present in the context
7. For programming language questions: look at file extensions (.java, .py, .js, etc.), build files (pom.xml, package.json, etc.), and code syntax to determine the languages used
8. When asked about technologies or languages, examine the context for configuration files, dependencies, and code patterns

Context:
{context}

Remember: only use information from the context above. If it is not enough to answer, say so instead of guessing."""

SUMMARY_PROMPT_TEMPLATE = """Based on the following repository information, generate a concise 2-3 sentence summary:

README content:
{readme}

File structure:
{file_tree}

Provide a brief summary of what this repository is about and its main purpose."""


@dataclass
class ContextConfig:
    """Configuration for prompt assembly.

    Attributes:
        history_limit: Most recent history messages carried into the prompt.
        summary_file_limit: Paths listed in the repository summary prompt.
    """

    history_limit: int = 6
    summary_file_limit: int = 20


class ContextAssembler:
    """Assembles retrieved chunks and history into LLM-ready messages.

    Example:
        >>> assembler = ContextAssembler()
        >>> messages = assembler.compose(retrieved, history, "What does main.go do?")
        >>> answer = generator.generate(messages)
    """

    def __init__(self, config: Optional[ContextConfig] = None):
        """Initialize the context assembler.

        Args:
            config: Context configuration (uses defaults if not provided).
        """
        self.config = config or ContextConfig()

    def compose(
        self,
        retrieved: list[RetrievedChunk],
        history: Iterable[Message],
        question: str,
    ) -> list[dict]:
        """Build the message list for one question.

        Args:
            retrieved: Chunks in rank order; numbered from 1 in the context.
            history: Prior messages, oldest first; only the last
                ``history_limit`` are kept.
            question: The new user question, sent as the final user turn.

        Returns:
            List of message dicts with 'role' and 'content' keys.
        """
        context = self.format_context(retrieved)
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT_TEMPLATE.format(context=context)}
        ]

        history = list(history)
        if self.config.history_limit > 0:
            for msg in history[-self.config.history_limit :]:
                messages.append(msg.to_dict())

        messages.append({"role": "user", "content": question})
        return messages

    def format_context(self, retrieved: list[RetrievedChunk]) -> str:
        """Cited context block, or an explicit marker when nothing was found."""
        if not retrieved:
            return NO_CONTEXT_MARKER

        parts = []
        for index, rc in enumerate(retrieved, start=1):
            header = f"[Source {index}: {rc.file_path}:{rc.start_line}-{rc.end_line}]"
            parts.append(f"{header}\n{rc.content}\n")
        return CONTEXT_SEPARATOR.join(parts)

    def compose_summary(self, readme: Optional[str], file_tree: list[str]) -> list[dict]:
        """Messages asking for a short summary of a repository.

        Args:
            readme: README text, if the repository has one.
            file_tree: Repository paths; only the first few are listed.

        Returns:
            A single user message.
        """
        limit = self.config.summary_file_limit
        listed = "\n".join(file_tree[:limit])
        if len(file_tree) > limit:
            listed += "\n... and more files"

        prompt = SUMMARY_PROMPT_TEMPLATE.format(
            readme=readme or "No README available",
            file_tree=listed,
        )
        return [{"role": "user", "content": prompt}]
