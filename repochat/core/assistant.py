"""Thin orchestration layer for question answering over a repository.

RepoAssistant coordinates between components but contains no business
logic. All ranking is done by RelevanceScorer, all splitting by
FileChunker, all prompt layout by ContextAssembler.

For creating assistants, use PipelineBuilder from builder.py.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .chunk import ChatResponse, LoadedSource, Message
from .context_assembler import ContextAssembler
from .conversation import ConversationManager
from .errors import AnswerGenerationError, InvalidInputError, RepoChatError
from .generator import Generator
from .retriever import Retriever

logger = logging.getLogger(__name__)

SUMMARY_FALLBACK = "Repository summary generation failed"


@dataclass
class AnswerConfig:
    """Completion settings for answers and repository summaries."""

    max_new_tokens: int = 1000
    temperature: float = 0.1
    summary_max_tokens: int = 150
    summary_temperature: float = 0.3
    timeout_seconds: float = 60.0


class RepoAssistant:
    """Answers questions about ingested repositories.

    Coordinates the flow between components:
    1. ConversationManager records the question
    2. Retriever finds relevant chunks
    3. ContextAssembler builds the grounded prompt
    4. Generator produces the answer
    5. ConversationManager records the answer

    Example:
        >>> assistant = create_assistant(generator=my_generator)
        >>> corpus_id, summary = await assistant.register("~/src/my-repo")
        >>> reply = await assistant.ask(corpus_id, "What language is this written in?")
        >>> reply.sources[0]
        SourceReference(file_path='go.mod', start_line=1, end_line=3)
    """

    def __init__(
        self,
        retriever: Retriever,
        conversations: ConversationManager,
        assembler: ContextAssembler,
        generator: Generator,
        config: Optional[AnswerConfig] = None,
    ):
        """Initialize the assistant.

        Args:
            retriever: Retriever for ingestion and retrieval.
            conversations: ConversationManager holding chat history.
            assembler: ContextAssembler for prompt layout.
            generator: Generator for producing answers.
            config: Completion settings (uses defaults if not provided).
        """
        self.retriever = retriever
        self.conversations = conversations
        self.assembler = assembler
        self.generator = generator
        self.config = config or AnswerConfig()

    async def register(self, descriptor: str) -> tuple[str, str]:
        """Ingest a repository and summarise it.

        Returns:
            Tuple of (corpus_id, summary).
        """
        corpus_id, source = await self.retriever.ingest_loaded(descriptor)
        summary = await self.summarize_source(source)
        return corpus_id, summary

    async def ask(
        self,
        corpus_id: str,
        question: str,
        conversation_id: Optional[str] = None,
    ) -> ChatResponse:
        """Answer one question, continuing or starting a conversation.

        An empty retrieval still reaches the completion service, whose prompt
        then carries an explicit "no relevant context" marker.

        Args:
            corpus_id: Corpus to answer from.
            question: The user's question.
            conversation_id: Existing conversation to continue, or None.

        Returns:
            ChatResponse with the answer and the sources it was grounded on.

        Raises:
            InvalidInputError: Empty question or corpus id, or a conversation
                that belongs to another corpus.
            NotFoundError: Unknown conversation_id.
            AnswerGenerationError: Retrieval or completion failed.
        """
        if not question or not question.strip():
            raise InvalidInputError("Question must not be empty")
        if not corpus_id or not corpus_id.strip():
            raise InvalidInputError("Corpus id must not be empty")

        conversation = self.conversations.get_or_create(conversation_id, corpus_id)
        self.conversations.append(conversation.id, Message("user", question))

        history_limit = self.assembler.config.history_limit
        history = self.conversations.recent(conversation.id, history_limit + 1)[:-1]

        try:
            retrieved = await self.retriever.retrieve(corpus_id, question)
        except InvalidInputError:
            raise
        except Exception as exc:
            raise AnswerGenerationError(
                f"Retrieval failed for {corpus_id}: {exc}", service="retrieval"
            ) from exc

        messages = self.assembler.compose(retrieved, history, question)

        try:
            answer = await self._generate(
                messages, self.config.max_new_tokens, self.config.temperature
            )
        except Exception as exc:
            raise AnswerGenerationError(
                f"Failed to process query: {exc}", service="completion"
            ) from exc

        self.conversations.append(conversation.id, Message("assistant", answer))
        logger.info(
            "Answered in %s with %d sources (%d chars)",
            conversation.id,
            len(retrieved),
            len(answer),
        )

        return ChatResponse(
            conversation_id=conversation.id,
            answer=answer,
            sources=[rc.to_source() for rc in retrieved],
        )

    async def summarize(self, descriptor: str) -> str:
        """Short summary of a repository from its README and file tree.

        Raises:
            InvalidInputError, UpstreamError: If the source cannot be loaded.
        """
        source = await self.retriever.load_source(descriptor)
        return await self.summarize_source(source)

    async def summarize_source(self, source: LoadedSource) -> str:
        """Summary of already-loaded content; degrades to a fixed string."""
        messages = self.assembler.compose_summary(source.readme, source.file_tree())
        try:
            return await self._generate(
                messages,
                self.config.summary_max_tokens,
                self.config.summary_temperature,
            )
        except RepoChatError:
            raise
        except Exception:
            logger.warning("Failed to generate summary", exc_info=True)
            return SUMMARY_FALLBACK

    async def _generate(
        self, messages: list[dict], max_new_tokens: int, temperature: float
    ) -> str:
        return await asyncio.wait_for(
            asyncio.to_thread(
                self.generator.generate,
                messages,
                max_new_tokens=max_new_tokens,
                temperature=temperature,
            ),
            timeout=self.config.timeout_seconds,
        )
