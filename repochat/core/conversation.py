"""In-memory conversation history for chat sessions."""

import threading
from dataclasses import replace
from datetime import datetime
from typing import Optional
from uuid import uuid4

from .chunk import ConversationRecord, Message
from .errors import InvalidInputError, NotFoundError


class ConversationManager:
    """Per-session message history.

    A conversation either exists or it does not; the only mutation is
    appending a message. State lives for the lifetime of the process and is
    never expired here.
    """

    def __init__(self):
        self._conversations: dict[str, ConversationRecord] = {}
        self._lock = threading.Lock()

    def create(self, corpus_id: str) -> ConversationRecord:
        """Start a conversation about a corpus.

        Args:
            corpus_id: Corpus the conversation asks about.

        Returns:
            The new, empty conversation.
        """
        now = datetime.now()
        record = ConversationRecord(
            id=f"conv_{uuid4().hex}",
            corpus_id=corpus_id,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._conversations[record.id] = record
        return record

    def get(self, conversation_id: str) -> ConversationRecord:
        """Look up a conversation.

        Raises:
            NotFoundError: If the id is unknown.
        """
        with self._lock:
            record = self._conversations.get(conversation_id)
        if record is None:
            raise NotFoundError(f"Conversation not found: {conversation_id}")
        return record

    def get_or_create(
        self, conversation_id: Optional[str], corpus_id: str
    ) -> ConversationRecord:
        """Existing conversation if an id is given, a new one otherwise.

        Raises:
            NotFoundError: If an id is given but unknown.
            InvalidInputError: If the conversation is about another corpus.
        """
        if conversation_id:
            record = self.get(conversation_id)
            if record.corpus_id != corpus_id:
                raise InvalidInputError(
                    f"Conversation {conversation_id} belongs to corpus "
                    f"{record.corpus_id}, not {corpus_id}"
                )
            return record
        return self.create(corpus_id)

    def append(self, conversation_id: str, message: Message) -> None:
        """Append a message and refresh updated_at.

        A message stamped earlier than the last one is re-stamped with the
        last timestamp, so history stays in chronological order.

        Raises:
            NotFoundError: If the id is unknown.
        """
        with self._lock:
            record = self._conversations.get(conversation_id)
            if record is None:
                raise NotFoundError(f"Conversation not found: {conversation_id}")
            if record.messages and message.timestamp < record.messages[-1].timestamp:
                message = replace(message, timestamp=record.messages[-1].timestamp)
            record.messages.append(message)
            record.updated_at = max(datetime.now(), message.timestamp)

    def recent(self, conversation_id: str, limit: int = 6) -> list[Message]:
        """Last ``limit`` messages in chronological order.

        Unknown ids give an empty list; this is read defensively before
        building prompt context.
        """
        if limit <= 0:
            return []
        with self._lock:
            record = self._conversations.get(conversation_id)
            if record is None:
                return []
            return list(record.messages[-limit:])

    def __len__(self) -> int:
        with self._lock:
            return len(self._conversations)
