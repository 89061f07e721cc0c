"""Completion backends that turn composed messages into an answer."""

from typing import Protocol

NO_CONTENT_REPLY = "I apologize, but I could not generate a response."


class Generator(Protocol):
    """Protocol for completion services.

    RepoAssistant only ever calls ``generate``; an OpenAI-compatible client
    and an offline stand-in are interchangeable behind it.
    """

    def generate(
        self,
        messages: list[dict],
        max_new_tokens: int = 1000,
        temperature: float = 0.1,
        **kwargs,
    ) -> str:
        """Answer a chat-formatted prompt.

        Args:
            messages: Chat messages ('role'/'content' dicts), system first.
            max_new_tokens: Completion length cap.
            temperature: Sampling temperature; answers use a low value.
            **kwargs: Backend-specific options.

        Returns:
            The answer text.
        """
        ...


class APIGenerator:
    """Chat completions through an OpenAI-compatible client."""

    def __init__(self, client, model: str = "gpt-3.5-turbo"):
        """Wrap a client.

        Args:
            client: Object exposing ``chat.completions.create``.
            model: Completion model name.
        """
        self.client = client
        self.model = model

    def generate(
        self,
        messages: list[dict],
        max_new_tokens: int = 1000,
        temperature: float = 0.1,
        **kwargs,
    ) -> str:
        """One completion request; a reply with no content maps to a fixed apology."""
        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=max_new_tokens,
            temperature=temperature,
            **kwargs,
        )
        content = response.choices[0].message.content if response.choices else None
        return content or NO_CONTENT_REPLY


class DummyGenerator:
    """Canned answers for tests and offline runs.

    Records the last prompt it saw so tests can inspect prompt layout.
    """

    def __init__(self, response_prefix: str = "This is a test response"):
        self.response_prefix = response_prefix
        self.call_count = 0
        self.last_messages: list[dict] = []

    def generate(
        self,
        messages: list[dict],
        max_new_tokens: int = 1000,
        temperature: float = 0.1,
        **kwargs,
    ) -> str:
        self.call_count += 1
        self.last_messages = list(messages)
        question = next(
            (m["content"] for m in reversed(messages) if m["role"] == "user"),
            "no user message",
        )
        return f"{self.response_prefix} to: {question[:50]}... (call #{self.call_count})"
