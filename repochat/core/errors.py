"""Error types raised by the ingestion and retrieval pipeline."""

from typing import Optional


class RepoChatError(Exception):
    """Base class for all pipeline errors."""


class InvalidInputError(RepoChatError, ValueError):
    """Malformed source descriptor, empty query, or bad configuration."""


class NotFoundError(RepoChatError, LookupError):
    """Unknown conversation id."""


class UpstreamError(RepoChatError):
    """A loader, embedding, or completion call failed.

    The original exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, service: Optional[str] = None):
        super().__init__(message)
        self.service = service


class PartialIngestionError(UpstreamError):
    """Chunking succeeded but embedding failed; nothing was indexed."""


class AnswerGenerationError(UpstreamError):
    """Retrieval or completion failed while answering a question."""
