"""Embedding backends for encoding repository chunks.

The pipeline treats embeddings as opaque vectors attached to chunks. Any
object with ``embed_batch(texts) -> array (n, dim)`` can be plugged in.
"""

import hashlib
import re
from typing import Protocol

import numpy as np


class Embedder(Protocol):
    """Protocol for embedding backends.

    Implementations must return one vector per input text, in input order,
    and fail as a whole rather than returning a partial batch.
    """

    def embed_batch(self, texts: list[str]) -> np.ndarray:
        """Embed texts.

        Args:
            texts: Texts to embed.

        Returns:
            Array of shape (len(texts), dim).
        """
        ...


class SentenceTransformerEmbedder:
    """Local sentence-transformers model.

    Requires the ``local`` extra (sentence-transformers).
    """

    def __init__(self, model_name: str = "BAAI/bge-small-en-v1.5"):
        """Load the model (downloaded on first use).

        Args:
            model_name: sentence-transformers model id (384-dim BGE small
                by default).
        """
        from sentence_transformers import SentenceTransformer

        self.model_name = model_name
        self.model = SentenceTransformer(model_name)
        self.dim = self.model.get_sentence_embedding_dimension()

    def embed_batch(self, texts: list[str], batch_size: int = 32) -> np.ndarray:
        """Unit-normalized float32 vectors, one row per text."""
        vectors = self.model.encode(
            texts, normalize_embeddings=True, batch_size=batch_size, show_progress_bar=False
        )
        return np.asarray(vectors, dtype=np.float32)


class APIEmbedder:
    """API-based backend for OpenAI-compatible embedding services."""

    def __init__(self, client, model: str = "text-embedding-3-small"):
        """Initialize with an API client.

        Args:
            client: An OpenAI-compatible client (exposes embeddings.create).
            model: Embedding model identifier.
        """
        self.client = client
        self.model = model

    def embed_batch(self, texts: list[str]) -> np.ndarray:
        """One API call for the whole batch; vectors come back in input order."""
        response = self.client.embeddings.create(model=self.model, input=texts)
        return np.array([item.embedding for item in response.data], dtype=np.float32)


class HashingEmbedder:
    """Deterministic bag-of-words hashing embedder.

    Needs no model download or network access. Useful for tests and for
    running the pipeline offline, where ranking relies on the heuristic
    scorer anyway.
    """

    def __init__(self, dim: int = 64):
        """Initialize with an output dimension.

        Args:
            dim: Length of the produced vectors.
        """
        self.dim = dim

    def embed(self, text: str) -> np.ndarray:
        """Embed a single text string as a normalized vector of shape (dim,)."""
        vec = np.zeros(self.dim, dtype=np.float32)
        for token in re.findall(r"\w+", text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "little") % self.dim
            vec[bucket] += 1.0 if digest[4] % 2 == 0 else -1.0
        norm = np.linalg.norm(vec)
        return vec / norm if norm > 0 else vec

    def embed_batch(self, texts: list[str]) -> np.ndarray:
        """Embed texts; shape (len(texts), dim)."""
        if not texts:
            return np.zeros((0, self.dim), dtype=np.float32)
        return np.stack([self.embed(text) for text in texts])
