"""Embedding provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from vecsync.errors import EmbeddingFailure


class EmbeddingProvider(ABC):
    """Turns text into vectors.

    Every failure surfaces as ``EmbeddingFailure``, whatever the provider.
    """

    name: str = "base"

    def __init__(self, model: str) -> None:
        self.model = model

    def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*, preserving order.

        Raises:
            EmbeddingFailure: On empty input or any provider failure.
        """
        if not texts:
            raise EmbeddingFailure("Cannot embed an empty batch.")
        if any(not t.strip() for t in texts):
            raise EmbeddingFailure("Cannot embed empty or whitespace-only text.")
        vectors = self._embed(texts)
        if len(vectors) != len(texts):
            raise EmbeddingFailure(
                f"{self.name} returned {len(vectors)} embeddings for {len(texts)} inputs."
            )
        return vectors

    @abstractmethod
    def _embed(self, texts: list[str]) -> list[list[float]]:
        """Call the provider for a validated, non-empty batch."""
