"""vecsync embedding providers."""

from vecsync.embeddings.base import EmbeddingProvider
from vecsync.embeddings.providers import (
    CustomEndpointEmbeddingProvider,
    LiteLLMEmbeddingProvider,
    create_provider,
)

__all__ = [
    "CustomEndpointEmbeddingProvider",
    "EmbeddingProvider",
    "LiteLLMEmbeddingProvider",
    "create_provider",
]
