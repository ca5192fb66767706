"""LiteLLM-backed embedding providers.

``litellm`` routes 'provider/model' strings to the hosted APIs (OpenAI,
Cohere, Mistral, ...). The custom provider points litellm's OpenAI client at
any OpenAI-compatible ``/embeddings`` endpoint.
"""

from __future__ import annotations

import logging
import os

import litellm

from vecsync.config import ConfigError, EmbeddingCfg
from vecsync.embeddings.base import EmbeddingProvider
from vecsync.errors import EmbeddingFailure

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

CUSTOM_API_KEY_ENV = "VECSYNC_EMBEDDING_API_KEY"


class LiteLLMEmbeddingProvider(EmbeddingProvider):
    """Embeddings via ``litellm.embedding()``.

    Args:
        model: LiteLLM model string, e.g. 'openai/text-embedding-3-large'.
        api_base: Override the provider's base URL.
        dimensions: Requested output size (models that support it).
        timeout: Per-request timeout in seconds.
    """

    name = "litellm"

    def __init__(
        self,
        model: str,
        api_base: str | None = None,
        dimensions: int | None = None,
        timeout: float = 60.0,
        api_key: str | None = None,
    ) -> None:
        super().__init__(model)
        self.api_base = api_base
        self.api_key = api_key
        self.dimensions = dimensions
        self.timeout = timeout

    def _embed(self, texts: list[str]) -> list[list[float]]:
        kwargs: dict = {"model": self.model, "input": texts, "timeout": self.timeout}
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.dimensions:
            kwargs["dimensions"] = self.dimensions

        try:
            response = litellm.embedding(**kwargs)
        except Exception as exc:
            raise EmbeddingFailure(f"{self.model}: {exc}") from exc

        try:
            items = sorted(response.data, key=lambda item: item.get("index", 0))
            vectors = [list(item["embedding"]) for item in items]
        except (AttributeError, KeyError, TypeError) as exc:
            raise EmbeddingFailure(f"{self.model}: malformed embedding response") from exc

        if any(not v for v in vectors):
            raise EmbeddingFailure(f"{self.model}: provider returned an empty vector")
        return vectors


class CustomEndpointEmbeddingProvider(LiteLLMEmbeddingProvider):
    """An OpenAI-compatible embedding service at *endpoint*."""

    name = "custom"

    def __init__(self, endpoint: str, model: str, dimensions: int | None = None,
                 timeout: float = 60.0) -> None:
        routed = model if model.startswith("openai/") else f"openai/{model}"
        # Self-hosted endpoints often run without auth; the OpenAI client still wants a key.
        api_key = os.environ.get(CUSTOM_API_KEY_ENV) or "unused"
        super().__init__(routed, api_base=endpoint, dimensions=dimensions, timeout=timeout,
                         api_key=api_key)
        self.endpoint = endpoint


def create_provider(cfg: EmbeddingCfg) -> EmbeddingProvider:
    """Build the provider described by *cfg*.

    Raises:
        ConfigError: Unknown provider kind or missing custom endpoint.
    """
    if cfg.provider in ("litellm", "openai"):
        return LiteLLMEmbeddingProvider(cfg.model, dimensions=cfg.dimensions, timeout=cfg.timeout)
    if cfg.provider == "custom":
        if not cfg.endpoint:
            raise ConfigError("The custom embedding provider requires an 'endpoint'.")
        logger.debug("Using custom embedding endpoint %s", cfg.endpoint)
        return CustomEndpointEmbeddingProvider(
            cfg.endpoint, cfg.model, dimensions=cfg.dimensions, timeout=cfg.timeout
        )
    raise ConfigError(f"Unknown embedding provider '{cfg.provider}'.")
