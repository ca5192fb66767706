"""Tests for the LiteLLM-backed embedding providers."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from vecsync.config import ConfigError, EmbeddingCfg
from vecsync.embeddings.providers import (
    CUSTOM_API_KEY_ENV,
    CustomEndpointEmbeddingProvider,
    LiteLLMEmbeddingProvider,
    create_provider,
)
from vecsync.errors import EmbeddingFailure

_PATCH = "vecsync.embeddings.providers.litellm.embedding"


def _response(*vectors, shuffled=False):
    data = [{"index": i, "embedding": list(v)} for i, v in enumerate(vectors)]
    if shuffled:
        data.reverse()
    return SimpleNamespace(data=data)


def test_embed_returns_vector():
    provider = LiteLLMEmbeddingProvider("openai/text-embedding-3-small")
    with patch(_PATCH, return_value=_response([0.1, 0.2])) as mock_embed:
        assert provider.embed("hello") == [0.1, 0.2]
    kwargs = mock_embed.call_args.kwargs
    assert kwargs["model"] == "openai/text-embedding-3-small"
    assert kwargs["input"] == ["hello"]
    assert "api_base" not in kwargs


def test_embed_batch_preserves_input_order():
    provider = LiteLLMEmbeddingProvider("openai/text-embedding-3-small")
    with patch(_PATCH, return_value=_response([1.0], [2.0], [3.0], shuffled=True)):
        assert provider.embed_batch(["a", "b", "c"]) == [[1.0], [2.0], [3.0]]


def test_dimensions_passed_through():
    provider = LiteLLMEmbeddingProvider("openai/text-embedding-3-large", dimensions=256)
    with patch(_PATCH, return_value=_response([0.5])) as mock_embed:
        provider.embed("x")
    assert mock_embed.call_args.kwargs["dimensions"] == 256


def test_empty_text_rejected_without_calling_provider():
    provider = LiteLLMEmbeddingProvider("openai/text-embedding-3-small")
    with patch(_PATCH) as mock_embed:
        with pytest.raises(EmbeddingFailure, match="empty"):
            provider.embed("   ")
    mock_embed.assert_not_called()


def test_empty_batch_rejected():
    provider = LiteLLMEmbeddingProvider("openai/text-embedding-3-small")
    with pytest.raises(EmbeddingFailure):
        provider.embed_batch([])


def test_provider_exception_becomes_embedding_failure():
    provider = LiteLLMEmbeddingProvider("openai/text-embedding-3-small")
    with patch(_PATCH, side_effect=RuntimeError("401 invalid api key")):
        with pytest.raises(EmbeddingFailure, match="invalid api key"):
            provider.embed("hello")


def test_malformed_response_becomes_embedding_failure():
    provider = LiteLLMEmbeddingProvider("openai/text-embedding-3-small")
    with patch(_PATCH, return_value=SimpleNamespace(data=[{"index": 0}])):
        with pytest.raises(EmbeddingFailure, match="malformed"):
            provider.embed("hello")


def test_empty_vector_becomes_embedding_failure():
    provider = LiteLLMEmbeddingProvider("openai/text-embedding-3-small")
    with patch(_PATCH, return_value=_response([])):
        with pytest.raises(EmbeddingFailure, match="empty vector"):
            provider.embed("hello")


def test_count_mismatch_becomes_embedding_failure():
    provider = LiteLLMEmbeddingProvider("openai/text-embedding-3-small")
    with patch(_PATCH, return_value=_response([1.0])):
        with pytest.raises(EmbeddingFailure, match="2 inputs"):
            provider.embed_batch(["a", "b"])


# --- custom endpoint ---


def test_custom_endpoint_routes_through_openai_client(monkeypatch):
    monkeypatch.delenv(CUSTOM_API_KEY_ENV, raising=False)
    provider = CustomEndpointEmbeddingProvider("http://embed.local:8080/v1", "bge-small")
    with patch(_PATCH, return_value=_response([0.3])) as mock_embed:
        provider.embed("hello")
    kwargs = mock_embed.call_args.kwargs
    assert kwargs["model"] == "openai/bge-small"
    assert kwargs["api_base"] == "http://embed.local:8080/v1"
    assert kwargs["api_key"] == "unused"


def test_custom_endpoint_uses_key_from_environment(monkeypatch):
    monkeypatch.setenv(CUSTOM_API_KEY_ENV, "sk-local")
    provider = CustomEndpointEmbeddingProvider("http://embed.local/v1", "openai/bge-small")
    assert provider.api_key == "sk-local"
    assert provider.model == "openai/bge-small"


# --- create_provider ---


def test_create_provider_litellm():
    provider = create_provider(EmbeddingCfg(model="cohere/embed-english-v3.0"))
    assert isinstance(provider, LiteLLMEmbeddingProvider)
    assert provider.model == "cohere/embed-english-v3.0"


def test_create_provider_custom():
    cfg = EmbeddingCfg(provider="custom", model="bge", endpoint="http://embed.local/v1")
    provider = create_provider(cfg)
    assert isinstance(provider, CustomEndpointEmbeddingProvider)
    assert provider.endpoint == "http://embed.local/v1"


def test_create_provider_custom_without_endpoint():
    with pytest.raises(ConfigError):
        create_provider(EmbeddingCfg(provider="custom", model="bge"))


def test_create_provider_unknown():
    with pytest.raises(ConfigError, match="Unknown"):
        create_provider(EmbeddingCfg(provider="nope"))
