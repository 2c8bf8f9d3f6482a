"""Tests for embedding providers and env-driven provider selection."""

import math
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
import requests

from errormem.embedding.ollama import OllamaEmbeddingProvider
from errormem.embedding.openai import OpenAIEmbeddingProvider
from errormem.embedding.placeholder import PlaceholderEmbeddingProvider
from errormem.embedding.provider import EmbeddingProvider
from errormem.embedding.provider_init import init_embedding_provider


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Helper to set environment variables."""

    def _set_vars(**kwargs):
        for key, value in kwargs.items():
            if value is None:
                monkeypatch.delenv(key, raising=False)
            else:
                monkeypatch.setenv(key, value)

    return _set_vars


@pytest.fixture
def bare_env(mock_env_vars):
    mock_env_vars(
        EMBEDDING_PROVIDER=None,
        OPENAI_API_KEY=None,
        OPENAI_BASE_URL=None,
        OLLAMA_BASE_URL=None,
        OLLAMA_MODEL=None,
        OLLAMA_TIMEOUT=None,
        OLLAMA_MAX_RETRIES=None,
    )
    return mock_env_vars


def _state():
    return SimpleNamespace(embedding_provider=None)


# ==================== PlaceholderEmbeddingProvider ====================


def test_placeholder_is_deterministic_unit_vector():
    provider = PlaceholderEmbeddingProvider(dimension=128)
    first = provider.generate_embedding("Module not found")
    second = provider.generate_embedding("module NOT found")

    assert first == second
    assert len(first) == 128
    assert math.sqrt(sum(v * v for v in first)) == pytest.approx(1.0)


def test_placeholder_differs_between_texts():
    provider = PlaceholderEmbeddingProvider(dimension=32)
    assert provider.generate_embedding("alpha") != provider.generate_embedding("omega")


def test_placeholder_empty_text_is_zero_vector():
    provider = PlaceholderEmbeddingProvider(dimension=8)
    assert provider.generate_embedding("") == [0.0] * 8


def test_placeholder_batch_and_metadata():
    provider = PlaceholderEmbeddingProvider(dimension=16)
    batch = provider.generate_embeddings_batch(["a", "b"])
    assert batch == [provider.generate_embedding("a"), provider.generate_embedding("b")]
    assert provider.dimension() == 16
    assert provider.provider_name() == "placeholder-v1"
    assert isinstance(provider, EmbeddingProvider)
    assert "dimension=16" in repr(provider)


def test_placeholder_rejects_non_positive_dimension():
    with pytest.raises(ValueError):
        PlaceholderEmbeddingProvider(dimension=0)


# ==================== OpenAIEmbeddingProvider ====================


@patch("errormem.embedding.openai.OpenAI")
def test_openai_generate_embedding(mock_openai):
    client = Mock()
    client.embeddings.create.return_value = Mock(data=[Mock(embedding=[0.1] * 8)])
    mock_openai.return_value = client

    provider = OpenAIEmbeddingProvider(api_key="sk-test", model="text-embedding-3-small", dimension=8)

    assert provider.generate_embedding("boom") == [0.1] * 8
    client.embeddings.create.assert_called_once_with(
        input="boom", model="text-embedding-3-small", dimensions=8
    )
    assert provider.provider_name() == "openai:text-embedding-3-small"


@patch("errormem.embedding.openai.OpenAI")
def test_openai_rejects_wrong_dimension(mock_openai):
    client = Mock()
    client.embeddings.create.return_value = Mock(data=[Mock(embedding=[0.1] * 4)])
    mock_openai.return_value = client

    provider = OpenAIEmbeddingProvider(api_key="sk-test", dimension=8)
    with pytest.raises(ValueError):
        provider.generate_embedding("boom")


@patch("errormem.embedding.openai.OpenAI")
def test_openai_batch(mock_openai):
    client = Mock()
    client.embeddings.create.return_value = Mock(
        data=[Mock(embedding=[0.1] * 4), Mock(embedding=[0.2] * 4)]
    )
    mock_openai.return_value = client

    provider = OpenAIEmbeddingProvider(api_key="sk-test", dimension=4)

    assert provider.generate_embeddings_batch([]) == []
    client.embeddings.create.assert_not_called()
    assert provider.generate_embeddings_batch(["a", "b"]) == [[0.1] * 4, [0.2] * 4]


@patch("errormem.embedding.openai.OpenAI")
def test_openai_passes_base_url(mock_openai):
    OpenAIEmbeddingProvider(api_key="sk-test", base_url="http://proxy.local/v1")
    assert mock_openai.call_args.kwargs["base_url"] == "http://proxy.local/v1"


# ==================== OllamaEmbeddingProvider ====================


def test_ollama_generate_embedding():
    provider = OllamaEmbeddingProvider(base_url="http://localhost:11434/", dimension=3)
    response = Mock()
    response.json.return_value = {"embedding": [0.1, 0.2, 0.3]}
    provider.session = Mock()
    provider.session.post.return_value = response

    assert provider.generate_embedding("boom") == [0.1, 0.2, 0.3]
    provider.session.post.assert_called_once_with(
        "http://localhost:11434/api/embeddings",
        json={"model": "nomic-embed-text", "prompt": "boom"},
        timeout=30.0,
    )


def test_ollama_accepts_data_envelope():
    provider = OllamaEmbeddingProvider(base_url="http://localhost:11434", dimension=2)
    response = Mock()
    response.json.return_value = {"data": [{"embedding": [0.5, 0.5]}]}
    provider.session = Mock()
    provider.session.post.return_value = response

    assert provider.generate_embeddings_batch(["a"]) == [[0.5, 0.5]]


def test_ollama_retries_then_fails():
    provider = OllamaEmbeddingProvider(base_url="http://localhost:11434", dimension=2, max_retries=2)
    provider.session = Mock()
    provider.session.post.side_effect = requests.ConnectionError("refused")

    with pytest.raises(RuntimeError, match="Ollama embedding request failed"):
        provider.generate_embedding("boom")
    assert provider.session.post.call_count == 3


def test_ollama_rejects_wrong_dimension():
    provider = OllamaEmbeddingProvider(base_url="http://localhost:11434", dimension=4)
    response = Mock()
    response.json.return_value = {"embedding": [0.1, 0.2]}
    provider.session = Mock()
    provider.session.post.return_value = response

    with pytest.raises(ValueError):
        provider.generate_embedding("boom")


# ==================== Provider selection ====================


def test_init_placeholder_by_name(bare_env):
    bare_env(EMBEDDING_PROVIDER="placeholder")
    state = _state()
    init_embedding_provider(state=state, vector_size=32, embedding_model="unused")
    assert isinstance(state.embedding_provider, PlaceholderEmbeddingProvider)
    assert state.embedding_provider.dimension() == 32


def test_init_auto_without_credentials_uses_placeholder(bare_env):
    state = _state()
    init_embedding_provider(state=state, vector_size=16, embedding_model="unused")
    assert isinstance(state.embedding_provider, PlaceholderEmbeddingProvider)


@patch("errormem.embedding.openai.OpenAI")
def test_init_auto_prefers_openai(mock_openai, bare_env):
    bare_env(OPENAI_API_KEY="sk-test")
    state = _state()
    init_embedding_provider(state=state, vector_size=16, embedding_model="text-embedding-3-small")
    assert isinstance(state.embedding_provider, OpenAIEmbeddingProvider)


def test_init_auto_uses_ollama_when_configured(bare_env):
    bare_env(OLLAMA_BASE_URL="http://ollama:11434", OLLAMA_TIMEOUT="not-a-number")
    state = _state()
    init_embedding_provider(state=state, vector_size=16, embedding_model="unused")
    assert isinstance(state.embedding_provider, OllamaEmbeddingProvider)
    assert state.embedding_provider.timeout == 30.0


def test_init_explicit_openai_requires_key(bare_env):
    bare_env(EMBEDDING_PROVIDER="openai")
    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        init_embedding_provider(state=_state(), vector_size=16, embedding_model="m")


def test_init_explicit_ollama_rejects_bad_timeout(bare_env):
    bare_env(EMBEDDING_PROVIDER="ollama", OLLAMA_TIMEOUT="soon")
    with pytest.raises(RuntimeError, match="OLLAMA_TIMEOUT"):
        init_embedding_provider(state=_state(), vector_size=16, embedding_model="m")


def test_init_rejects_unknown_provider(bare_env):
    with pytest.raises(ValueError, match="Invalid EMBEDDING_PROVIDER"):
        init_embedding_provider(
            state=_state(), vector_size=16, embedding_model="m", provider_config="magic"
        )


def test_init_none_leaves_provider_unset(bare_env):
    state = _state()
    init_embedding_provider(state=state, vector_size=16, embedding_model="m", provider_config="none")
    assert state.embedding_provider is None


def test_init_keeps_existing_provider(bare_env):
    existing = PlaceholderEmbeddingProvider(dimension=4)
    state = SimpleNamespace(embedding_provider=existing)
    bare_env(EMBEDDING_PROVIDER="ollama")
    init_embedding_provider(state=state, vector_size=16, embedding_model="m")
    assert state.embedding_provider is existing
