"""Tests for embedding provider implementations."""
from __future__ import annotations

import sys

import numpy as np
import pytest

from contrag.config import EmbedderSettings
from contrag.errors import ProviderError
from contrag.providers import (
    MockEmbeddingProvider,
    SentenceTransformerEmbeddingProvider,
    get_embedding_provider,
)


def test_mock_embedding_provider_returns_deterministic_vectors() -> None:
    provider = MockEmbeddingProvider(dimension=5)
    texts = ["hello", "world"]

    vectors = provider.embed(texts)

    assert len(vectors) == len(texts)
    for vector in vectors:
        assert len(vector) == 5
        assert all(isinstance(value, float) and 0.0 <= value < 1.0 for value in vector)
    assert vectors[0] != vectors[1]

    # Deterministic output for the same inputs, across instances.
    assert vectors == MockEmbeddingProvider(dimension=5).embed(texts)
    assert provider.calls == [texts]


def test_mock_provider_rejects_invalid_dimension() -> None:
    with pytest.raises(ValueError):
        MockEmbeddingProvider(dimension=0)


def test_connection_test_reports_dimensions() -> None:
    result = MockEmbeddingProvider(dimension=3).test_connection()

    assert result.connected is True
    assert result.plugin == "mock"
    assert result.details == "dimensions=3"
    assert result.latency_ms is not None


def test_factory_builds_configured_provider() -> None:
    mock = get_embedding_provider(EmbedderSettings(provider="mock", dimensions=16))
    local = get_embedding_provider(EmbedderSettings(provider="sentence-transformers", model="my-model"))

    assert isinstance(mock, MockEmbeddingProvider)
    assert mock.dimensions() == 16
    assert isinstance(local, SentenceTransformerEmbeddingProvider)
    assert local.model_name == "my-model"


def test_sentence_transformer_without_package_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(sys.modules, "sentence_transformers", None)
    provider = SentenceTransformerEmbeddingProvider("any-model")

    with pytest.raises(ProviderError):
        provider.embed(["text"])

    result = provider.test_connection()
    assert result.connected is False
    assert "sentence-transformers" in (result.error or "")


def test_sentence_transformer_wraps_loaded_model(monkeypatch: pytest.MonkeyPatch) -> None:
    class _FakeModel:
        def __init__(self, name: str, device: str | None = None) -> None:
            self.name = name

        def get_sentence_embedding_dimension(self) -> int:
            return 3

        def encode(self, texts, **kwargs):
            return np.array([[float(len(text)), 0.0, 1.0] for text in texts])

    fake_module = type(sys)("sentence_transformers")
    fake_module.SentenceTransformer = _FakeModel
    monkeypatch.setitem(sys.modules, "sentence_transformers", fake_module)

    provider = SentenceTransformerEmbeddingProvider("fake", expected_dimensions=3)

    assert provider.embed(["ab", "abcd"]) == [[2.0, 0.0, 1.0], [4.0, 0.0, 1.0]]
    assert provider.dimensions() == 3

    mismatched = SentenceTransformerEmbeddingProvider("fake", expected_dimensions=384)
    with pytest.raises(ProviderError):
        mismatched.dimensions()
