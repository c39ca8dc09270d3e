"""Embedding provider implementations and the configuration-driven factory."""
from __future__ import annotations

from contrag.config import EmbedderSettings
from contrag.errors import ConfigurationError

from .base import ConnectionTestResult, EmbeddingProvider
from .mock_embedding import MockEmbeddingProvider
from .sentence_transformer import SentenceTransformerEmbeddingProvider


def get_embedding_provider(settings: EmbedderSettings | None = None) -> EmbeddingProvider:
    """Build the provider named by ``settings.provider``."""

    settings = settings or EmbedderSettings()
    if settings.provider == "mock":
        return MockEmbeddingProvider(dimension=settings.dimensions)
    if settings.provider == "sentence-transformers":
        return SentenceTransformerEmbeddingProvider(
            settings.model,
            device=settings.device,
            expected_dimensions=settings.dimensions,
        )
    raise ConfigurationError(f"Unsupported embedding provider: {settings.provider!r}")


__all__ = [
    "ConnectionTestResult",
    "EmbeddingProvider",
    "MockEmbeddingProvider",
    "SentenceTransformerEmbeddingProvider",
    "get_embedding_provider",
]
