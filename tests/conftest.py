"""Shared fixtures: deterministic providers and fresh stores for every test."""
from __future__ import annotations

from typing import List

import pytest

from contrag.cache import CachedEmbedder, EmbeddingCache
from contrag.chunking import ChunkingConfig, TextChunker
from contrag.pipeline import RetrievalPipeline
from contrag.providers import MockEmbeddingProvider
from contrag.vectorstore import EmbeddedVector, InMemoryVectorStore, VectorMetadata

_CONFIG_ENV_VARS = (
    "CONTRAG_CONFIG_PATH",
    "CONTRAG_CHUNK_SIZE",
    "CONTRAG_CHUNK_OVERLAP",
    "CONTRAG_EMBEDDER",
    "CONTRAG_EMBEDDING_MODEL",
    "CONTRAG_EMBEDDING_DIMENSIONS",
    "CONTRAG_EMBEDDING_DEVICE",
    "CONTRAG_CACHE_SIZE",
    "CONTRAG_CHECKPOINT_PATH",
    "CONTRAG_LOG_LEVEL",
    "CONTRAG_LOG_DIR",
    "CONTRAG_TELEMETRY_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolated_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider(dimension=8)


@pytest.fixture()
def store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture()
def pipeline(provider: MockEmbeddingProvider, store: InMemoryVectorStore) -> RetrievalPipeline:
    return RetrievalPipeline(
        store=store,
        embedder=CachedEmbedder(provider, EmbeddingCache(max_size=100)),
        chunker=TextChunker(ChunkingConfig(chunk_size=50, overlap=10)),
        clock=lambda: 1_700_000_000_000_000_000,
    )


def make_vector(vector_id: str, embedding: List[float], text: str | None = None) -> EmbeddedVector:
    return EmbeddedVector(
        id=vector_id,
        embedding=embedding,
        source_text=text if text is not None else f"text of {vector_id}",
        metadata=VectorMetadata(
            entity_type="Doc",
            entity_id=vector_id,
            chunk_index=0,
            total_chunks=1,
            timestamp=0,
        ),
    )
