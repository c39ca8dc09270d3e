"""Namespace-partitioned vector storage."""

from __future__ import annotations

from contrag.config import VectorStoreSettings
from contrag.errors import DimensionMismatchError, NamespaceNotFoundError, SnapshotError

from .base import CancelSignal, VectorStore
from .memory_store import DEFAULT_SEARCH_BLOCK_SIZE, InMemoryVectorStore
from .models import EmbeddedVector, SearchResult, VectorMetadata, check_entity_type, generate_vector_id


def create_vector_store(settings: VectorStoreSettings | None = None) -> VectorStore:
    """Return a new store configured from ``settings``."""

    settings = settings or VectorStoreSettings()
    return InMemoryVectorStore(search_block_size=settings.search_block_size)


__all__ = [
    "CancelSignal",
    "DEFAULT_SEARCH_BLOCK_SIZE",
    "DimensionMismatchError",
    "EmbeddedVector",
    "InMemoryVectorStore",
    "NamespaceNotFoundError",
    "SearchResult",
    "SnapshotError",
    "VectorMetadata",
    "VectorStore",
    "create_vector_store",
    "check_entity_type",
    "generate_vector_id",
]
