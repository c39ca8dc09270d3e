"""Context-aware retrieval: chunking, cached embeddings and a namespaced vector store."""

from .cache import CachedEmbedder, EmbeddingCache
from .chunking import Chunk, ChunkingConfig, TextChunker, chunk_text
from .config import ContragConfig, load_config, load_config_from_json
from .errors import (
    CancellationRequestedError,
    ConfigurationError,
    ContragError,
    DimensionMismatchError,
    EntityNotFoundError,
    InvalidEntityTypeError,
    NamespaceNotFoundError,
    ProviderError,
    SnapshotError,
)
from .pipeline import RetrievalPipeline
from .similarity import MAX_DISTANCE, cosine_similarity, euclidean_distance
from .vectorstore import EmbeddedVector, InMemoryVectorStore, SearchResult, VectorMetadata, VectorStore

__version__ = "0.1.0"

__all__ = [
    "CachedEmbedder",
    "CancellationRequestedError",
    "Chunk",
    "ChunkingConfig",
    "ConfigurationError",
    "ContragConfig",
    "ContragError",
    "DimensionMismatchError",
    "EmbeddedVector",
    "EmbeddingCache",
    "EntityNotFoundError",
    "InMemoryVectorStore",
    "InvalidEntityTypeError",
    "MAX_DISTANCE",
    "NamespaceNotFoundError",
    "ProviderError",
    "RetrievalPipeline",
    "SearchResult",
    "SnapshotError",
    "TextChunker",
    "VectorMetadata",
    "VectorStore",
    "chunk_text",
    "cosine_similarity",
    "euclidean_distance",
    "load_config",
    "load_config_from_json",
]
