"""Records stored in and returned from the vector store."""
from __future__ import annotations

import copy
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence

import numpy as np

from contrag.errors import InvalidEntityTypeError

ID_SEPARATOR = "::"


def check_entity_type(entity_type: str) -> str:
    if not entity_type or ID_SEPARATOR in entity_type:
        raise InvalidEntityTypeError(entity_type)
    return entity_type


def generate_vector_id(entity_type: str, entity_id: str, chunk_index: int) -> str:
    """Deterministic id for one chunk of one entity, e.g. ``User::123::chunk_0``.

    The entity type may not contain ``::``, so the first separator always ends
    the type and the last ``::chunk_N`` always ends the id; distinct
    ``(entity_type, entity_id, chunk_index)`` triples never share an id.
    """

    check_entity_type(entity_type)
    return f"{entity_type}::{entity_id}::chunk_{chunk_index}"


@dataclass(frozen=True, slots=True)
class VectorMetadata:
    """Metadata attached to an individual embedded chunk.

    ``custom`` is deep-copied into a read-only mapping, so later changes to the
    caller's dict never reach stored vectors.
    """

    entity_type: str
    entity_id: str
    chunk_index: int
    total_chunks: int
    timestamp: int
    custom: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        if self.custom is not None:
            object.__setattr__(self, "custom", MappingProxyType(copy.deepcopy(dict(self.custom))))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "chunk_index": self.chunk_index,
            "total_chunks": self.total_chunks,
            "timestamp": self.timestamp,
            "custom": copy.deepcopy(dict(self.custom)) if self.custom is not None else None,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "VectorMetadata":
        custom = payload.get("custom")
        return cls(
            entity_type=str(payload["entity_type"]),
            entity_id=str(payload["entity_id"]),
            chunk_index=int(payload["chunk_index"]),
            total_chunks=int(payload["total_chunks"]),
            timestamp=int(payload["timestamp"]),
            custom=dict(custom) if custom is not None else None,
        )


@dataclass(eq=False, slots=True)
class EmbeddedVector:
    """An embedding together with the chunk text it was computed from.

    ``embedding`` is converted to a read-only one-dimensional float32 array.
    """

    id: str
    embedding: np.ndarray
    source_text: str
    metadata: VectorMetadata

    def __post_init__(self) -> None:
        array = np.array(self.embedding, dtype=np.float32).reshape(-1)
        if array.size == 0:
            raise ValueError(f"Vector {self.id!r} has an empty embedding")
        if not np.all(np.isfinite(array)):
            raise ValueError(f"Vector {self.id!r} contains non-finite embedding values")
        array.setflags(write=False)
        self.embedding = array

    @property
    def dimension(self) -> int:
        return int(self.embedding.shape[0])

    @classmethod
    def for_chunk(
        cls,
        *,
        entity_type: str,
        entity_id: str,
        chunk_index: int,
        total_chunks: int,
        embedding: Sequence[float] | np.ndarray,
        source_text: str,
        timestamp: int,
        custom: Optional[Mapping[str, Any]] = None,
    ) -> "EmbeddedVector":
        return cls(
            id=generate_vector_id(entity_type, entity_id, chunk_index),
            embedding=np.asarray(embedding),
            source_text=source_text,
            metadata=VectorMetadata(
                entity_type=entity_type,
                entity_id=entity_id,
                chunk_index=chunk_index,
                total_chunks=total_chunks,
                timestamp=timestamp,
                custom=custom,
            ),
        )


@dataclass(frozen=True, slots=True)
class SearchResult:
    """Structured response returned from similarity search queries."""

    vector_id: str
    source_text: str
    score: float
    metadata: VectorMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vector_id": self.vector_id,
            "source_text": self.source_text,
            "score": self.score,
            "metadata": self.metadata.to_dict(),
        }


__all__ = ["EmbeddedVector", "SearchResult", "VectorMetadata", "check_entity_type", "generate_vector_id"]
