"""Abstract vector store contract."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Protocol, Sequence

import numpy as np

from .models import EmbeddedVector, SearchResult


class CancelSignal(Protocol):
    """Anything exposing ``is_set()``, typically :class:`threading.Event`."""

    def is_set(self) -> bool:
        ...


class VectorStore(ABC):
    """Namespace-partitioned store of embedded chunks.

    Every mutating call is all-or-nothing: on error the store is unchanged and
    concurrent readers never observe a partially applied write.
    """

    @abstractmethod
    def store(self, namespace: str, vector: EmbeddedVector) -> None:
        """Insert *vector*, replacing any vector with the same id."""

    @abstractmethod
    def store_batch(self, namespace: str, vectors: Sequence[EmbeddedVector]) -> None:
        """Insert every vector in one indivisible step."""

    @abstractmethod
    def search(
        self,
        namespace: str,
        query_embedding: Sequence[float] | np.ndarray,
        k: int,
        *,
        cancel_event: Optional[CancelSignal] = None,
        deadline: Optional[float] = None,
    ) -> List[SearchResult]:
        """Return up to *k* vectors ranked by cosine similarity to the query."""

    @abstractmethod
    def delete(self, namespace: str, vector_id: str) -> bool:
        """Remove a vector; returns ``False`` when there was nothing to remove."""

    @abstractmethod
    def delete_many(self, namespace: str, vector_ids: Iterable[str]) -> List[str]:
        """Remove several vectors at once; returns the ids that were present."""

    @abstractmethod
    def delete_namespace(self, namespace: str) -> bool:
        """Remove a namespace with all of its vectors."""

    @abstractmethod
    def count(self, namespace: str) -> int:
        ...

    @abstractmethod
    def list_namespaces(self) -> List[str]:
        ...

    @abstractmethod
    def ids(self, namespace: str) -> List[str]:
        """Vector ids of *namespace* in insertion order."""

    @abstractmethod
    def dimension(self, namespace: str) -> Optional[int]:
        ...

    @abstractmethod
    def export_snapshot(self) -> bytes:
        """Serialise the whole store into an opaque byte string."""

    @abstractmethod
    def import_snapshot(self, data: bytes) -> None:
        """Replace the whole store with the contents of a snapshot."""


__all__ = ["CancelSignal", "VectorStore"]
