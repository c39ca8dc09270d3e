"""Base provider interface for embedding backends."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

__all__ = ["ConnectionTestResult", "EmbeddingProvider"]


@dataclass(slots=True)
class ConnectionTestResult:
    """Outcome of :meth:`EmbeddingProvider.test_connection`."""

    plugin: str
    connected: bool
    latency_ms: Optional[float] = None
    error: Optional[str] = None
    details: Optional[str] = None


class EmbeddingProvider(ABC):
    """Abstract interface for embedding providers.

    ``embed`` is batched and order-preserving: the i-th returned vector belongs
    to the i-th input text, and every vector has ``dimensions()`` entries.
    """

    name: str = "embedding"

    @abstractmethod
    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Encode the provided texts into embeddings."""

    @abstractmethod
    def dimensions(self) -> int:
        """Length of every vector returned by :meth:`embed`."""

    def test_connection(self) -> ConnectionTestResult:
        """Embed a short sample string and report whether the backend answered."""

        started = time.perf_counter()
        try:
            vectors = self.embed(["connection test"])
        except Exception as error:
            return ConnectionTestResult(plugin=self.name, connected=False, error=str(error))

        latency_ms = (time.perf_counter() - started) * 1000.0
        if len(vectors) != 1 or len(vectors[0]) != self.dimensions():
            return ConnectionTestResult(
                plugin=self.name,
                connected=False,
                latency_ms=latency_ms,
                error="Unexpected embedding shape returned by provider",
            )
        return ConnectionTestResult(
            plugin=self.name,
            connected=True,
            latency_ms=latency_ms,
            details=f"dimensions={self.dimensions()}",
        )
