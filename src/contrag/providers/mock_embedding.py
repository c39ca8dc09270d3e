"""Mock embedding provider for tests and offline development."""
from __future__ import annotations

import hashlib
import random
from typing import List, Sequence

from .base import EmbeddingProvider


class MockEmbeddingProvider(EmbeddingProvider):
    """Return deterministic embedding vectors for provided texts.

    Values are seeded from a SHA-256 of the text, so the same text always maps
    to the same vector. ``calls`` records every batch passed to :meth:`embed`.
    """

    name = "mock"

    def __init__(self, dimension: int = 8) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be a positive integer")
        self._dimension = dimension
        self.calls: List[List[str]] = []

    def dimensions(self) -> int:
        return self._dimension

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        batch = list(texts)
        self.calls.append(batch)

        vectors: List[List[float]] = []
        for text in batch:
            seed = hashlib.sha256(text.encode("utf-8")).hexdigest()
            rng = random.Random(seed)
            vectors.append([rng.random() for _ in range(self._dimension)])
        return vectors
