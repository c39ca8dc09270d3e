"""Bounded LRU cache for embeddings plus batched cache-aware embedding."""
from __future__ import annotations

import logging
import math
import threading
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .errors import ConfigurationError, ContragError, ProviderError
from .providers.base import EmbeddingProvider
from .telemetry import emit_cache_event
from .text import normalize_cache_key, truncate_text

LOGGER = logging.getLogger(__name__)

DEFAULT_CACHE_SIZE = 1000

EmbedFn = Callable[[List[str]], Sequence[Sequence[float]]]


class EmbeddingCache:
    """Map normalised text to its embedding with least-recently-used eviction.

    ``get`` hits and ``insert`` both mark the key as most recently used. The
    cache is only an optimisation: dropping entries never changes results.
    """

    def __init__(self, max_size: int = DEFAULT_CACHE_SIZE) -> None:
        if max_size < 1:
            raise ConfigurationError("cache max_size must be at least 1")
        self.max_size = max_size
        self._entries: "OrderedDict[str, Tuple[float, ...]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        return normalize_cache_key(key) in self._entries

    def get(self, key: str) -> Optional[List[float]]:
        normalized = normalize_cache_key(key)
        with self._lock:
            value = self._entries.get(normalized)
            if value is None:
                self.misses += 1
                return None
            self._entries.move_to_end(normalized)
            self.hits += 1
            return list(value)

    def insert(self, key: str, embedding: Sequence[float]) -> None:
        normalized = normalize_cache_key(key)
        value = tuple(float(component) for component in embedding)
        with self._lock:
            if normalized in self._entries:
                self._entries.move_to_end(normalized)
            elif len(self._entries) >= self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                self.evictions += 1
                LOGGER.debug("Evicted embedding cache entry %r", evicted[:40])
            self._entries[normalized] = value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
            self.evictions = 0

    def stats(self) -> Dict[str, float | int]:
        total = self.hits + self.misses
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": (self.hits / total) if total else 0.0,
        }

    def embed_with_cache(self, texts: Sequence[str], embed_fn: EmbedFn) -> List[List[float]]:
        """Embed *texts*, calling ``embed_fn`` at most once for the cache misses.

        Misses are de-duplicated by cache key and passed in first-seen order. The
        output has the same length and order as *texts*.
        """

        resolved: Dict[str, List[float]] = {}
        pending: List[str] = []
        pending_keys: List[str] = []
        seen: set[str] = set()
        hits = 0
        evictions_before = self.evictions

        for text in texts:
            key = normalize_cache_key(text)
            if key in seen:
                continue
            seen.add(key)
            cached = self.get(text)
            if cached is not None:
                resolved[key] = cached
                hits += 1
            else:
                pending.append(text)
                pending_keys.append(key)

        if pending:
            embeddings = list(embed_fn(list(pending)))
            if len(embeddings) != len(pending):
                raise ProviderError(
                    f"Embedding provider returned {len(embeddings)} vectors for {len(pending)} texts"
                )
            for text, key, embedding in zip(pending, pending_keys, embeddings):
                vector = [float(component) for component in embedding]
                self.insert(text, vector)
                resolved[key] = vector

        emit_cache_event(
            requested=len(texts),
            hits=hits,
            misses=len(pending),
            evictions=self.evictions - evictions_before,
        )
        return [list(resolved[normalize_cache_key(text)]) for text in texts]


class CachedEmbedder:
    """Embedding provider front-end that consults an :class:`EmbeddingCache` first."""

    def __init__(self, provider: EmbeddingProvider, cache: EmbeddingCache | None = None) -> None:
        self.provider = provider
        self.cache = cache

    def dimensions(self) -> int:
        return self.provider.dimensions()

    def _embed_uncached(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            embeddings = [[float(component) for component in vector] for vector in self.provider.embed(texts)]
        except ContragError:
            raise
        except Exception as error:
            raise ProviderError(
                f"Embedding provider {self.provider.name!r} failed: {error}", cause=error
            ) from error
        for text, vector in zip(texts, embeddings):
            if not vector or not all(math.isfinite(component) for component in vector):
                raise ProviderError(
                    f"Embedding provider {self.provider.name!r} returned an empty or non-finite vector "
                    f"for {truncate_text(text, 40)!r}"
                )
        return embeddings

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        if self.cache is None:
            embeddings = self._embed_uncached(list(texts))
            if len(embeddings) != len(texts):
                raise ProviderError(
                    f"Embedding provider returned {len(embeddings)} vectors for {len(texts)} texts"
                )
            return embeddings
        return self.cache.embed_with_cache(texts, self._embed_uncached)


__all__ = ["CachedEmbedder", "DEFAULT_CACHE_SIZE", "EmbeddingCache"]
