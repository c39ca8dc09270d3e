"""In-memory vector store with per-namespace copy-on-write state."""
from __future__ import annotations

import itertools
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from contrag.errors import (
    CancellationRequestedError,
    DimensionMismatchError,
    NamespaceNotFoundError,
    SnapshotError,
)
from contrag.similarity import cosine_scores, squared_norms
from contrag.telemetry import emit_vectorstore_event

from .base import CancelSignal, VectorStore
from .models import EmbeddedVector, SearchResult, VectorMetadata

LOGGER = logging.getLogger(__name__)

SNAPSHOT_FORMAT = "contrag.vectorstore"
SNAPSHOT_VERSION = 1
DEFAULT_SEARCH_BLOCK_SIZE = 4096


@dataclass(frozen=True, slots=True)
class _NamespaceState:
    """Immutable contents of one namespace; replaced wholesale on every write."""

    vectors: Tuple[EmbeddedVector, ...]
    slots: Mapping[str, int]
    matrix: np.ndarray
    norms: np.ndarray
    dimension: Optional[int]


def _build_state(vectors: Sequence[EmbeddedVector], dimension: Optional[int]) -> _NamespaceState:
    if vectors:
        matrix = np.vstack([vector.embedding for vector in vectors]).astype(np.float32, copy=False)
    else:
        matrix = np.zeros((0, dimension or 0), dtype=np.float32)
    matrix.setflags(write=False)
    norms = squared_norms(matrix)
    norms.setflags(write=False)
    return _NamespaceState(
        vectors=tuple(vectors),
        slots={vector.id: slot for slot, vector in enumerate(vectors)},
        matrix=matrix,
        norms=norms,
        dimension=dimension,
    )


_EMPTY_STATE = _build_state((), None)


class _Namespace:
    __slots__ = ("name", "lock", "state", "committed", "deleted", "sequence")

    def __init__(self, name: str) -> None:
        self.name = name
        self.lock = threading.Lock()
        self.state = _EMPTY_STATE
        self.committed = False
        self.deleted = False
        self.sequence = 0


def _upsert(namespace: str, state: _NamespaceState, vectors: Iterable[EmbeddedVector]) -> _NamespaceState:
    dimension = state.dimension
    items = list(state.vectors)
    slots = dict(state.slots)
    for vector in vectors:
        if dimension is None:
            dimension = vector.dimension
        elif vector.dimension != dimension:
            raise DimensionMismatchError(dimension, vector.dimension, namespace=namespace)
        slot = slots.get(vector.id)
        if slot is None:
            slots[vector.id] = len(items)
            items.append(vector)
        else:
            items[slot] = vector
    return _build_state(items, dimension)


class InMemoryVectorStore(VectorStore):
    """Brute-force cosine similarity store partitioned by namespace.

    Writers to the same namespace are serialised by that namespace's lock and
    publish a fresh immutable state with a single assignment. Readers never
    lock: they take the current state reference and work on that snapshot.
    The registry lock only guards namespace creation, lookup and removal, so
    operations on different namespaces do not wait on each other.
    """

    def __init__(self, *, search_block_size: int = DEFAULT_SEARCH_BLOCK_SIZE) -> None:
        if search_block_size <= 0:
            raise ValueError("search_block_size must be a positive integer")
        self.search_block_size = search_block_size
        self._namespaces: Dict[str, _Namespace] = {}
        self._registry_lock = threading.Lock()
        self._sequence = itertools.count(1)

    # registry ------------------------------------------------------------------
    def _lookup(self, name: str) -> Optional[_Namespace]:
        with self._registry_lock:
            namespace = self._namespaces.get(name)
        if namespace is None or not namespace.committed:
            return None
        return namespace

    def _require(self, name: str) -> _Namespace:
        namespace = self._lookup(name)
        if namespace is None:
            raise NamespaceNotFoundError(name)
        return namespace

    def _namespace_for_write(self, name: str) -> _Namespace:
        with self._registry_lock:
            namespace = self._namespaces.get(name)
            if namespace is None:
                namespace = self._namespaces[name] = _Namespace(name)
            return namespace

    def _write(self, name: str, vectors: Sequence[EmbeddedVector]) -> _NamespaceState:
        while True:
            namespace = self._namespace_for_write(name)
            with namespace.lock:
                if namespace.deleted:
                    continue
                try:
                    state = _upsert(name, namespace.state, vectors)
                except Exception:
                    if not namespace.committed:
                        namespace.deleted = True
                        with self._registry_lock:
                            if self._namespaces.get(name) is namespace:
                                del self._namespaces[name]
                    raise
                namespace.state = state
                if not namespace.committed:
                    with self._registry_lock:
                        namespace.sequence = next(self._sequence)
                    namespace.committed = True
                return state

    # mutations -----------------------------------------------------------------
    def store(self, namespace: str, vector: EmbeddedVector) -> None:
        self._write(namespace, (vector,))

    def store_batch(self, namespace: str, vectors: Sequence[EmbeddedVector]) -> None:
        batch = list(vectors)
        if not batch:
            return
        try:
            state = self._write(namespace, batch)
        except DimensionMismatchError as error:
            emit_vectorstore_event("vectorstore.store_batch", namespace=namespace, count=len(batch), error=error)
            raise
        emit_vectorstore_event(
            "vectorstore.store_batch",
            namespace=namespace,
            count=len(state.vectors),
            dimension=state.dimension,
        )

    def delete(self, namespace: str, vector_id: str) -> bool:
        return bool(self.delete_many(namespace, (vector_id,)))

    def delete_many(self, namespace: str, vector_ids: Iterable[str]) -> List[str]:
        wanted = set(vector_ids)
        target = self._lookup(namespace)
        if target is None or not wanted:
            return []
        with target.lock:
            if target.deleted:
                return []
            state = target.state
            removed = [vector.id for vector in state.vectors if vector.id in wanted]
            if not removed:
                return []
            remaining = [vector for vector in state.vectors if vector.id not in wanted]
            target.state = _build_state(remaining, state.dimension)
        LOGGER.debug("Deleted %d vector(s) from namespace %s", len(removed), namespace)
        return removed

    def delete_namespace(self, namespace: str) -> bool:
        with self._registry_lock:
            target = self._namespaces.pop(namespace, None)
        if target is None:
            return False
        with target.lock:
            target.deleted = True
            existed = target.committed
            removed = len(target.state.vectors)
            target.state = _EMPTY_STATE
        if existed:
            emit_vectorstore_event("vectorstore.delete_namespace", namespace=namespace, count=removed)
        return existed

    # reads ---------------------------------------------------------------------
    def count(self, namespace: str) -> int:
        target = self._lookup(namespace)
        return len(target.state.vectors) if target is not None else 0

    def list_namespaces(self) -> List[str]:
        with self._registry_lock:
            committed = [ns for ns in self._namespaces.values() if ns.committed]
        return [ns.name for ns in sorted(committed, key=lambda ns: ns.sequence)]

    def ids(self, namespace: str) -> List[str]:
        return [vector.id for vector in self._require(namespace).state.vectors]

    def dimension(self, namespace: str) -> Optional[int]:
        return self._require(namespace).state.dimension

    @staticmethod
    def _raise_if_cancelled(cancel_event: Optional[CancelSignal], deadline: Optional[float]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise CancellationRequestedError("Search cancelled")
        if deadline is not None and time.monotonic() >= deadline:
            raise CancellationRequestedError("Search deadline exceeded")

    def search(
        self,
        namespace: str,
        query_embedding: Sequence[float] | np.ndarray,
        k: int,
        *,
        cancel_event: Optional[CancelSignal] = None,
        deadline: Optional[float] = None,
    ) -> List[SearchResult]:
        state = self._require(namespace).state
        total = len(state.vectors)
        if k <= 0 or total == 0:
            return []

        query = np.asarray(query_embedding, dtype=np.float64).reshape(-1)
        if query.size != state.dimension:
            raise DimensionMismatchError(int(state.dimension or 0), int(query.size), namespace=namespace)
        if not np.all(np.isfinite(query)):
            raise ValueError("query embedding contains non-finite values")

        scores = np.empty(total, dtype=np.float64)
        for block_start in range(0, total, self.search_block_size):
            self._raise_if_cancelled(cancel_event, deadline)
            block_end = min(block_start + self.search_block_size, total)
            scores[block_start:block_end] = cosine_scores(
                state.matrix[block_start:block_end],
                state.norms[block_start:block_end],
                query,
            )
        self._raise_if_cancelled(cancel_event, deadline)

        # Stable sort: equal scores keep ascending insertion order.
        ranked = np.argsort(-scores, kind="stable")[: min(k, total)]
        results: List[SearchResult] = []
        for slot in ranked:
            vector = state.vectors[int(slot)]
            results.append(
                SearchResult(
                    vector_id=vector.id,
                    source_text=vector.source_text,
                    score=float(scores[slot]),
                    metadata=vector.metadata,
                )
            )
        return results

    # snapshots -----------------------------------------------------------------
    def export_snapshot(self) -> bytes:
        with self._registry_lock:
            namespaces = sorted(
                (ns for ns in self._namespaces.values() if ns.committed),
                key=lambda ns: ns.sequence,
            )
        payload: Dict[str, Any] = {
            "format": SNAPSHOT_FORMAT,
            "version": SNAPSHOT_VERSION,
            "namespaces": [
                {
                    "name": ns.name,
                    "dimension": state.dimension,
                    "vectors": [
                        {
                            "id": vector.id,
                            "embedding": vector.embedding.tolist(),
                            "source_text": vector.source_text,
                            "metadata": vector.metadata.to_dict(),
                        }
                        for vector in state.vectors
                    ],
                }
                for ns, state in ((ns, ns.state) for ns in namespaces)
            ],
        }
        try:
            return json.dumps(payload, ensure_ascii=False, allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as error:
            raise SnapshotError("Vector store contents are not serialisable", cause=error) from error

    @staticmethod
    def _parse_snapshot(data: bytes) -> List[Tuple[str, _NamespaceState]]:
        try:
            payload = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as error:
            raise SnapshotError("Snapshot is not valid UTF-8 JSON", cause=error) from error

        if not isinstance(payload, dict) or payload.get("format") != SNAPSHOT_FORMAT:
            raise SnapshotError("Unrecognised snapshot format")
        if payload.get("version") != SNAPSHOT_VERSION:
            raise SnapshotError(f"Unsupported snapshot version: {payload.get('version')!r}")

        parsed: List[Tuple[str, _NamespaceState]] = []
        seen: set[str] = set()
        try:
            for entry in payload["namespaces"]:
                name = str(entry["name"])
                if name in seen:
                    raise SnapshotError(f"Duplicate namespace in snapshot: {name}")
                seen.add(name)
                vectors = [
                    EmbeddedVector(
                        id=str(record["id"]),
                        embedding=np.asarray(record["embedding"], dtype=np.float32),
                        source_text=str(record["source_text"]),
                        metadata=VectorMetadata.from_dict(record["metadata"]),
                    )
                    for record in entry["vectors"]
                ]
                state = _upsert(name, _EMPTY_STATE, vectors)
                declared = entry.get("dimension")
                if declared is not None and state.dimension is not None and int(declared) != state.dimension:
                    raise DimensionMismatchError(int(declared), state.dimension, namespace=name)
                if state.dimension is None and declared is not None:
                    state = _build_state((), int(declared))
                parsed.append((name, state))
        except SnapshotError:
            raise
        except (KeyError, TypeError, ValueError, DimensionMismatchError) as error:
            raise SnapshotError(f"Malformed snapshot: {error}", cause=error) from error
        return parsed

    def import_snapshot(self, data: bytes) -> None:
        parsed = self._parse_snapshot(data)

        replacements: Dict[str, _Namespace] = {}
        for name, state in parsed:
            namespace = _Namespace(name)
            namespace.state = state
            namespace.committed = True
            replacements[name] = namespace

        with self._registry_lock:
            for namespace in replacements.values():
                namespace.sequence = next(self._sequence)
            previous = list(self._namespaces.values())
            self._namespaces = replacements

        for namespace in previous:
            with namespace.lock:
                namespace.deleted = True
                namespace.state = _EMPTY_STATE

        LOGGER.info(
            "Restored %s namespaces (%s vectors) from snapshot",
            len(parsed),
            sum(len(state.vectors) for _, state in parsed),
        )


__all__ = ["DEFAULT_SEARCH_BLOCK_SIZE", "InMemoryVectorStore", "SNAPSHOT_FORMAT", "SNAPSHOT_VERSION"]
