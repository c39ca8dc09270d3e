"""Retrieval pipeline: chunk, embed through the cache, store, and search."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .cache import CachedEmbedder
from .chunking import TextChunker
from .entity import ContextBuilder, ContextSource, EntityRelationship
from .errors import ContragError, EntityNotFoundError, NamespaceNotFoundError, ProviderError
from .telemetry import emit_exception, emit_ingest_event, emit_retriever_event
from .text import current_timestamp_ns
from .vectorstore import CancelSignal, EmbeddedVector, SearchResult, VectorStore, check_entity_type

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger("contrag.ingest.audit")


@dataclass(slots=True)
class IngestRequest:
    entity_type: str
    entity_id: str
    text: str
    custom: Optional[Mapping[str, Any]] = None


@dataclass(slots=True)
class IngestResult:
    """Structured result returned from :meth:`RetrievalPipeline.ingest_text`."""

    namespace: str
    entity_type: str
    entity_id: str
    vector_ids: List[str]
    removed_ids: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def chunk_count(self) -> int:
        return len(self.vector_ids)


@dataclass(slots=True)
class IngestFailure:
    entity_type: str
    entity_id: str
    error: ContragError


@dataclass(slots=True)
class BulkIngestResult:
    succeeded: List[IngestResult] = field(default_factory=list)
    failed: List[IngestFailure] = field(default_factory=list)

    @property
    def chunk_count(self) -> int:
        return sum(result.chunk_count for result in self.succeeded)


def _chunk_index_of(vector_id: str, prefix: str) -> Optional[int]:
    if not vector_id.startswith(prefix):
        return None
    suffix = vector_id[len(prefix):]
    return int(suffix) if suffix.isdigit() else None


class RetrievalPipeline:
    """High level orchestration of ingestion and similarity queries.

    Ingesting an entity replaces its previous chunks: new chunks are upserted
    under deterministic ids and any higher-index chunks left over from a longer
    earlier version are deleted afterwards.
    """

    def __init__(
        self,
        *,
        store: VectorStore,
        embedder: CachedEmbedder,
        chunker: TextChunker | None = None,
        context_builder: ContextBuilder | None = None,
        clock: Callable[[], int] = current_timestamp_ns,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.chunker = chunker or TextChunker()
        self.context_builder = context_builder or ContextBuilder(chunker=self.chunker)
        self._clock = clock

    def ingest_text(
        self,
        namespace: str,
        entity_type: str,
        entity_id: str,
        text: str,
        *,
        custom: Optional[Mapping[str, Any]] = None,
    ) -> IngestResult:
        started = time.perf_counter()
        check_entity_type(entity_type)
        chunks = self.chunker.chunk(text)
        emit_ingest_event(
            "ingest.entity.start",
            namespace=namespace,
            entity_type=entity_type,
            entity_id=entity_id,
            text_length=len(text),
        )

        try:
            embeddings = self.embedder.embed([chunk.text for chunk in chunks])
            timestamp = self._clock()
            vectors = [
                EmbeddedVector.for_chunk(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    chunk_index=chunk.index,
                    total_chunks=len(chunks),
                    embedding=embedding,
                    source_text=chunk.text,
                    timestamp=timestamp,
                    custom=custom,
                )
                for chunk, embedding in zip(chunks, embeddings)
            ]
            self.store.store_batch(namespace, vectors)
        except Exception as error:
            emit_exception(module=f"{__name__}.ingest_text", error=error, namespace=namespace)
            raise

        removed = self._remove_stale_chunks(namespace, entity_type, entity_id, len(chunks))
        duration = time.perf_counter() - started
        emit_ingest_event(
            "ingest.entity.complete",
            namespace=namespace,
            entity_type=entity_type,
            entity_id=entity_id,
            text_length=len(text),
            chunks=len(vectors),
            removed=len(removed),
            duration_ms=duration * 1000.0,
        )
        AUDIT_LOGGER.info(
            {
                "event": "ingest",
                "namespace": namespace,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "chunk_count": len(vectors),
            }
        )
        return IngestResult(
            namespace=namespace,
            entity_type=entity_type,
            entity_id=entity_id,
            vector_ids=[vector.id for vector in vectors],
            removed_ids=removed,
            duration_seconds=duration,
        )

    def _remove_stale_chunks(self, namespace: str, entity_type: str, entity_id: str, total_chunks: int) -> List[str]:
        try:
            existing = self.store.ids(namespace)
        except NamespaceNotFoundError:
            return []
        prefix = f"{entity_type}::{entity_id}::chunk_"
        stale = [
            vector_id
            for vector_id in existing
            if (index := _chunk_index_of(vector_id, prefix)) is not None and index >= total_chunks
        ]
        return self.store.delete_many(namespace, stale) if stale else []

    def ingest_entity(
        self,
        namespace: str,
        source: ContextSource,
        entity_type: str,
        entity_id: str,
        *,
        follow_relationships: bool = True,
        custom: Optional[Mapping[str, Any]] = None,
    ) -> IngestResult:
        """Ingest an entity's context, one relationship level deep.

        Related entities missing from *source* are skipped with a warning.
        """

        root = source.fetch_context(entity_type, entity_id)
        related: List[Tuple[Optional[EntityRelationship], str]] = []
        if follow_relationships:
            for relationship in root.relationships:
                try:
                    target = source.fetch_context(relationship.target_entity_type, relationship.target_id)
                except EntityNotFoundError:
                    LOGGER.warning(
                        "Skipping missing related entity %s::%s of %s::%s",
                        relationship.target_entity_type,
                        relationship.target_id,
                        entity_type,
                        entity_id,
                    )
                    continue
                related.append((relationship, target.text))

        text = self.context_builder.join_graph_context(root.text, related)
        return self.ingest_text(namespace, entity_type, entity_id, text, custom=custom)

    def ingest_many(self, namespace: str, requests: Iterable[IngestRequest]) -> BulkIngestResult:
        """Best-effort bulk ingestion: failed items are recorded and skipped."""

        outcome = BulkIngestResult()
        for request in requests:
            try:
                result = self.ingest_text(
                    namespace,
                    request.entity_type,
                    request.entity_id,
                    request.text,
                    custom=request.custom,
                )
            except ContragError as error:
                LOGGER.warning(
                    "Skipping %s::%s during bulk ingest: %s", request.entity_type, request.entity_id, error
                )
                outcome.failed.append(IngestFailure(request.entity_type, request.entity_id, error))
                continue
            outcome.succeeded.append(result)
        return outcome

    def embed_query(self, text: str) -> List[float]:
        embeddings = self.embedder.embed([text])
        if not embeddings:
            raise ProviderError("Embedding provider returned no vector for the query")
        return embeddings[0]

    def query(
        self,
        namespace: str,
        text: str,
        k: int = 5,
        *,
        cancel_event: Optional[CancelSignal] = None,
        deadline: Optional[float] = None,
    ) -> List[SearchResult]:
        started = time.perf_counter()
        query_embedding = self.embed_query(text)
        results = self.store.search(
            namespace,
            query_embedding,
            k,
            cancel_event=cancel_event,
            deadline=deadline,
        )
        emit_retriever_event(
            namespace=namespace,
            query=text,
            top_k=k,
            results=[{"id": result.vector_id, "score": round(result.score, 6)} for result in results],
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return results

    def namespace_stats(self, namespace: str) -> Dict[str, Any]:
        exists = namespace in self.store.list_namespaces()
        stats: Dict[str, Any] = {
            "namespace": namespace,
            "exists": exists,
            "count": self.store.count(namespace),
            "dimension": self.store.dimension(namespace) if exists else None,
        }
        if self.embedder.cache is not None:
            stats["cache"] = self.embedder.cache.stats()
        return stats


__all__ = [
    "BulkIngestResult",
    "IngestFailure",
    "IngestRequest",
    "IngestResult",
    "RetrievalPipeline",
]
