"""Tests for the ingest and query pipeline."""
from __future__ import annotations

import math
from typing import List, Sequence

import pytest

from contrag.cache import CachedEmbedder, EmbeddingCache
from contrag.chunking import ChunkingConfig, TextChunker
from contrag.entity import EntityRegistry, EntityRelationship, MappingEntity
from contrag.errors import EntityNotFoundError, InvalidEntityTypeError, NamespaceNotFoundError, ProviderError
from contrag.pipeline import IngestRequest, RetrievalPipeline
from contrag.providers import EmbeddingProvider, MockEmbeddingProvider
from contrag.vectorstore import InMemoryVectorStore

LONG_TEXT = "a" * 150
TIMESTAMP = 1_700_000_000_000_000_000


class _FlakyProvider(EmbeddingProvider):
    name = "flaky"

    def __init__(self) -> None:
        self._delegate = MockEmbeddingProvider(dimension=8)

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if any("boom" in text for text in texts):
            raise RuntimeError("provider exploded")
        if any("garbled" in text for text in texts):
            return [[math.nan] + [1.0] * 7 for _ in texts]
        return self._delegate.embed(texts)

    def dimensions(self) -> int:
        return 8


def test_ingest_text_stores_every_chunk(pipeline: RetrievalPipeline, store: InMemoryVectorStore) -> None:
    result = pipeline.ingest_text("tenant", "Doc", "42", LONG_TEXT, custom={"lang": "en"})

    assert result.chunk_count == 4
    assert result.vector_ids == [f"Doc::42::chunk_{i}" for i in range(4)]
    assert store.ids("tenant") == result.vector_ids
    hits = pipeline.query("tenant", LONG_TEXT[:50], k=4)
    assert {hit.metadata.total_chunks for hit in hits} == {4}
    assert {hit.metadata.timestamp for hit in hits} == {TIMESTAMP}
    assert hits[0].metadata.custom == {"lang": "en"}


def test_query_returns_exact_match_first(pipeline: RetrievalPipeline) -> None:
    pipeline.ingest_text("tenant", "Note", "1", "Alice lives in Paris")
    pipeline.ingest_text("tenant", "Note", "2", "Bob works in Berlin")
    pipeline.ingest_text("tenant", "Note", "3", "Carol studies in Rome")

    results = pipeline.query("tenant", "Bob works in Berlin", k=2)

    assert results[0].vector_id == "Note::2::chunk_0"
    assert results[0].score == pytest.approx(1.0, abs=1e-6)
    assert len(results) == 2


def test_reingest_removes_stale_chunks(pipeline: RetrievalPipeline, store: InMemoryVectorStore) -> None:
    pipeline.ingest_text("tenant", "Doc", "42", LONG_TEXT)
    pipeline.ingest_text("tenant", "Doc", "420", "unrelated entity")

    result = pipeline.ingest_text("tenant", "Doc", "42", "now short")

    assert result.vector_ids == ["Doc::42::chunk_0"]
    assert result.removed_ids == [f"Doc::42::chunk_{i}" for i in (1, 2, 3)]
    assert store.ids("tenant") == ["Doc::42::chunk_0", "Doc::420::chunk_0"]


def test_ingesting_empty_text_removes_entity(pipeline: RetrievalPipeline, store: InMemoryVectorStore) -> None:
    assert pipeline.ingest_text("tenant", "Doc", "1", "").chunk_count == 0
    assert store.list_namespaces() == []

    pipeline.ingest_text("tenant", "Doc", "1", "some text")
    result = pipeline.ingest_text("tenant", "Doc", "1", "")

    assert result.removed_ids == ["Doc::1::chunk_0"]
    assert store.count("tenant") == 0


def test_repeated_text_is_served_from_cache(
    pipeline: RetrievalPipeline, provider: MockEmbeddingProvider
) -> None:
    pipeline.ingest_text("one", "Doc", "1", "shared text")
    pipeline.ingest_text("two", "Doc", "1", "shared text")
    pipeline.query("two", "shared text")

    assert provider.calls == [["shared text"]]
    assert pipeline.namespace_stats("two")["cache"]["hits"] == 2


def test_ingest_many_collects_failures(store: InMemoryVectorStore) -> None:
    pipeline = RetrievalPipeline(
        store=store,
        embedder=CachedEmbedder(_FlakyProvider(), EmbeddingCache()),
        chunker=TextChunker(ChunkingConfig(chunk_size=50, overlap=10)),
    )

    outcome = pipeline.ingest_many(
        "bulk",
        [
            IngestRequest("Doc", "1", "first document"),
            IngestRequest("Doc", "2", "this one goes boom"),
            IngestRequest("Doc", "3", "third document"),
        ],
    )

    assert [result.entity_id for result in outcome.succeeded] == ["1", "3"]
    assert [(failure.entity_id, type(failure.error)) for failure in outcome.failed] == [("2", ProviderError)]
    assert outcome.chunk_count == 2
    assert store.ids("bulk") == ["Doc::1::chunk_0", "Doc::3::chunk_0"]


def test_non_finite_embeddings_are_recorded_as_failures(store: InMemoryVectorStore) -> None:
    pipeline = RetrievalPipeline(store=store, embedder=CachedEmbedder(_FlakyProvider(), EmbeddingCache()))

    outcome = pipeline.ingest_many(
        "bulk",
        [IngestRequest("Doc", "1", "garbled output"), IngestRequest("Doc", "2", "clean output")],
    )

    assert [failure.entity_id for failure in outcome.failed] == ["1"]
    assert isinstance(outcome.failed[0].error, ProviderError)
    assert store.ids("bulk") == ["Doc::2::chunk_0"]
    assert pipeline.embedder.cache is not None and pipeline.embedder.cache.get("garbled output") is None


def test_stored_metadata_is_isolated_from_caller(pipeline: RetrievalPipeline) -> None:
    custom = {"tag": "first", "labels": ["a"]}
    pipeline.ingest_text("tenant", "Doc", "1", "owned metadata", custom=custom)

    custom["tag"] = "changed"
    custom["labels"].append("b")

    stored = pipeline.query("tenant", "owned metadata", k=1)[0].metadata.custom
    assert stored == {"tag": "first", "labels": ["a"]}
    with pytest.raises(TypeError):
        stored["tag"] = "rewritten"  # type: ignore[index]


def test_ingest_entity_follows_relationships(provider: MockEmbeddingProvider, store: InMemoryVectorStore) -> None:
    pipeline = RetrievalPipeline(store=store, embedder=CachedEmbedder(provider))
    registry = EntityRegistry()
    registry.register(
        MappingEntity(
            "User",
            "1",
            {"name": "Alice"},
            [
                EntityRelationship("orders", "Order", "o-1"),
                EntityRelationship("orders", "Order", "missing"),
            ],
        )
    )
    registry.register(MappingEntity("Order", "o-1", {"total": 12}))

    result = pipeline.ingest_entity("graph", registry, "User", "1")

    assert result.vector_ids == ["User::1::chunk_0"]
    stored = pipeline.query("graph", "Alice", k=5)
    assert stored[0].source_text == (
        "Entity: User\nID: 1\n---\nname: Alice\n"
        "\n=== Relationship: orders ===\nEntity: Order\nID: o-1\n---\ntotal: 12\n"
    )

    plain = pipeline.ingest_entity("plain", registry, "User", "1", follow_relationships=False)
    assert plain.chunk_count == 1

    with pytest.raises(EntityNotFoundError):
        pipeline.ingest_entity("graph", registry, "User", "404")


def test_namespace_stats(pipeline: RetrievalPipeline) -> None:
    pipeline.ingest_text("tenant", "Doc", "1", "hello")

    stats = pipeline.namespace_stats("tenant")

    assert stats["exists"] is True
    assert stats["count"] == 1
    assert stats["dimension"] == 8
    assert pipeline.namespace_stats("unknown")["exists"] is False


def test_query_unknown_namespace(pipeline: RetrievalPipeline) -> None:
    with pytest.raises(NamespaceNotFoundError):
        pipeline.query("missing", "anything")


def test_entity_types_with_separator_are_rejected(pipeline: RetrievalPipeline, store: InMemoryVectorStore) -> None:
    with pytest.raises(InvalidEntityTypeError):
        pipeline.ingest_text("tenant", "Doc::v2", "1", "ambiguous")

    outcome = pipeline.ingest_many("tenant", [IngestRequest("A::b", "c", "x"), IngestRequest("A", "b::c", "x")])

    assert [failure.entity_type for failure in outcome.failed] == ["A::b"]
    assert store.ids("tenant") == ["A::b::c::chunk_0"]
