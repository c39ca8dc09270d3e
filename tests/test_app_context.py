"""Tests for application wiring and checkpoint lifecycle."""
from __future__ import annotations

import logging
from pathlib import Path

import pytest

from contrag.app_context import AppContext
from contrag.checkpoint import FileCheckpointer
from contrag.config import ContragConfig, load_config_from_json
from contrag.entity import EntityRelationship, RelationshipType


def _config(checkpoint: Path | None = None) -> ContragConfig:
    document = {
        "embedder": {"provider": "mock", "dimensions": 6},
        "chunking": {"chunk_size": 40, "overlap": 5},
        "vector_store": {"checkpoint_path": str(checkpoint) if checkpoint else None},
    }
    return ContragConfig.model_validate(document)


def test_from_config_wires_components() -> None:
    context = AppContext.from_config(_config())

    assert context.provider.dimensions() == 6
    assert context.chunker.config.chunk_size == 40
    assert context.cache is not None and context.cache.max_size == 1000
    assert context.checkpointer is None
    assert context.pipeline.store is context.store


def test_cache_can_be_disabled() -> None:
    config = load_config_from_json('{"vector_store": {"enable_cache": false}}')

    context = AppContext.from_config(config)

    assert context.cache is None
    assert context.pipeline.embedder.cache is None


def test_checkpoint_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "state" / "store.json"
    first = AppContext.from_config(_config(path))
    first.init()
    first.pipeline.ingest_text("tenant", "Doc", "1", "persist me across restarts please")

    assert first.checkpoint() is True
    assert path.exists()
    assert not path.with_suffix(".json.tmp").exists()

    second = AppContext.from_config(_config(path))
    second.init()

    assert second.store.ids("tenant") == first.store.ids("tenant")
    assert second.pipeline.query("tenant", "persist me", k=1)[0].vector_id.startswith("Doc::1::chunk_")


def test_restore_without_checkpoint(tmp_path: Path) -> None:
    context = AppContext.from_config(_config(tmp_path / "never-written.json"))

    assert context.restore() is False
    assert AppContext.from_config(_config()).checkpoint() is False


def test_corrupt_checkpoint_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    path.write_bytes(b"garbage")
    context = AppContext.from_config(_config(), checkpointer=FileCheckpointer(path))

    context.init()

    assert context.initialized is True
    assert context.store.list_namespaces() == []


def test_entity_links_follow_configured_schema() -> None:
    config = load_config_from_json(
        """
        {
          "embedder": {"provider": "mock", "dimensions": 6},
          "entities": [
            {"name": "User", "relationships": [
              {"field_name": "orders", "target_entity": "Order"},
              {"field_name": "manager", "target_entity": "User", "relationship_type": "many_to_one"}
            ]},
            {"name": "Order", "auto_include": false}
          ]
        }
        """
    )
    context = AppContext.from_config(config)

    links = context.entity_links("User", {"name": "Alice", "orders": ["o1", "o2"], "manager": 7})

    assert links == [
        EntityRelationship("orders", "Order", "o1", RelationshipType.ONE_TO_MANY),
        EntityRelationship("orders", "Order", "o2", RelationshipType.ONE_TO_MANY),
        EntityRelationship("manager", "User", "7", RelationshipType.MANY_TO_ONE),
    ]
    assert context.entity_links("User", {"name": "Bob"}) == []
    assert context.entity_links("Unconfigured", {"orders": ["o1"]}) == []
    assert context.follows_relationships("User") is True
    assert context.follows_relationships("Order") is False
    assert context.follows_relationships("Unconfigured") is True


def test_checkpoint_save_is_traced(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    context = AppContext.from_config(_config(tmp_path / "store.json"))
    context.pipeline.ingest_text("tenant", "Doc", "1", "traced checkpoint")

    with caplog.at_level(logging.INFO, logger="contrag.app_context"):
        context.checkpoint()

    events = [record.msg for record in caplog.records if record.name == "contrag.app_context"]
    assert [event["step"] for event in events] == ["checkpoint.save.complete"]
    assert events[0]["details"]["bytes"] == (tmp_path / "store.json").stat().st_size
