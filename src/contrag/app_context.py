"""Process-level wiring of configuration, providers, cache, store and pipeline."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from .cache import CachedEmbedder, EmbeddingCache
from .checkpoint import Checkpointer, FileCheckpointer
from .chunking import ChunkingConfig, TextChunker
from .config import ContragConfig, load_config
from .entity import ContextBuilder, EntityRegistry, EntityRelationship, RelationshipType
from .errors import SnapshotError
from .pipeline import RetrievalPipeline
from .providers import EmbeddingProvider, get_embedding_provider
from .telemetry import traced_step
from .vectorstore import VectorStore, create_vector_store

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    """Everything a running service shares between requests.

    Built once with :meth:`from_config` and passed explicitly; there is no
    module-level singleton.
    """

    config: ContragConfig
    provider: EmbeddingProvider
    store: VectorStore
    chunker: TextChunker
    builder: ContextBuilder
    registry: EntityRegistry
    pipeline: RetrievalPipeline
    cache: Optional[EmbeddingCache] = None
    checkpointer: Optional[Checkpointer] = None
    initialized: bool = field(default=False, init=False)

    @classmethod
    def from_config(
        cls,
        config: ContragConfig | None = None,
        *,
        provider: EmbeddingProvider | None = None,
        checkpointer: Checkpointer | None = None,
    ) -> "AppContext":
        config = config or load_config()
        provider = provider or get_embedding_provider(config.embedder)
        cache = EmbeddingCache(config.vector_store.cache_size) if config.vector_store.enable_cache else None
        chunker = TextChunker(
            ChunkingConfig(
                chunk_size=config.chunking.chunk_size,
                overlap=config.chunking.overlap,
                lookback=config.chunking.lookback,
            )
        )
        builder = ContextBuilder(include_field_names=config.chunking.include_field_names, chunker=chunker)
        store = create_vector_store(config.vector_store)
        if checkpointer is None and config.vector_store.checkpoint_path:
            checkpointer = FileCheckpointer(config.vector_store.checkpoint_path)
        pipeline = RetrievalPipeline(
            store=store,
            embedder=CachedEmbedder(provider, cache),
            chunker=chunker,
            context_builder=builder,
        )
        return cls(
            config=config,
            provider=provider,
            store=store,
            chunker=chunker,
            builder=builder,
            registry=EntityRegistry(builder),
            pipeline=pipeline,
            cache=cache,
            checkpointer=checkpointer,
        )

    def init(self) -> None:
        """Restore the last checkpoint, once."""

        if self.initialized:
            return
        restored = self.restore()
        self.initialized = True
        LOGGER.info(
            "Context initialised (provider=%s, restored=%s, namespaces=%s)",
            self.provider.name,
            restored,
            len(self.store.list_namespaces()),
        )

    def restore(self) -> bool:
        """Load the checkpoint into the store; ``False`` when there is none.

        A corrupt checkpoint is logged and ignored so the service still starts
        with an empty store.
        """

        if self.checkpointer is None:
            return False
        try:
            with traced_step("checkpoint.restore", logger=LOGGER) as details:
                data = self.checkpointer.load()
                details["bytes"] = len(data) if data is not None else 0
                if data is None:
                    return False
                self.store.import_snapshot(data)
                details["namespaces"] = len(self.store.list_namespaces())
        except SnapshotError as error:
            LOGGER.warning("Ignoring unreadable checkpoint: %s", error)
            return False
        return True

    def checkpoint(self) -> bool:
        if self.checkpointer is None:
            return False
        with traced_step("checkpoint.save", logger=LOGGER) as details:
            data = self.store.export_snapshot()
            details["bytes"] = len(data)
            self.checkpointer.save(data)
        return True

    def entity_links(self, entity_type: str, fields: Mapping[str, Any]) -> List[EntityRelationship]:
        """Relationships implied by the configured schema for *entity_type*.

        Each configured relationship whose field is present yields one link per
        target id; a list value links to every id in it.
        """

        settings = self.config.entity(entity_type)
        if settings is None:
            return []
        links: List[EntityRelationship] = []
        for relationship in settings.relationships:
            value = fields.get(relationship.field_name)
            if value is None:
                continue
            targets = value if isinstance(value, (list, tuple)) else [value]
            links.extend(
                EntityRelationship(
                    field_name=relationship.field_name,
                    target_entity_type=relationship.target_entity,
                    target_id=str(target),
                    relationship_type=RelationshipType(relationship.relationship_type),
                )
                for target in targets
            )
        return links

    def follows_relationships(self, entity_type: str) -> bool:
        settings = self.config.entity(entity_type)
        return settings.auto_include if settings is not None else True


__all__ = ["AppContext"]
