"""Context extraction: turning structured records into embeddable text.

Each record type supplies its own flat ``(field, value)`` mapping through the
:class:`ContextEntity` protocol. :func:`flatten_to_context` offers generic
flattening of nested mappings for records that do not need a hand-written
mapping.
"""
from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable

from .chunking import Chunk, TextChunker
from .errors import EntityNotFoundError
from .text import sanitize_text, truncate_text

ENTITY_SEPARATOR = "\n\n=== Next Entity ===\n\n"


class RelationshipType(str, Enum):
    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"
    MANY_TO_MANY = "many_to_many"


@dataclass(frozen=True, slots=True)
class EntityRelationship:
    """Reference from one entity to another, used to follow the entity graph."""

    field_name: str
    target_entity_type: str
    target_id: str
    relationship_type: RelationshipType = RelationshipType.ONE_TO_MANY


@runtime_checkable
class ContextEntity(Protocol):
    """Record that can describe itself as context text."""

    @property
    def entity_type(self) -> str:
        ...

    @property
    def entity_id(self) -> str:
        ...

    def to_context_map(self) -> List[Tuple[str, str]]:
        """Flat ``(field, value)`` pairs; nested fields use dotted names."""

    def relationships(self) -> List[EntityRelationship]:
        ...


@dataclass(frozen=True, slots=True)
class EntityContext:
    """Formatted text of one entity plus hints for related entities."""

    entity_type: str
    entity_id: str
    text: str
    relationships: Tuple[EntityRelationship, ...] = ()


class ContextSource(Protocol):
    """Supplies formatted entity text on demand."""

    def fetch_context(self, entity_type: str, entity_id: str) -> EntityContext:
        ...


def _scalar_to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        # One field per line; embedded newlines would split a value.
        return sanitize_text(value)
    return json.dumps(value, ensure_ascii=False, default=str)


def flatten_to_context(value: Any, prefix: str = "") -> List[Tuple[str, str]]:
    """Flatten nested mappings into dotted ``(key, value)`` pairs.

    >>> flatten_to_context({"user": {"name": "Alice", "tags": ["a", "b"]}})
    [('user.name', 'Alice'), ('user.tags', 'a, b')]
    """

    if isinstance(value, Mapping):
        pairs: List[Tuple[str, str]] = []
        for key, nested in value.items():
            nested_prefix = f"{prefix}.{key}" if prefix else str(key)
            pairs.extend(flatten_to_context(nested, nested_prefix))
        return pairs
    if isinstance(value, (list, tuple)):
        return [(prefix, ", ".join(_scalar_to_text(item) for item in value))]
    return [(prefix, _scalar_to_text(value))]


@dataclass(slots=True)
class MappingEntity:
    """Generic :class:`ContextEntity` over a plain mapping of fields."""

    entity_type: str
    entity_id: str
    fields: Mapping[str, Any] = field(default_factory=dict)
    links: List[EntityRelationship] = field(default_factory=list)

    def to_context_map(self) -> List[Tuple[str, str]]:
        return flatten_to_context(self.fields)

    def relationships(self) -> List[EntityRelationship]:
        return list(self.links)


def to_summary(text: str, max_length: int) -> str:
    return truncate_text(text, max_length)


class ContextBuilder:
    """Render entities, and entity graphs, as context text."""

    def __init__(self, *, include_field_names: bool = True, chunker: TextChunker | None = None) -> None:
        self.include_field_names = include_field_names
        self.chunker = chunker or TextChunker()

    def build_entity_context(self, entity: ContextEntity) -> str:
        lines = [
            f"Entity: {entity.entity_type}",
            f"ID: {entity.entity_id}",
            "---",
        ]
        for key, value in entity.to_context_map():
            lines.append(f"{key}: {value}" if self.include_field_names else value)
        return "\n".join(lines)

    def build_graph_context(self, root: ContextEntity, related_contexts: Sequence[str]) -> str:
        """Root context followed by related contexts.

        The i-th related context is annotated with the i-th relationship of the
        root entity when there is one.
        """

        relationships = root.relationships()
        annotated = [
            (relationships[index] if index < len(relationships) else None, related)
            for index, related in enumerate(related_contexts)
        ]
        return self.join_graph_context(self.build_entity_context(root), annotated)

    @staticmethod
    def join_graph_context(
        root_text: str,
        related: Sequence[Tuple[Optional[EntityRelationship], str]],
    ) -> str:
        parts = [root_text]
        for relationship, text in related:
            if relationship is not None:
                parts.append(f"\n=== Relationship: {relationship.field_name} ===\n{text}\n")
            else:
                parts.append(f"\n{text}\n")
        return "\n".join(parts)

    def build_multi_entity_context(self, entities: Sequence[ContextEntity]) -> str:
        return ENTITY_SEPARATOR.join(self.build_entity_context(entity) for entity in entities)

    def build_and_chunk(self, entity: ContextEntity) -> List[Chunk]:
        return self.chunker.chunk(self.build_entity_context(entity))


class EntityRegistry:
    """Thread-safe in-memory :class:`ContextSource` keyed by type and id."""

    def __init__(self, builder: ContextBuilder | None = None) -> None:
        self.builder = builder or ContextBuilder()
        self._entities: Dict[Tuple[str, str], ContextEntity] = {}
        self._lock = threading.Lock()

    def register(self, entity: ContextEntity) -> None:
        with self._lock:
            self._entities[(entity.entity_type, entity.entity_id)] = entity

    def unregister(self, entity_type: str, entity_id: str) -> bool:
        with self._lock:
            return self._entities.pop((entity_type, entity_id), None) is not None

    def get(self, entity_type: str, entity_id: str) -> Optional[ContextEntity]:
        with self._lock:
            return self._entities.get((entity_type, entity_id))

    def entities(self, entity_type: str | None = None) -> List[ContextEntity]:
        with self._lock:
            entities = list(self._entities.values())
        if entity_type is None:
            return entities
        return [entity for entity in entities if entity.entity_type == entity_type]

    def fetch_context(self, entity_type: str, entity_id: str) -> EntityContext:
        entity = self.get(entity_type, entity_id)
        if entity is None:
            raise EntityNotFoundError(entity_type, entity_id)
        return EntityContext(
            entity_type=entity_type,
            entity_id=entity_id,
            text=self.builder.build_entity_context(entity),
            relationships=tuple(entity.relationships()),
        )


__all__ = [
    "ContextBuilder",
    "ContextEntity",
    "ContextSource",
    "EntityContext",
    "EntityRegistry",
    "EntityRelationship",
    "MappingEntity",
    "RelationshipType",
    "flatten_to_context",
    "to_summary",
]
