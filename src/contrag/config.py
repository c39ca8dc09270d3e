"""Configuration models and loaders.

Configuration comes from three layers, later ones winning:

1. model defaults,
2. a JSON document (``CONTRAG_CONFIG_PATH`` or an explicit path),
3. ``CONTRAG_*`` environment variables, after loading ``.env`` when present.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

from .errors import ConfigurationError

LOGGER = logging.getLogger(__name__)

CONFIG_PATH_ENV = "CONTRAG_CONFIG_PATH"

# env var -> (section, field, type)
_ENV_OVERRIDES: Dict[str, tuple[str, str, type]] = {
    "CONTRAG_CHUNK_SIZE": ("chunking", "chunk_size", int),
    "CONTRAG_CHUNK_OVERLAP": ("chunking", "overlap", int),
    "CONTRAG_EMBEDDER": ("embedder", "provider", str),
    "CONTRAG_EMBEDDING_MODEL": ("embedder", "model", str),
    "CONTRAG_EMBEDDING_DIMENSIONS": ("embedder", "dimensions", int),
    "CONTRAG_EMBEDDING_DEVICE": ("embedder", "device", str),
    "CONTRAG_CACHE_SIZE": ("vector_store", "cache_size", int),
    "CONTRAG_CHECKPOINT_PATH": ("vector_store", "checkpoint_path", str),
}


class ChunkingSettings(BaseModel):
    chunk_size: int = Field(1000, gt=0, description="Chunk size in characters.")
    overlap: int = Field(100, gt=0, description="Characters shared by consecutive chunks.")
    include_field_names: bool = True
    lookback: int = Field(50, ge=0, description="How far a chunk end may move back to a boundary.")

    @model_validator(mode="after")
    def _overlap_below_chunk_size(self) -> "ChunkingSettings":
        if self.overlap >= self.chunk_size:
            raise ValueError("overlap must be less than chunk_size")
        return self


class EmbedderSettings(BaseModel):
    provider: Literal["mock", "sentence-transformers"] = "mock"
    model: str = "sentence-transformers/all-MiniLM-L6-v2"
    dimensions: int = Field(384, gt=0)
    device: Optional[str] = None


class VectorStoreSettings(BaseModel):
    enable_cache: bool = True
    cache_size: int = Field(1000, gt=0)
    search_block_size: int = Field(4096, gt=0)
    checkpoint_path: Optional[str] = None


class RelationshipSettings(BaseModel):
    field_name: str = Field(..., min_length=1)
    target_entity: str = Field(..., min_length=1)
    relationship_type: Literal["one_to_one", "one_to_many", "many_to_one", "many_to_many"] = "one_to_many"


class EntitySettings(BaseModel):
    name: str = Field(..., min_length=1)
    relationships: List[RelationshipSettings] = Field(default_factory=list)
    auto_include: bool = True


class ContragConfig(BaseModel):
    entities: List[EntitySettings] = Field(default_factory=list)
    embedder: EmbedderSettings = Field(default_factory=EmbedderSettings)
    chunking: ChunkingSettings = Field(default_factory=ChunkingSettings)
    vector_store: VectorStoreSettings = Field(default_factory=VectorStoreSettings)

    @model_validator(mode="after")
    def _unique_entity_names(self) -> "ContragConfig":
        names = [entity.name for entity in self.entities]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate entity names: {', '.join(duplicates)}")
        return self

    def entity(self, name: str) -> Optional[EntitySettings]:
        for entity in self.entities:
            if entity.name == name:
                return entity
        return None


def _validate(payload: Dict[str, Any]) -> ContragConfig:
    try:
        return ContragConfig.model_validate(payload)
    except ValidationError as error:
        raise ConfigurationError(f"Invalid configuration: {error}", cause=error) from error


def load_config_from_json(json_str: str) -> ContragConfig:
    """Parse and validate a JSON configuration document."""

    try:
        payload = json.loads(json_str)
    except json.JSONDecodeError as error:
        raise ConfigurationError(f"Failed to parse config: {error}", cause=error) from error
    if not isinstance(payload, dict):
        raise ConfigurationError("Configuration document must be a JSON object")
    return _validate(payload)


def _coerce_env(name: str, value: str, target: type) -> Any:
    if target is int:
        try:
            return int(value)
        except ValueError:
            LOGGER.warning("Invalid integer for %s: %s; keeping configured value", name, value)
            return None
    return value


def _apply_env_overrides(payload: Dict[str, Any]) -> Dict[str, Any]:
    for name, (section, field, target) in _ENV_OVERRIDES.items():
        raw = os.getenv(name)
        if raw is None or not raw.strip():
            continue
        value = _coerce_env(name, raw.strip(), target)
        if value is None:
            continue
        payload.setdefault(section, {})[field] = value
    return payload


def load_config(path: str | Path | None = None, *, env_file: str | Path | None = None) -> ContragConfig:
    """Load configuration from ``.env``, an optional JSON file, and the environment."""

    if env_file is not None:
        load_dotenv(dotenv_path=env_file)
    else:
        load_dotenv()

    config_path = path or os.getenv(CONFIG_PATH_ENV)
    payload: Dict[str, Any] = {}
    if config_path:
        resolved = Path(config_path)
        try:
            raw = resolved.read_text(encoding="utf-8")
        except OSError as error:
            raise ConfigurationError(f"Cannot read config file {resolved}", cause=error) from error
        payload = load_config_from_json(raw).model_dump()
        LOGGER.info("Loaded configuration from %s", resolved)

    return _validate(_apply_env_overrides(payload))


def create_default_config() -> ContragConfig:
    return ContragConfig()


__all__ = [
    "ChunkingSettings",
    "ContragConfig",
    "EmbedderSettings",
    "EntitySettings",
    "RelationshipSettings",
    "VectorStoreSettings",
    "create_default_config",
    "load_config",
    "load_config_from_json",
]
