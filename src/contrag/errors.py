"""Exception hierarchy shared by the chunker, cache, vector store and pipeline."""
from __future__ import annotations


class ContragError(RuntimeError):
    """Base class for every error raised by contrag."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class ConfigurationError(ContragError):
    """Raised when chunking, cache or service settings are inconsistent."""


class InvalidEntityTypeError(ContragError):
    """Raised when an entity type cannot be encoded into a vector id."""

    def __init__(self, entity_type: str) -> None:
        super().__init__(f"Invalid entity type {entity_type!r}: must be non-empty and must not contain '::'")
        self.entity_type = entity_type


class DimensionMismatchError(ContragError):
    """Raised when an embedding length differs from the namespace dimension."""

    def __init__(self, expected: int, actual: int, *, namespace: str | None = None) -> None:
        location = f" in namespace {namespace!r}" if namespace is not None else ""
        super().__init__(f"Invalid dimension{location}: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual
        self.namespace = namespace


class NamespaceNotFoundError(ContragError):
    """Raised when reading from a namespace that was never created."""

    def __init__(self, namespace: str) -> None:
        super().__init__(f"Namespace not found: {namespace}")
        self.namespace = namespace


class ProviderError(ContragError):
    """Wraps a failure raised by an embedding provider."""


class CancellationRequestedError(ContragError):
    """Raised when a search is cancelled or runs past its deadline."""


class SnapshotError(ContragError):
    """Raised when a vector store snapshot cannot be exported or imported."""


class EntityNotFoundError(ContragError):
    """Raised when a context source has no entity for the requested id."""

    def __init__(self, entity_type: str, entity_id: str) -> None:
        super().__init__(f"Entity not found: {entity_type}::{entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


__all__ = [
    "CancellationRequestedError",
    "ConfigurationError",
    "ContragError",
    "DimensionMismatchError",
    "EntityNotFoundError",
    "InvalidEntityTypeError",
    "NamespaceNotFoundError",
    "ProviderError",
    "SnapshotError",
]
