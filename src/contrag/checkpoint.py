"""Persistence of vector store snapshots across restarts."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Protocol

from .errors import SnapshotError
from .text import format_bytes

LOGGER = logging.getLogger(__name__)


class Checkpointer(Protocol):
    """Durable home for one opaque snapshot."""

    def save(self, data: bytes) -> None:
        ...

    def load(self) -> Optional[bytes]:
        """Return the last saved snapshot, or ``None`` when nothing was saved."""


class FileCheckpointer:
    """Keep the snapshot in a single file, replaced atomically on save."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def save(self, data: bytes) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
            tmp_path.replace(self.path)
        except OSError as error:
            raise SnapshotError(f"Failed to write checkpoint {self.path}", cause=error) from error
        LOGGER.info("Wrote checkpoint %s (%s)", self.path, format_bytes(len(data)))

    def load(self) -> Optional[bytes]:
        if not self.path.exists():
            return None
        try:
            return self.path.read_bytes()
        except OSError as error:
            raise SnapshotError(f"Failed to read checkpoint {self.path}", cause=error) from error


__all__ = ["Checkpointer", "FileCheckpointer"]
