"""Chunking utilities for breaking context text into embedding-friendly units."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from .errors import ConfigurationError

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_OVERLAP = 100
DEFAULT_LOOKBACK = 50

_BOUNDARY_PUNCTUATION = frozenset(".!?\n")


@dataclass(frozen=True, slots=True)
class Chunk:
    """Slice ``[start_offset, end_offset)`` of the source text."""

    text: str
    start_offset: int
    end_offset: int
    index: int


@dataclass(slots=True)
class ChunkingConfig:
    chunk_size: int = DEFAULT_CHUNK_SIZE
    overlap: int = DEFAULT_OVERLAP
    lookback: int = DEFAULT_LOOKBACK

    def validate(self) -> None:
        if self.chunk_size <= 0:
            raise ConfigurationError("chunk_size must be a positive integer")
        if self.overlap <= 0:
            raise ConfigurationError("overlap must be a positive integer")
        if self.overlap >= self.chunk_size:
            raise ConfigurationError(
                f"overlap ({self.overlap}) must be less than chunk_size ({self.chunk_size})"
            )
        if self.lookback < 0:
            raise ConfigurationError("lookback must be a non-negative integer")


@dataclass(frozen=True, slots=True)
class ChunkStats:
    total_text_length: int
    total_chunks: int
    avg_chunk_size: int
    chunk_size_config: int
    overlap_config: int


def _is_boundary(char: str) -> bool:
    return char.isspace() or char in _BOUNDARY_PUNCTUATION


def _snap_to_boundary(text: str, start: int, candidate_end: int, overlap: int, lookback: int) -> int:
    # Never snap to a position that would stop ``start`` from advancing.
    floor = max(candidate_end - lookback, start + overlap)
    for position in range(candidate_end - 1, floor - 1, -1):
        if _is_boundary(text[position]):
            return position + 1
    return candidate_end


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
    *,
    lookback: int = DEFAULT_LOOKBACK,
) -> List[Chunk]:
    """Split *text* into overlapping chunks.

    Chunk ends are pulled back, by at most ``lookback`` characters, to just after
    the nearest whitespace or sentence punctuation so that words stay intact.
    Offsets count code points, so multi-byte characters are never split.
    Consecutive chunks share at most ``overlap`` characters and together cover
    the whole input.
    """

    ChunkingConfig(chunk_size=chunk_size, overlap=overlap, lookback=lookback).validate()
    if not text:
        return []

    text_length = len(text)
    if text_length <= chunk_size:
        return [Chunk(text=text, start_offset=0, end_offset=text_length, index=0)]

    chunks: List[Chunk] = []
    start = 0
    while True:
        candidate_end = min(start + chunk_size, text_length)
        if candidate_end < text_length:
            actual_end = _snap_to_boundary(text, start, candidate_end, overlap, lookback)
        else:
            actual_end = candidate_end

        chunks.append(
            Chunk(
                text=text[start:actual_end],
                start_offset=start,
                end_offset=actual_end,
                index=len(chunks),
            )
        )
        if actual_end >= text_length:
            break
        start = max(0, actual_end - overlap)

    LOGGER.debug("Split %s characters into %s chunks", text_length, len(chunks))
    return chunks


class TextChunker:
    """Configured front-end for :func:`chunk_text`."""

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()
        self.config.validate()

    def chunk(self, text: str) -> List[Chunk]:
        return chunk_text(
            text,
            self.config.chunk_size,
            self.config.overlap,
            lookback=self.config.lookback,
        )

    def chunk_stats(self, text: str) -> ChunkStats:
        chunks = self.chunk(text)
        total_chunks = len(chunks)
        avg_chunk_size = sum(len(chunk.text) for chunk in chunks) // total_chunks if total_chunks else 0
        return ChunkStats(
            total_text_length=len(text),
            total_chunks=total_chunks,
            avg_chunk_size=avg_chunk_size,
            chunk_size_config=self.config.chunk_size,
            overlap_config=self.config.overlap,
        )


__all__ = [
    "Chunk",
    "ChunkStats",
    "ChunkingConfig",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_LOOKBACK",
    "DEFAULT_OVERLAP",
    "TextChunker",
    "chunk_text",
]
