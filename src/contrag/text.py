"""Text helpers shared by context building, caching and logging."""
from __future__ import annotations

import re
import time
import unicodedata

_WHITESPACE_RUN_RE = re.compile(r"\s+")
_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


def sanitize_text(text: str) -> str:
    """Collapse every whitespace run to a single space and trim the ends."""

    return _WHITESPACE_RUN_RE.sub(" ", text).strip()


def normalize_cache_key(text: str) -> str:
    """Canonical Unicode form used as the embedding cache key."""

    return unicodedata.normalize("NFC", text)


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return f"{text[:max_length]}..."


def format_bytes(size_bytes: int) -> str:
    """Human readable size, e.g. ``1536 -> '1.50 KB'``."""

    size = float(size_bytes)
    unit_index = 0
    while size >= 1024.0 and unit_index < len(_BYTE_UNITS) - 1:
        size /= 1024.0
        unit_index += 1
    return f"{size:.2f} {_BYTE_UNITS[unit_index]}"


def current_timestamp_ns() -> int:
    return time.time_ns()


__all__ = [
    "current_timestamp_ns",
    "format_bytes",
    "normalize_cache_key",
    "sanitize_text",
    "truncate_text",
]
