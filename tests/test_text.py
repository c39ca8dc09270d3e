"""Tests for shared text helpers."""
from __future__ import annotations

from contrag.text import current_timestamp_ns, format_bytes, normalize_cache_key, sanitize_text, truncate_text


def test_sanitize_collapses_whitespace() -> None:
    assert sanitize_text("  hello \n\t world  ") == "hello world"


def test_truncate_appends_ellipsis() -> None:
    assert truncate_text("abcdef", 10) == "abcdef"
    assert truncate_text("abcdef", 3) == "abc..."


def test_format_bytes() -> None:
    assert format_bytes(512) == "512.00 B"
    assert format_bytes(1536) == "1.50 KB"
    assert format_bytes(5 * 1024 * 1024) == "5.00 MB"


def test_cache_key_uses_composed_form() -> None:
    assert normalize_cache_key("cafe\u0301") == "caf\u00e9"


def test_timestamp_is_nanoseconds() -> None:
    assert current_timestamp_ns() > 1_600_000_000 * 10**9
