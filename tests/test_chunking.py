"""Tests for the overlapping text chunker."""
from __future__ import annotations

import pytest

from contrag.chunking import Chunk, ChunkingConfig, TextChunker, chunk_text
from contrag.errors import ConfigurationError


def _assert_well_formed(text: str, chunks: list[Chunk], chunk_size: int, overlap: int) -> None:
    assert chunks[0].start_offset == 0
    assert chunks[-1].end_offset == len(text)
    for position, chunk in enumerate(chunks):
        assert chunk.index == position
        assert chunk.text == text[chunk.start_offset:chunk.end_offset]
        assert 0 < len(chunk.text) <= chunk_size
    for previous, current in zip(chunks, chunks[1:]):
        assert previous.start_offset < current.start_offset
        assert current.start_offset <= previous.end_offset
        assert previous.end_offset - current.start_offset <= overlap


def test_empty_text_produces_no_chunks() -> None:
    assert chunk_text("", chunk_size=10, overlap=2) == []


def test_short_text_is_a_single_chunk() -> None:
    chunks = chunk_text("Hello world", chunk_size=100, overlap=10)
    assert chunks == [Chunk(text="Hello world", start_offset=0, end_offset=11, index=0)]


def test_text_without_boundaries_is_cut_at_fixed_positions() -> None:
    text = "a" * 150

    chunks = chunk_text(text, chunk_size=50, overlap=10)

    assert [(chunk.start_offset, chunk.end_offset) for chunk in chunks] == [
        (0, 50),
        (40, 90),
        (80, 130),
        (120, 150),
    ]


def test_chunk_end_snaps_back_to_whitespace() -> None:
    text = "x" * 45 + " " + "y" * 100

    chunks = chunk_text(text, chunk_size=50, overlap=10)

    assert chunks[0].text == "x" * 45 + " "
    assert chunks[1].start_offset == 36
    _assert_well_formed(text, chunks, 50, 10)


def test_chunks_cover_prose_with_bounded_overlap() -> None:
    text = (
        "Alice moved to Paris in 2019. She works as an engineer! "
        "Does she like it? Yes.\nHer manager is Bob, who joined later. "
    ) * 12

    chunks = chunk_text(text, chunk_size=80, overlap=15)

    _assert_well_formed(text, chunks, 80, 15)
    assert chunks == chunk_text(text, chunk_size=80, overlap=15)


def test_unicode_text_is_chunked_by_code_point() -> None:
    text = "żółć 🙂 " * 40

    chunks = chunk_text(text, chunk_size=30, overlap=5)

    _assert_well_formed(text, chunks, 30, 5)


def test_zero_lookback_never_moves_chunk_end() -> None:
    text = "word " * 20

    chunks = chunk_text(text, chunk_size=12, overlap=3, lookback=0)

    assert chunks[0].end_offset == 12
    _assert_well_formed(text, chunks, 12, 3)


@pytest.mark.parametrize(
    ("chunk_size", "overlap"),
    [(0, 1), (10, 0), (10, 10), (10, 25)],
)
def test_invalid_configuration_is_rejected(chunk_size: int, overlap: int) -> None:
    with pytest.raises(ConfigurationError):
        chunk_text("some text", chunk_size=chunk_size, overlap=overlap)
    with pytest.raises(ConfigurationError):
        TextChunker(ChunkingConfig(chunk_size=chunk_size, overlap=overlap))


def test_chunk_stats_summarise_configuration() -> None:
    chunker = TextChunker(ChunkingConfig(chunk_size=50, overlap=10))

    stats = chunker.chunk_stats("a" * 150)

    assert stats.total_text_length == 150
    assert stats.total_chunks == 4
    assert stats.avg_chunk_size == (50 + 50 + 50 + 30) // 4
    assert stats.chunk_size_config == 50
    assert stats.overlap_config == 10
