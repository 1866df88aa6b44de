"""Tests for the markdown and recursive-character chunkers."""
import random

import pytest

from askdocs.rag.chunker import (
    MarkdownChunker,
    RecursiveCharacterChunker,
    create_chunker,
    get_chunk_stats,
)

MARKDOWN_DOC = "\n".join(
    [
        "# Handbook",
        "",
        "Welcome to the team handbook. It explains how we work together.",
        "",
        "## Onboarding",
        "",
        " ".join(f"Onboarding step {i} covers account number {i * 7}." for i in range(12)),
        "",
        "### Laptops",
        "",
        "Laptops are ordered by the office manager during the first week.",
        "",
        "```",
        "make setup",
        "make test",
        "```",
        "",
        "# Deployments",
        "",
        " ".join(f"Release train {i} leaves at hour {i % 24} sharp." for i in range(15)),
        "",
        "## Rollbacks",
        "",
        "Rollbacks use the previous image tag and never skip the smoke tests.",
    ]
)

PLAIN_DOC = "\n\n".join(
    " ".join(f"Paragraph {p} sentence {s} mentions item {p * 10 + s}." for s in range(8))
    for p in range(6)
)


def random_text(length: int, seed: int = 42) -> str:
    rng = random.Random(seed)
    return "".join(rng.choice("abcdefghijklmnopqrstuvwxyz") for _ in range(length))


def reconstruct(chunks) -> str:
    text = chunks[0].content
    for prev, chunk in zip(chunks, chunks[1:]):
        text += chunk.content[prev.char_end - chunk.char_start:]
    return text


def assert_tiles(chunks, text, overlap):
    """Chunks are exact slices, start at 0, end at len(text) and overlap by at most ``overlap``."""
    assert chunks[0].char_start == 0
    assert chunks[-1].char_end == len(text)
    for chunk in chunks:
        assert text[chunk.char_start:chunk.char_end] == chunk.content
    for prev, chunk in zip(chunks, chunks[1:]):
        assert prev.char_start < chunk.char_start <= prev.char_end
        assert prev.char_end - chunk.char_start <= overlap
    assert reconstruct(chunks) == text


CHUNKER_CLASSES = [MarkdownChunker, RecursiveCharacterChunker]
SIZES = [(80, 0), (100, 20), (250, 50), (400, 120), (1500, 300)]
TEXTS = [MARKDOWN_DOC, PLAIN_DOC, random_text(1200)]


class TestChunkInvariants:
    @pytest.mark.parametrize("chunker_cls", CHUNKER_CLASSES)
    @pytest.mark.parametrize("size,overlap", SIZES)
    @pytest.mark.parametrize("text", TEXTS, ids=["markdown", "plain", "random"])
    def test_chunks_are_bounded(self, chunker_cls, size, overlap, text):
        """No chunk is longer than chunk_size."""
        chunks = chunker_cls(size, overlap).split_text(text)

        assert chunks
        assert all(0 < len(c) <= size for c in chunks)

    @pytest.mark.parametrize("chunker_cls", CHUNKER_CLASSES)
    @pytest.mark.parametrize("size,overlap", SIZES)
    @pytest.mark.parametrize("text", TEXTS, ids=["markdown", "plain", "random"])
    def test_chunks_tile_the_text(self, chunker_cls, size, overlap, text):
        """Dropping each overlap rebuilds the original text exactly."""
        assert_tiles(chunker_cls(size, overlap).chunk_text(text), text, overlap)

    @pytest.mark.parametrize("overlap", [0, 1, 2, 3, 4])
    def test_locates_chunks_in_repeated_separators(self, overlap):
        """A chunk that also occurs earlier in the overlap is placed where it tiles."""
        text = "```\n\n\n\n# # "
        assert_tiles(RecursiveCharacterChunker(5, overlap).chunk_text(text), text, overlap)

    @pytest.mark.parametrize("chunker_cls", CHUNKER_CLASSES)
    @pytest.mark.parametrize("size,overlap", [(26, 13), (20, 10), (40, 15), (30, 0)])
    def test_locates_chunks_in_repeated_list_items(self, chunker_cls, size, overlap):
        text = "ok\n" + "# Setup\n# Setup\n- run it\n- run it\n" * 12 + "Run it. " * 10
        assert_tiles(chunker_cls(size, overlap).chunk_text(text), text, overlap)

    @pytest.mark.parametrize("chunker_cls", CHUNKER_CLASSES)
    def test_splitting_is_deterministic(self, chunker_cls):
        """Same input and parameters give the same chunks."""
        first = chunker_cls(200, 40).split_text(MARKDOWN_DOC)
        second = chunker_cls(200, 40).split_text(MARKDOWN_DOC)
        assert first == second

    @pytest.mark.parametrize("chunker_cls", CHUNKER_CLASSES)
    def test_short_text_is_one_chunk(self, chunker_cls):
        assert chunker_cls(100, 10).split_text("# T\nbody") == ["# T\nbody"]

    @pytest.mark.parametrize("chunker_cls", CHUNKER_CLASSES)
    def test_empty_text(self, chunker_cls):
        assert chunker_cls(100, 10).split_text("") == []
        assert chunker_cls(100, 10).chunk_text("") == []

    @pytest.mark.parametrize("chunker_cls", CHUNKER_CLASSES)
    def test_rejects_non_text(self, chunker_cls):
        with pytest.raises(TypeError):
            chunker_cls(100, 10).split_text(None)


class TestParameters:
    @pytest.mark.parametrize("size,overlap", [(100, 100), (100, 150), (10, -1), (0, 0)])
    def test_invalid_overlap(self, size, overlap):
        """Size must be positive; overlap non-negative and smaller than the size."""
        with pytest.raises(ValueError):
            MarkdownChunker(size, overlap)

    def test_create_chunker(self):
        assert isinstance(create_chunker("markdown", 100, 10), MarkdownChunker)
        assert isinstance(create_chunker("text", 100, 10), RecursiveCharacterChunker)
        with pytest.raises(ValueError, match="unknown splitter"):
            create_chunker("html", 100, 10)

    def test_chunk_stats(self):
        stats = get_chunk_stats(["abc", "abcdef"])
        assert stats["chunk_count"] == 2
        assert stats["avg_chunk_size"] == 4
        assert stats["max_chunk_size"] == 6
        assert get_chunk_stats([])["chunk_count"] == 0


class TestMarkdownBoundaries:
    def test_cuts_at_headings_highest_level_first(self):
        """Sections become chunks, split at '# ' before '## '."""
        para = "word " * 12
        text = "# A\n" + para + "\n## B\n" + para + "\n# C\n" + para

        chunks = MarkdownChunker(100, 0).split_text(text)

        assert chunks == ["# A\n" + para, "\n## B\n" + para, "\n# C\n" + para]

    def test_whole_sections_are_kept_together_when_they_fit(self):
        text = "# A\nshort\n## B\nshort too\n# C\nlast"
        assert MarkdownChunker(200, 0).split_text(text) == [text]


class TestRecursiveCharacterBoundaries:
    def test_prefers_paragraph_breaks(self):
        """Paragraph separators stay at the end of the chunk they close."""
        paragraphs = [f"Paragraph {i} is about forty characters long." for i in range(3)]
        text = "\n\n".join(paragraphs)

        chunks = RecursiveCharacterChunker(50, 0).split_text(text)

        assert chunks == [paragraphs[0] + "\n\n", paragraphs[1] + "\n\n", paragraphs[2]]

    def test_overlap_repeats_trailing_sentences(self):
        """Consecutive chunks share whole sentences up to the overlap size."""
        text = ". ".join(f"Sentence number {i:02d} is here" for i in range(10))

        chunks = RecursiveCharacterChunker(100, 40).chunk_text(text)
        overlaps = [prev.char_end - chunk.char_start for prev, chunk in zip(chunks, chunks[1:])]

        assert len(chunks) > 1
        assert all(0 <= o <= 40 for o in overlaps)
        assert any(o > 0 for o in overlaps)
