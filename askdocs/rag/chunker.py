"""Text chunking with overlap for RAG pipeline.

Character-based splitting on top of langchain's recursive splitter. Both
policies keep every separator and never strip whitespace, so each chunk is
an exact slice of the input and consecutive chunks only share their
overlap.
"""
from dataclasses import dataclass
from typing import Dict, List, Protocol, Sequence

import structlog
from langchain_text_splitters import Language, RecursiveCharacterTextSplitter

from askdocs import config

logger = structlog.get_logger()

# One heading level at a time so that "# " sections are cut before "## " ones
MARKDOWN_HEADING_SEPARATORS = [rf"\n#{{{level}}} " for level in range(1, 7)]

TEXT_SEPARATORS = ["\n\n", "\n", ". ", " ", ""]


def markdown_separators() -> List[str]:
    """Heading levels first, then langchain's other markdown boundaries."""
    library = RecursiveCharacterTextSplitter.get_separators_for_language(
        Language.MARKDOWN
    )
    return MARKDOWN_HEADING_SEPARATORS + [s for s in library if not s.startswith("\n#")]


@dataclass
class TextChunk:
    """Represents a chunk of text with position information."""

    content: str
    char_start: int
    char_end: int
    chunk_index: int


class Splitter(Protocol):
    chunk_size: int
    chunk_overlap: int

    def split_text(self, text: str) -> List[str]:
        ...


def get_chunk_stats(chunks: Sequence[str]) -> dict:
    """Get statistics about a set of chunk texts.

    Args:
        chunks: Chunk contents

    Returns:
        Dictionary with chunk statistics
    """
    if not chunks:
        return {
            "chunk_count": 0,
            "total_chars": 0,
            "avg_chunk_size": 0,
            "min_chunk_size": 0,
            "max_chunk_size": 0,
        }

    chunk_sizes = [len(c) for c in chunks]

    return {
        "chunk_count": len(chunks),
        "total_chars": sum(chunk_sizes),
        "avg_chunk_size": sum(chunk_sizes) // len(chunks),
        "min_chunk_size": min(chunk_sizes),
        "max_chunk_size": max(chunk_sizes),
    }


class _RecursiveChunker:
    def __init__(
        self,
        separators: Sequence[str],
        is_separator_regex: bool,
        keep_separator: str,
        chunk_size: int = None,
        chunk_overlap: int = None,
    ):
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

        if self.chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")
        if self.chunk_overlap < 0:
            raise ValueError(f"Overlap must not be negative, got {self.chunk_overlap}")
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"Overlap ({self.chunk_overlap}) must be less than "
                f"chunk size ({self.chunk_size})"
            )

        self._splitter = RecursiveCharacterTextSplitter(
            separators=list(separators),
            is_separator_regex=is_separator_regex,
            keep_separator=keep_separator,
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            length_function=len,
            strip_whitespace=False,
        )

    def split_text(self, text: str) -> List[str]:
        """Split text into overlapping chunks of at most chunk_size characters.

        Raises:
            TypeError: If text is not a string
        """
        if not isinstance(text, str):
            raise TypeError(f"expected text, got {type(text).__name__}")
        if not text:
            return []
        return self._splitter.split_text(text)

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text and locate every chunk in the original string.

        Repetitive text can hold a chunk at several offsets inside the
        previous chunk's overlap, so every admissible start is carried
        forward and the spans are read back from a path ending at the end
        of the text.

        Returns:
            List of TextChunk objects with char_start/char_end offsets

        Raises:
            ValueError: If the chunks do not tile the text
        """
        contents = self.split_text(text)
        if not contents:
            return []

        # layers[i] maps each possible start of chunk i to a start of chunk i - 1
        layers: List[Dict[int, int]] = [{0: -1} if text.startswith(contents[0]) else {}]

        for index in range(1, len(contents)):
            previous, content = contents[index - 1], contents[index]
            layer: Dict[int, int] = {}
            for prev_start in layers[-1]:
                prev_end = prev_start + len(previous)
                lowest = max(prev_start + 1, prev_end - self.chunk_overlap)
                for start in range(lowest, prev_end + 1):
                    if (
                        start not in layer
                        and start + len(content) >= prev_end
                        and text.startswith(content, start)
                    ):
                        layer[start] = prev_start
            if not layer:
                raise ValueError(f"chunk {index} is not a slice of the input text")
            layers.append(layer)

        last_starts = [s for s in layers[-1] if s + len(contents[-1]) == len(text)]
        if not last_starts:
            raise ValueError("chunks do not reach the end of the input text")

        starts = [min(last_starts)]
        for layer in reversed(layers[1:]):
            starts.append(layer[starts[-1]])
        starts.reverse()

        chunks = [
            TextChunk(
                content=content,
                char_start=start,
                char_end=start + len(content),
                chunk_index=index,
            )
            for index, (content, start) in enumerate(zip(contents, starts))
        ]

        logger.debug("text_chunked", text_length=len(text), chunk_count=len(chunks))

        return chunks


class MarkdownChunker(_RecursiveChunker):
    """Markdown-aware chunker preferring heading boundaries, highest level first."""

    def __init__(self, chunk_size: int = None, chunk_overlap: int = None):
        super().__init__(
            markdown_separators(),
            is_separator_regex=True,
            keep_separator="start",
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
        )


class RecursiveCharacterChunker(_RecursiveChunker):
    """Generic chunker for text without structural hints."""

    def __init__(self, chunk_size: int = None, chunk_overlap: int = None):
        super().__init__(
            TEXT_SEPARATORS,
            is_separator_regex=False,
            keep_separator="end",
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
        )


CHUNKERS = {
    "markdown": MarkdownChunker,
    "text": RecursiveCharacterChunker,
}


def create_chunker(kind: str, chunk_size: int = None, chunk_overlap: int = None) -> Splitter:
    """Create the chunker registered under ``kind``."""
    try:
        chunker_cls = CHUNKERS[kind]
    except KeyError:
        raise ValueError(
            f"unknown splitter [{kind}], expected one of {sorted(CHUNKERS)}"
        ) from None
    return chunker_cls(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
