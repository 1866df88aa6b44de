"""Pytest fixtures and in-memory fakes for the external collaborators."""
import asyncio
import string
import sys
import uuid
from typing import Dict, List, Optional, Sequence

import pytest
import structlog

from askdocs.errors import CollectionNotFoundError, ProviderError
from askdocs.rag.documents import Document, StoredMatch


class FakeEmbedder:
    """Deterministic letter-frequency embeddings."""

    model = "fake-embed"

    def __init__(self):
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        lowered = text.lower()
        return [float(lowered.count(letter)) for letter in string.ascii_lowercase] + [1.0]


class FakeCollection:
    """Records writes and serves canned query matches."""

    def __init__(
        self,
        name: str,
        matches: Optional[List[StoredMatch]] = None,
        fail_on_batch: Optional[int] = None,
        short_batch: Optional[int] = None,
        query_error: Optional[Exception] = None,
    ):
        self.name = name
        self.matches = matches or []
        self.fail_on_batch = fail_on_batch
        self.short_batch = short_batch
        self.query_error = query_error
        self.batches: List[List[Document]] = []
        self.queries: List[tuple] = []

    async def add_batch(self, chunks: Sequence[Document]) -> List[str]:
        self.batches.append(list(chunks))
        batch_number = len(self.batches)
        if batch_number == self.fail_on_batch:
            raise ProviderError("store", "connection reset")
        ids = [uuid.uuid4().hex for _ in chunks]
        if batch_number == self.short_batch:
            ids = ids[:-1]
        return ids

    async def query(self, text: str, top_k: int) -> List[StoredMatch]:
        self.queries.append((text, top_k))
        if self.query_error is not None:
            raise self.query_error
        return self.matches[:top_k]


class FakeStore:
    url = "memory://"

    def __init__(self, collection: Optional[FakeCollection] = None):
        self.collection = collection
        self.opened: List[tuple] = []

    async def open_collection(self, name, embedder, create=False):
        self.opened.append((name, create))
        if self.collection is None:
            if not create:
                raise CollectionNotFoundError(name, self.url)
            self.collection = FakeCollection(name)
        return self.collection


class FakeChatModel:
    """Answers grading calls from a table and streams canned fragments."""

    model = "fake-llm"

    def __init__(
        self,
        replies: Optional[Dict[str, str]] = None,
        default_reply: str = '{"score": "yes"}',
        fragments: Sequence[str] = ("The ", "answer ", "is ", "42."),
        delays: Optional[Dict[str, float]] = None,
        stream_error_after: Optional[int] = None,
    ):
        self.replies = replies or {}
        self.default_reply = default_reply
        self.fragments = list(fragments)
        self.delays = delays or {}
        self.stream_error_after = stream_error_after
        self.generate_calls: List[tuple] = []
        self.stream_calls: List[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def _lookup(self, table, user_prompt, default):
        for key, value in table.items():
            if key in user_prompt:
                return value
        return default

    async def generate(self, system_prompt, user_prompt, json_output=False):
        self.generate_calls.append((system_prompt, user_prompt, json_output))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self._lookup(self.delays, user_prompt, 0))
            return self._lookup(self.replies, user_prompt, self.default_reply)
        finally:
            self.in_flight -= 1

    async def generate_stream(self, system_prompt, user_prompt):
        self.stream_calls.append((system_prompt, user_prompt))
        for index, fragment in enumerate(self.fragments):
            if index == self.stream_error_after:
                raise ProviderError("generate", "stream interrupted")
            await asyncio.sleep(0)
            yield fragment


def make_match(content: str, distance: float, source: str = "doc.md") -> StoredMatch:
    return StoredMatch(
        id=f"id-{content[:8]}",
        content=content,
        metadata={"source": source},
        distance=distance,
    )


@pytest.fixture(autouse=True)
def structlog_to_stderr():
    """Keep log lines off stdout, as main() does via configure_logging."""
    structlog.configure(logger_factory=structlog.PrintLoggerFactory(sys.stderr))
    yield
    structlog.reset_defaults()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def markdown_tree(tmp_path):
    """A small documentation tree with nested folders and non-markdown files."""
    (tmp_path / "guides" / "deploy").mkdir(parents=True)
    (tmp_path / "a.md").write_text("# T\nbody", encoding="utf-8")
    (tmp_path / "b.md").write_text("# B\nsecond", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("not markdown", encoding="utf-8")
    (tmp_path / "guides" / "intro.md").write_text("# Intro\nWelcome", encoding="utf-8")
    (tmp_path / "guides" / "deploy" / "prod.md").write_text("# Prod\nShip it", encoding="utf-8")
    return tmp_path
