"""Vector store interfaces and backend selection.

A database URL selects the backend:
- http:// and https:// URLs point at a Chroma server
- file:// URLs and plain paths point at a local FAISS directory

Both backends use cosine distance and assign record ids themselves.
"""
from pathlib import Path
from typing import List, Protocol, Sequence
from urllib.parse import unquote, urlparse

from askdocs.rag.documents import Document, StoredMatch
from askdocs.rag.embedder import Embedder

DISTANCE_METRIC = "cosine"


class Collection(Protocol):
    name: str

    async def add_batch(self, chunks: Sequence[Document]) -> List[str]:
        """Embed and store chunks, returning one new id per chunk."""
        ...

    async def query(self, text: str, top_k: int) -> List[StoredMatch]:
        """Return up to top_k matches, nearest first."""
        ...


class VectorStore(Protocol):
    url: str

    async def open_collection(
        self, name: str, embedder: Embedder, create: bool = False
    ) -> Collection:
        """Open a collection; create it (cosine distance) when asked to."""
        ...


def open_vector_store(database_url: str) -> VectorStore:
    """Create the vector store backend addressed by ``database_url``."""
    from askdocs.rag.store_chroma import ChromaVectorStore
    from askdocs.rag.store_faiss import FAISSVectorStore

    parsed = urlparse(database_url)
    if parsed.scheme in ("http", "https"):
        return ChromaVectorStore(database_url)
    if parsed.scheme == "file":
        return FAISSVectorStore(Path(unquote(parsed.path)))
    return FAISSVectorStore(Path(database_url))
