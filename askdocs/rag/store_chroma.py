"""Chroma vector store reached over HTTP.

Embeddings are computed by our own embedder and handed to Chroma, so the
collections never rely on a server-side embedding function.
"""
import uuid
from typing import Any, List, Optional, Sequence

import chromadb
import httpx
import structlog
from chromadb.errors import NotFoundError

from askdocs.errors import CollectionNotFoundError, ProviderError, QueryError
from askdocs.rag.documents import Document, StoredMatch
from askdocs.rag.embedder import Embedder
from askdocs.rag.vector_store import DISTANCE_METRIC

logger = structlog.get_logger()


class ChromaCollection:
    """A Chroma collection plus the embedder its vectors come from."""

    def __init__(self, collection: Any, embedder: Embedder):
        self._collection = collection
        self.embedder = embedder
        self.name = collection.name

    async def add_batch(self, chunks: Sequence[Document]) -> List[str]:
        """Embed chunks in order and add them in a single request."""
        if not chunks:
            return []

        embeddings = [await self.embedder.embed(chunk.content) for chunk in chunks]
        ids = [uuid.uuid4().hex for _ in chunks]

        try:
            await self._collection.add(
                ids=ids,
                embeddings=embeddings,
                documents=[chunk.content for chunk in chunks],
                metadatas=[dict(chunk.metadata) for chunk in chunks],
            )
        except Exception as e:
            logger.error("chroma_batch_add_failed", collection=self.name, error=str(e))
            raise ProviderError("store", f"collection [{self.name}]: {e}") from e

        logger.debug("chroma_batch_added", collection=self.name, count=len(ids))

        return ids

    async def query(self, text: str, top_k: int) -> List[StoredMatch]:
        embedding = await self.embedder.embed(text)

        try:
            results = await self._collection.query(
                query_embeddings=[embedding],
                n_results=top_k,
                include=["documents", "metadatas", "distances"],
            )
        except Exception as e:
            logger.error("chroma_query_failed", collection=self.name, error=str(e))
            raise QueryError(self.name, str(e)) from e

        ids = results["ids"][0] if results.get("ids") else []
        documents = results["documents"][0]
        metadatas = results["metadatas"][0]
        distances = results["distances"][0]

        return [
            StoredMatch(
                id=ids[i],
                content=documents[i] or "",
                metadata=dict(metadatas[i] or {}),
                distance=float(distances[i]),
            )
            for i in range(len(ids))
        ]


class ChromaVectorStore:
    """Chroma server addressed by an http(s) URL."""

    def __init__(self, url: str, client: Optional[Any] = None):
        self.url = url
        self._client = client

    async def _get_client(self) -> Any:
        if self._client is None:
            parsed = httpx.URL(self.url)
            ssl = parsed.scheme == "https"
            port = parsed.port or (443 if ssl else 80)
            try:
                self._client = await chromadb.AsyncHttpClient(
                    host=parsed.host, port=port, ssl=ssl
                )
            except Exception as e:
                logger.error("chroma_connection_failed", url=self.url, error=str(e))
                raise ProviderError(
                    "store", f"unable to connect to vector database [{self.url}]: {e}"
                ) from e
        return self._client

    async def open_collection(
        self, name: str, embedder: Embedder, create: bool = False
    ) -> ChromaCollection:
        client = await self._get_client()

        if create:
            try:
                collection = await client.get_or_create_collection(
                    name=name,
                    metadata={"hnsw:space": DISTANCE_METRIC},
                    embedding_function=None,
                )
            except Exception as e:
                logger.error("chroma_collection_create_failed", name=name, error=str(e))
                raise ProviderError(
                    "store", f"unable to create collection [{name}]: {e}"
                ) from e
        else:
            try:
                collection = await client.get_collection(name=name, embedding_function=None)
            except (NotFoundError, ValueError) as e:
                raise CollectionNotFoundError(name, self.url) from e
            except Exception as e:
                logger.error("chroma_collection_open_failed", name=name, error=str(e))
                raise QueryError(name, str(e)) from e

        logger.info("chroma_collection_opened", name=name, url=self.url, created=create)

        return ChromaCollection(collection, embedder)
