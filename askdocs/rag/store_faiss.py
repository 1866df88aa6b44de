"""FAISS vector store kept in a local directory.

Handles:
- One sub-directory per collection (index + JSON records)
- Cosine distance via normalised vectors and an inner-product index
- Dimension detection from the first stored batch
"""
import json
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import faiss
import numpy as np
import structlog

from askdocs.errors import CollectionNotFoundError, ProviderError, QueryError
from askdocs.rag.documents import Document, StoredMatch
from askdocs.rag.embedder import Embedder
from askdocs.rag.vector_store import DISTANCE_METRIC

logger = structlog.get_logger()

INDEX_FILE = "vectors.index"
RECORDS_FILE = "records.json"


def _normalized(vectors: List[List[float]]) -> np.ndarray:
    array = np.array(vectors, dtype=np.float32)
    faiss.normalize_L2(array)
    return array


class FAISSCollection:
    """A FAISS IndexFlatIP plus the content and metadata of every vector."""

    def __init__(self, name: str, directory: Path, embedder: Embedder):
        self.name = name
        self.directory = directory
        self.embedder = embedder

        self.index_path = directory / INDEX_FILE
        self.records_path = directory / RECORDS_FILE

        self.index: Optional[faiss.Index] = None
        self.dimension: Optional[int] = None
        self.records: List[Dict[str, Any]] = []

    def exists(self) -> bool:
        return self.records_path.exists()

    def load(self) -> None:
        """Load index and records from disk.

        Raises:
            ProviderError: If the files are unreadable
        """
        try:
            with open(self.records_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self.records = data["records"]
            self.dimension = data.get("embedding_dimension")
            if self.index_path.exists():
                self.index = faiss.read_index(str(self.index_path))
        except (OSError, ValueError, KeyError, RuntimeError) as e:
            raise ProviderError(
                "store", f"unable to load collection [{self.name}]: {e}"
            ) from e

        logger.info(
            "faiss_collection_loaded",
            name=self.name,
            dimension=self.dimension,
            vector_count=len(self.records),
        )

    def save(self) -> None:
        """Write index and records to disk."""
        self.directory.mkdir(parents=True, exist_ok=True)

        if self.index is not None:
            faiss.write_index(self.index, str(self.index_path))

        with open(self.records_path, "w", encoding="utf-8") as f:
            json.dump(
                {
                    "embedding_model": self.embedder.model,
                    "embedding_dimension": self.dimension,
                    "distance": DISTANCE_METRIC,
                    "index_type": "IndexFlatIP",
                    "records": self.records,
                },
                f,
                indent=2,
            )

    async def add_batch(self, chunks: Sequence[Document]) -> List[str]:
        if not chunks:
            return []

        embeddings = [await self.embedder.embed(chunk.content) for chunk in chunks]

        try:
            vectors = _normalized(embeddings)
            if self.index is None:
                self.dimension = vectors.shape[1]
                self.index = faiss.IndexFlatIP(self.dimension)
            if vectors.shape[1] != self.dimension:
                raise ValueError(
                    f"Embedding dimension mismatch: expected {self.dimension}, "
                    f"got {vectors.shape[1]}"
                )

            self.index.add(vectors)
            ids = [uuid.uuid4().hex for _ in chunks]
            self.records.extend(
                {"id": id_, "content": chunk.content, "metadata": dict(chunk.metadata)}
                for id_, chunk in zip(ids, chunks)
            )
            self.save()
        except (OSError, ValueError, RuntimeError) as e:
            logger.error("faiss_batch_add_failed", name=self.name, error=str(e))
            raise ProviderError("store", f"collection [{self.name}]: {e}") from e

        logger.debug("faiss_batch_added", name=self.name, count=len(ids))

        return ids

    async def query(self, text: str, top_k: int) -> List[StoredMatch]:
        embedding = await self.embedder.embed(text)

        if self.index is None or self.index.ntotal == 0:
            return []

        try:
            query_vector = _normalized([embedding])
            if query_vector.shape[1] != self.dimension:
                raise ValueError(
                    f"Query dimension mismatch: expected {self.dimension}, "
                    f"got {query_vector.shape[1]}"
                )

            # Ensure we don't request more results than we have
            top_k = min(top_k, self.index.ntotal)
            if top_k <= 0:
                return []

            similarities, indices = self.index.search(query_vector, top_k)
        except (ValueError, RuntimeError) as e:
            logger.error("faiss_query_failed", name=self.name, error=str(e))
            raise QueryError(self.name, str(e)) from e

        matches = []
        for position, similarity in zip(indices[0].tolist(), similarities[0].tolist()):
            if position < 0:
                continue
            record = self.records[position]
            matches.append(
                StoredMatch(
                    id=record["id"],
                    content=record["content"],
                    metadata=dict(record["metadata"]),
                    distance=1.0 - similarity,
                )
            )

        return matches


class FAISSVectorStore:
    """Directory holding one FAISS collection per sub-directory."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.url = str(self.root)

    async def open_collection(
        self, name: str, embedder: Embedder, create: bool = False
    ) -> FAISSCollection:
        if not name or name in (".", "..") or "/" in name or "\\" in name:
            raise ProviderError("store", f"invalid collection name [{name}]")

        collection = FAISSCollection(name, self.root / name, embedder)

        if collection.exists():
            collection.load()
        elif create:
            try:
                collection.save()
            except (OSError, RuntimeError) as e:
                logger.error("faiss_collection_create_failed", name=name, error=str(e))
                raise ProviderError(
                    "store", f"unable to create collection [{name}]: {e}"
                ) from e
            logger.info("faiss_collection_created", name=name, root=str(self.root))
        else:
            raise CollectionNotFoundError(name, self.url)

        return collection
