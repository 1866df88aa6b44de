"""Ingest pipeline for indexing markdown documents.

Orchestrates:
- Document splitting (metadata copied onto every chunk)
- Embedding through the collection's embedder
- Batched writes to a cosine vector collection
"""
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import structlog

from askdocs import config
from askdocs.errors import BatchWriteError, SplitError
from askdocs.llm_client import OllamaClient
from askdocs.rag.chunker import Splitter, create_chunker, get_chunk_stats
from askdocs.rag.documents import Document
from askdocs.rag.embedder import Embedder, OllamaEmbedder
from askdocs.rag.vector_store import VectorStore, open_vector_store

logger = structlog.get_logger()


@dataclass
class IngestReport:
    """Outcome of one ingestion run."""

    documents: int
    chunks_requested: int
    chunks_stored: int
    batches: int
    ids: List[str] = field(default_factory=list)


def split_documents(splitter: Splitter, documents: Sequence[Document]) -> List[Document]:
    """Split every document, in order, into chunks sharing its metadata.

    Raises:
        SplitError: If a document cannot be split
    """
    chunks: List[Document] = []

    for doc in documents:
        try:
            texts = splitter.split_text(doc.content)
        except Exception as e:
            logger.error("document_split_failed", source=doc.source, error=str(e))
            raise SplitError(doc.source, str(e)) from e

        chunks.extend(Document(content=text, metadata=dict(doc.metadata)) for text in texts)

    return chunks


class IngestPipeline:
    """Pipeline for ingesting documents into a vector collection."""

    def __init__(
        self,
        splitter: Splitter,
        store: VectorStore,
        embedder: Embedder,
        database_name: str,
        batch_size: int = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            splitter: Chunker applied to every document
            store: Vector store holding the collection
            embedder: Embedding provider bound to the embedding model
            database_name: Collection name
            batch_size: Number of chunks per write request (default from config)
        """
        self.splitter = splitter
        self.store = store
        self.embedder = embedder
        self.database_name = database_name
        self.batch_size = (
            config.VECTOR_STORE_BATCH_SIZE if batch_size is None else batch_size
        )

        if self.batch_size <= 0:
            raise ValueError(f"Batch size must be positive, got {self.batch_size}")

        logger.info(
            "ingest_pipeline_initialized",
            database_name=database_name,
            database_url=store.url,
            embedding_model=embedder.model,
            chunk_size=splitter.chunk_size,
            chunk_overlap=splitter.chunk_overlap,
            batch_size=self.batch_size,
        )

    async def ingest(self, documents: Sequence[Document]) -> IngestReport:
        """Split, embed and store documents.

        Every document is split before anything is written, so a split
        failure leaves the collection untouched.

        Raises:
            SplitError: If a document cannot be split
            ProviderError: If the collection cannot be opened
            BatchWriteError: If a batch cannot be stored
        """
        chunks = split_documents(self.splitter, documents)

        logger.info(
            "documents_split",
            documents=len(documents),
            **get_chunk_stats([chunk.content for chunk in chunks]),
        )

        collection = await self.store.open_collection(
            self.database_name, self.embedder, create=True
        )

        total_batches = math.ceil(len(chunks) / self.batch_size)
        stored_ids: List[str] = []

        for batch_number, start in enumerate(range(0, len(chunks), self.batch_size), 1):
            end = min(start + self.batch_size, len(chunks))
            batch = chunks[start:end]

            try:
                ids = await collection.add_batch(batch)
            except Exception as e:
                logger.error(
                    "batch_store_failed",
                    batch=batch_number,
                    total_batches=total_batches,
                    error=str(e),
                )
                raise BatchWriteError(batch_number, start, end, str(e)) from e

            if len(ids) != len(batch):
                raise BatchWriteError(
                    batch_number,
                    start,
                    end,
                    f"store returned {len(ids)} ids for {len(batch)} chunks",
                )

            stored_ids.extend(ids)

            logger.info(
                "batch_stored",
                batch=batch_number,
                total_batches=total_batches,
                count=len(ids),
                stored_so_far=len(stored_ids),
            )

        report = IngestReport(
            documents=len(documents),
            chunks_requested=len(chunks),
            chunks_stored=len(stored_ids),
            batches=total_batches,
            ids=stored_ids,
        )

        logger.info(
            "ingest_completed",
            documents=report.documents,
            chunks_requested=report.chunks_requested,
            chunks_stored=report.chunks_stored,
            batches=report.batches,
        )

        return report


async def ingest_documents(
    documents: Sequence[Document],
    embedding_model: str,
    database_name: str,
    database_url: str,
    chunk_size: int,
    chunk_overlap: int,
    splitter: str = "markdown",
    batch_size: int = None,
    ollama_url: Optional[str] = None,
) -> IngestReport:
    """Ingest documents into ``database_name`` at ``database_url`` (convenience function).

    Returns:
        IngestReport; ``chunks_stored`` is the number of stored chunks
    """
    pipeline = IngestPipeline(
        splitter=create_chunker(splitter, chunk_size, chunk_overlap),
        store=open_vector_store(database_url),
        embedder=OllamaEmbedder(embedding_model, OllamaClient(base_url=ollama_url)),
        database_name=database_name,
        batch_size=batch_size,
    )
    return await pipeline.ingest(documents)
