"""Retriever for semantic search over an ingested collection.

Handles:
- Opening an existing collection (never creating one)
- Query embedding and nearest-neighbour search
- Distance to similarity conversion and threshold filtering
"""
from typing import List, Optional

import structlog

from askdocs import config
from askdocs.errors import AskDocsError, QueryError
from askdocs.llm_client import OllamaClient
from askdocs.rag.documents import RetrievalResult
from askdocs.rag.embedder import Embedder, OllamaEmbedder
from askdocs.rag.vector_store import VectorStore, open_vector_store

logger = structlog.get_logger()


class Retriever:
    """Semantic retriever for RAG pipeline."""

    def __init__(
        self,
        store: VectorStore,
        embedder: Embedder,
        database_name: str,
        top_k: int = None,
        score_threshold: float = None,
    ):
        """Initialize the retriever.

        Args:
            store: Vector store holding the collection
            embedder: Embedding provider; must match the one used at ingestion
            database_name: Collection name
            top_k: Number of nearest chunks to fetch (default from config)
            score_threshold: Minimum similarity to keep a chunk (default from config)
        """
        self.store = store
        self.embedder = embedder
        self.database_name = database_name
        self.top_k = config.RETRIEVAL_TOP_K if top_k is None else top_k
        self.score_threshold = (
            config.SCORE_THRESHOLD if score_threshold is None else score_threshold
        )

        if self.top_k <= 0:
            raise ValueError(f"top_k must be positive, got {self.top_k}")

        logger.info(
            "retriever_initialized",
            database_name=database_name,
            embedding_model=embedder.model,
            top_k=self.top_k,
            score_threshold=self.score_threshold,
        )

    async def retrieve(self, question: str) -> List[RetrievalResult]:
        """Retrieve chunks similar to the question.

        Args:
            question: User question

        Returns:
            Results with score >= score_threshold, best first. May be empty.

        Raises:
            CollectionNotFoundError: If the collection does not exist
            QueryError: If the search fails
            ProviderError: If the question cannot be embedded
        """
        logger.info("retrieval_started", query_length=len(question), top_k=self.top_k)

        collection = await self.store.open_collection(self.database_name, self.embedder)

        try:
            matches = await collection.query(question, self.top_k)
        except AskDocsError:
            raise
        except Exception as e:
            logger.error(
                "retrieval_failed",
                error=str(e),
                error_type=type(e).__name__,
                query_preview=question[:100],
            )
            raise QueryError(self.database_name, str(e)) from e

        results = [RetrievalResult.from_match(match) for match in matches]
        kept = [r for r in results if r.score >= self.score_threshold]

        # Stable sort keeps the store's order for equal scores
        kept.sort(key=lambda r: r.score, reverse=True)

        logger.info(
            "retrieval_completed",
            query_length=len(question),
            results_found=len(results),
            results_returned=len(kept),
            top_score=kept[0].score if kept else None,
        )

        return kept


async def retrieve_documents(
    question: str,
    database_name: str,
    database_url: str,
    embedding_model: str,
    top_k: int = 5,
    score_threshold: float = 0.5,
    ollama_url: Optional[str] = None,
) -> List[RetrievalResult]:
    """Retrieve chunks for a question (convenience function)."""
    retriever = Retriever(
        store=open_vector_store(database_url),
        embedder=OllamaEmbedder(embedding_model, OllamaClient(base_url=ollama_url)),
        database_name=database_name,
        top_k=top_k,
        score_threshold=score_threshold,
    )
    return await retriever.retrieve(question)
