"""Embedding provider bound to one Ollama embedding model."""
from typing import List, Optional, Protocol

import httpx
import structlog

from askdocs.errors import ProviderError
from askdocs.llm_client import OllamaClient

logger = structlog.get_logger()


class Embedder(Protocol):
    model: str

    async def embed(self, text: str) -> List[float]:
        ...


class OllamaEmbedder:
    """Embeds text with a fixed Ollama model."""

    def __init__(self, model: str, client: Optional[OllamaClient] = None):
        self.model = model
        self.client = client or OllamaClient()

    async def embed(self, text: str) -> List[float]:
        """Embed one text.

        Raises:
            ProviderError: If Ollama fails or returns an empty vector
        """
        try:
            response = await self.client.embeddings(prompt=text, model=self.model)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.error(
                "embedding_generation_failed",
                model=self.model,
                text_preview=text[:100],
                error=str(e),
            )
            raise ProviderError("embed", f"model [{self.model}]: {e}") from e

        embedding = response.get("embedding", [])
        if not embedding:
            raise ProviderError("embed", f"model [{self.model}] returned an empty embedding")

        return embedding
