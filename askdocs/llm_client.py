"""Ollama LLM client wrapper with error handling."""
import json
from typing import AsyncIterator, Dict, List, Optional

import httpx
import structlog

from askdocs import config
from askdocs.errors import ProviderError

logger = structlog.get_logger()


class OllamaResponseError(RuntimeError):
    """Ollama answered with an in-band error or an unreadable body."""


class OllamaClient:
    """Async client for interacting with Ollama API."""

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = (base_url or config.OLLAMA_BASE_URL).rstrip("/")
        self.timeout = timeout or config.OLLAMA_TIMEOUT
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str,
        format: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> Dict:
        """Send a non-streaming chat completion request to Ollama.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use
            format: Optional output format ("json" constrains the reply)
            temperature: Sampling temperature (0.0-2.0)

        Returns:
            Response dict with 'message' containing 'content'

        Raises:
            httpx.HTTPError: On API errors
            httpx.ConnectError: If Ollama service is unavailable
        """
        payload = {
            "model": model,
            "messages": messages,
            "stream": False,
        }
        if format is not None:
            payload["format"] = format
        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        try:
            async with self._client() as client:
                logger.info(
                    "ollama_chat_request",
                    model=model,
                    message_count=len(messages),
                    format=format,
                )

                response = await client.post(f"{self.base_url}/api/chat", json=payload)
                response.raise_for_status()

                data = response.json()

                logger.info(
                    "ollama_chat_response",
                    model=model,
                    response_length=len(data.get("message", {}).get("content", "")),
                )

                return data

        except httpx.ConnectError as e:
            logger.error("ollama_connection_error", error=str(e), base_url=self.base_url)
            raise
        except httpx.HTTPError as e:
            logger.error(
                "ollama_http_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise

    async def chat_stream(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Stream a chat completion, yielding content fragments as they arrive.

        Ollama sends one JSON object per line; the last one has "done": true.

        Raises:
            httpx.HTTPError: On API errors
            OllamaResponseError: On an in-band error or a malformed line
        """
        payload = {
            "model": model,
            "messages": messages,
            "stream": True,
        }
        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        logger.info("ollama_chat_stream_request", model=model, message_count=len(messages))

        fragment_count = 0
        async with self._client() as client:
            async with client.stream(
                "POST", f"{self.base_url}/api/chat", json=payload
            ) as response:
                response.raise_for_status()

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue

                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError as e:
                        raise OllamaResponseError(
                            f"malformed stream line: {line[:100]!r}"
                        ) from e

                    if "error" in data:
                        raise OllamaResponseError(str(data["error"]))

                    content = data.get("message", {}).get("content", "")
                    if content:
                        fragment_count += 1
                        yield content

                    if data.get("done"):
                        break

        logger.info("ollama_chat_stream_completed", model=model, fragments=fragment_count)

    async def embeddings(self, prompt: str, model: str) -> Dict:
        """Generate embeddings for a text prompt.

        Args:
            prompt: Text to embed
            model: Model to use

        Returns:
            Response dict with 'embedding' list

        Raises:
            httpx.HTTPError: On API errors
        """
        payload = {
            "model": model,
            "prompt": prompt,
        }

        try:
            async with self._client() as client:
                logger.debug(
                    "ollama_embedding_request",
                    model=model,
                    prompt_length=len(prompt),
                )

                response = await client.post(
                    f"{self.base_url}/api/embeddings",
                    json=payload,
                )
                response.raise_for_status()

                data = response.json()

                logger.debug(
                    "ollama_embedding_response",
                    model=model,
                    dimension=len(data.get("embedding", [])),
                )

                return data

        except httpx.HTTPError as e:
            logger.error("ollama_embedding_error", error=str(e))
            raise


class OllamaChatModel:
    """A chat model bound to one Ollama model name.

    Exposes the two calls the pipelines need: a one-shot ``generate`` and a
    fragment-by-fragment ``generate_stream``.
    """

    def __init__(self, model: str, client: Optional[OllamaClient] = None):
        self.model = model
        self.client = client or OllamaClient()

    @staticmethod
    def _messages(system_prompt: str, user_prompt: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

    async def generate(
        self, system_prompt: str, user_prompt: str, json_output: bool = False
    ) -> str:
        """Generate a complete reply.

        Raises:
            ProviderError: If the Ollama call fails
        """
        try:
            data = await self.client.chat(
                self._messages(system_prompt, user_prompt),
                model=self.model,
                format="json" if json_output else None,
                temperature=0.0 if json_output else None,
            )
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            raise ProviderError("generate", f"model [{self.model}]: {e}") from e

        if "error" in data:
            raise ProviderError("generate", f"model [{self.model}]: {data['error']}")

        return data.get("message", {}).get("content", "")

    async def generate_stream(
        self, system_prompt: str, user_prompt: str
    ) -> AsyncIterator[str]:
        """Yield reply fragments in generation order.

        Raises:
            ProviderError: If the stream cannot be opened or breaks midway
        """
        try:
            async for fragment in self.client.chat_stream(
                self._messages(system_prompt, user_prompt), model=self.model
            ):
                yield fragment
        except (httpx.HTTPError, httpx.InvalidURL, OllamaResponseError) as e:
            logger.error("answer_stream_failed", model=self.model, error=str(e))
            raise ProviderError("generate", f"model [{self.model}]: {e}") from e
