"""
Embedding Service for the retrieval pipeline.

Generates embeddings with the Voyage AI HTTP API.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from .errors import ConfigurationError, DataShapeError, RetrievalError, TransientNetworkError
from .types import EmbeddingVector, InputType

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class EmbeddingConfig:
    """Configuration for embedding service."""
    api_key: Optional[str] = None
    api_url: str = "https://api.voyageai.com/v1/embeddings"
    model_id: str = "voyage-finance-2"
    dimension: int = 1024  # must match the vector index
    timeout_seconds: float = 15.0  # per attempt
    max_retries: int = 2  # after the first attempt
    backoff_seconds: float = 1.0  # linear: attempt n waits n * backoff_seconds


class EmbeddingService:
    """
    Service for generating text embeddings.

    Every attempt is bounded by ``timeout_seconds``; failed attempts are
    retried up to ``max_retries`` times with a linearly growing delay.
    All failures except a missing credential are retried the same way.
    """

    def __init__(
        self,
        config: Optional[EmbeddingConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Initialize the embedding service.

        Args:
            config: Embedding configuration
            transport: Optional httpx transport (tests pass a MockTransport)
            sleep: Awaitable delay used between attempts
        """
        self.config = config or EmbeddingConfig()
        self._transport = transport
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self.config.max_retries + 1

    async def embed(
        self,
        text: str,
        input_type: Union[InputType, str] = InputType.QUERY,
    ) -> EmbeddingVector:
        """
        Generate an embedding for a single text.

        Use ``InputType.QUERY`` for user questions and ``InputType.DOCUMENT``
        when indexing content.

        Args:
            text: Input text
            input_type: Query or document

        Returns:
            Embedding vector

        Raises:
            ConfigurationError: The API key is missing (not retried)
            RetrievalError: The last attempt's error once all attempts failed
        """
        api_key = (self.config.api_key or "").strip()
        if not api_key:
            raise ConfigurationError("VOYAGE_API_KEY is not set")

        purpose = InputType(input_type).value
        last_error: Optional[RetrievalError] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                embedding = await self._attempt(text, purpose, api_key)
                if attempt > 1:
                    logger.info(f"Voyage embedding succeeded on attempt {attempt}")
                if len(embedding) != self.config.dimension:
                    logger.warning(
                        f"Voyage returned {len(embedding)} dimensions, "
                        f"expected {self.config.dimension}; check the vector index"
                    )
                logger.debug(f"Generated Voyage embedding, dim={len(embedding)}")
                return embedding
            except RetrievalError as e:
                last_error = e
                logger.warning(
                    f"Voyage embedding attempt {attempt}/{self.max_attempts} failed: {e}"
                )

            if attempt < self.max_attempts:
                await self._sleep(self.config.backoff_seconds * attempt)

        raise last_error

    async def _attempt(self, text: str, purpose: str, api_key: str) -> EmbeddingVector:
        """One request, cancelled if it outlives the per-attempt timeout."""
        timeout = self.config.timeout_seconds
        try:
            return await asyncio.wait_for(self._request(text, purpose, api_key), timeout)
        except asyncio.TimeoutError:
            raise TransientNetworkError(
                f"Voyage embeddings timed out after {timeout:g}s "
                "(check VOYAGE_API_KEY, network access, or region)"
            )

    async def _request(self, text: str, purpose: str, api_key: str) -> EmbeddingVector:
        payload = {
            "input": text,
            "model": self.config.model_id,
            "input_type": purpose,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=None) as client:
                response = await client.post(self.config.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"Voyage embeddings request failed: {e}")

        if response.is_error:
            raise TransientNetworkError(
                f"Voyage embeddings failed: {response.status_code} {_error_detail(response)}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            raise DataShapeError("Voyage API returned a non-JSON body")

        return _extract_embedding(body)


def _error_detail(response: httpx.Response) -> str:
    """Best-effort ``detail`` from an error body, else the status text."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return response.reason_phrase


def _extract_embedding(body: Any) -> List[float]:
    data = body.get("data") if isinstance(body, dict) else None
    first: Dict[str, Any] = data[0] if isinstance(data, list) and data else {}
    embedding = first.get("embedding") if isinstance(first, dict) else None

    if not isinstance(embedding, list) or not embedding:
        raise DataShapeError("Voyage API returned no embedding")
    if not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in embedding):
        raise DataShapeError("Voyage API returned a malformed embedding")
    return [float(x) for x in embedding]
