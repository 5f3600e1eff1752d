"""
Embedding Providers.

Converts text to fixed-dimension vectors. Two implementations share the
``EmbeddingProvider`` protocol:

- CohereEmbeddingsService: Cohere embed-v3 models, with separate input types
  for stored documents and search queries.
- LocalEmbeddingsService: deterministic pseudo-vectors for offline/dev use.
  Similarity quality is poor but the pipeline keeps working end to end.
"""

from __future__ import annotations

import asyncio
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

import cohere
import structlog
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from answerdesk.config.settings import Settings
from answerdesk.core.exceptions import EmbeddingProviderError

logger = structlog.get_logger(__name__)

# Thread pool for sync Cohere client
_executor = ThreadPoolExecutor(max_workers=4)

LOCAL_MODEL_NAME = "local-fake"


class EmbeddingIntent(str, Enum):
    """Whether text is being stored or searched for."""

    QUERY = "query"
    DOCUMENT = "document"


@dataclass(frozen=True)
class EmbeddingResult:
    vector: list[float]
    dimension: int
    model_name: str


class EmbeddingProvider(Protocol):
    """Protocol for embedding provider implementations."""

    async def embed(self, text: str, intent: EmbeddingIntent) -> EmbeddingResult: ...


def is_usable_vector(vector: Optional[list[float]]) -> bool:
    """A vector is usable if it is non-empty, finite, and not all zeros."""
    if not vector:
        return False
    if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in vector):
        return False
    return any(v != 0 for v in vector)


def _is_retryable(exception: BaseException) -> bool:
    """Check if exception should trigger retry."""
    error_str = str(exception).lower()
    return any(keyword in error_str for keyword in ["rate", "limit", "timeout", "unavailable"])


class CohereEmbeddingsService:
    """
    Cohere embeddings service using configurable embed model.

    Dimension: 1024 for embed-v3 models (configurable via settings)

    Usage:
        service = CohereEmbeddingsService(api_key="...")

        # Stored document
        result = await service.embed(text, EmbeddingIntent.DOCUMENT)

        # Search query
        result = await service.embed(query, EmbeddingIntent.QUERY)
    """

    INPUT_TYPES = {
        EmbeddingIntent.DOCUMENT: "search_document",
        EmbeddingIntent.QUERY: "search_query",
    }

    def __init__(
        self,
        api_key: str,
        model: str = "embed-multilingual-v3.0",
        dimension: int = 1024,
        client: Optional[cohere.ClientV2] = None,
    ) -> None:
        """
        Initialize the Cohere embeddings service.

        Args:
            api_key: Cohere API key.
            model: Embedding model.
            dimension: Expected embedding dimension.
            client: Pre-built client, mainly for tests.
        """
        self._api_key = api_key
        self._model = model
        self._dimension = dimension
        self._client = client

        logger.info(
            "cohere_embeddings_initialized",
            model=self._model,
            dimension=self._dimension,
        )

    @property
    def model(self) -> str:
        return self._model

    @property
    def client(self) -> cohere.ClientV2:
        """Get or create the Cohere client."""
        if self._client is None:
            self._client = cohere.ClientV2(api_key=self._api_key)
        return self._client

    def _embed_sync(self, text: str, input_type: str) -> list[float]:
        """Synchronous embedding call."""
        response = self.client.embed(
            model=self._model,
            texts=[text],
            input_type=input_type,
            embedding_types=["float"],
        )
        vectors = response.embeddings.float_ or []
        return list(vectors[0]) if vectors else []

    @retry(
        retry=retry_if_exception(_is_retryable),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(3),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "cohere_retry",
            attempt=retry_state.attempt_number,
            wait=retry_state.next_action.sleep if retry_state.next_action else 0,
        ),
    )
    async def _embed_request(self, text: str, input_type: str) -> list[float]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            _executor,
            lambda: self._embed_sync(text, input_type),
        )

    async def embed(self, text: str, intent: EmbeddingIntent) -> EmbeddingResult:
        """
        Generate an embedding for a single text.

        Args:
            text: Text to embed.
            intent: DOCUMENT for stored records, QUERY for searches.

        Returns:
            EmbeddingResult. The vector may be empty if the provider
            returned nothing for this text.

        Raises:
            EmbeddingProviderError: If the Cohere call fails.
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        try:
            vector = await self._embed_request(text, self.INPUT_TYPES[intent])
        except Exception as e:
            raise EmbeddingProviderError(
                "cohere",
                f"Embedding request failed: {e}",
                {"model": self._model, "intent": intent.value},
            ) from e

        logger.debug(
            "cohere_embedding_generated",
            text_length=len(text),
            dimension=len(vector),
            intent=intent.value,
        )
        return EmbeddingResult(vector=vector, dimension=len(vector), model_name=self._model)


def pseudo_embedding(text: str, dimension: int) -> list[float]:
    """UTF-8 bytes scaled to [0, 1], zero-padded or truncated to ``dimension``."""
    data = (text or "").encode("utf-8")[:dimension]
    vector = [b / 255 for b in data]
    vector.extend([0.0] * (dimension - len(vector)))
    return vector


class LocalEmbeddingsService:
    """Deterministic pseudo-embeddings used when no provider is configured."""

    def __init__(self, dimension: int = 1024) -> None:
        self._dimension = dimension

    async def embed(self, text: str, intent: EmbeddingIntent) -> EmbeddingResult:
        vector = pseudo_embedding(text, self._dimension)
        return EmbeddingResult(
            vector=vector,
            dimension=self._dimension,
            model_name=LOCAL_MODEL_NAME,
        )


def get_embeddings_service(settings: Optional[Settings] = None) -> EmbeddingProvider:
    """
    Create the embedding provider for the given settings.

    Uses Cohere when an API key is configured, otherwise local pseudo-embeddings.
    """
    if settings is None:
        from answerdesk.config.settings import get_settings
        settings = get_settings()

    if settings.cohere_configured:
        return CohereEmbeddingsService(
            api_key=settings.cohere_api_key.get_secret_value(),
            model=settings.cohere_embedding_model,
            dimension=settings.cohere_embedding_dimension,
        )

    logger.warning(
        "embeddings_using_local_fallback",
        model=LOCAL_MODEL_NAME,
        dimension=settings.cohere_embedding_dimension,
    )
    return LocalEmbeddingsService(dimension=settings.cohere_embedding_dimension)
