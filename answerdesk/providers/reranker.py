"""
Cohere Reranker Service.

Second-pass relevance scoring of a candidate set against a query. The caller
chooses the model per call so the retrieval pipeline can walk a prioritized
list of models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol

import cohere
import structlog
from cohere.core import ApiError
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from answerdesk.config.settings import Settings
from answerdesk.core.exceptions import RerankProviderError

logger = structlog.get_logger(__name__)

TRANSIENT_STATUS_CODES = {429, 502, 503, 504}


@dataclass(frozen=True)
class RerankItem:
    """Score for the document at ``index`` in the submitted list."""

    index: int
    score: float


@dataclass
class RerankResponse:
    results: list[RerankItem] = field(default_factory=list)
    usage_units: Optional[int] = None


class RerankProvider(Protocol):
    """Protocol for rerank provider implementations."""

    async def rerank(self, model: str, query: str, documents: list[str]) -> RerankResponse: ...


def _is_transient(exception: BaseException) -> bool:
    return isinstance(exception, ApiError) and exception.status_code in TRANSIENT_STATUS_CODES


class CohereReranker:
    """
    Cohere reranking service.

    Usage:
        reranker = CohereReranker(api_key="...")

        response = await reranker.rerank(
            model="rerank-v3.5",
            query="How do I reset my password?",
            documents=["Click forgot password...", "Our office hours are..."],
        )

        for item in response.results:
            print(f"[{item.score:.3f}] document #{item.index}")
    """

    def __init__(self, api_key: str, client: Optional[cohere.AsyncClientV2] = None) -> None:
        """
        Initialize the reranker service.

        Args:
            api_key: Cohere API key.
            client: Pre-built async client, mainly for tests.
        """
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> cohere.AsyncClientV2:
        """Get or create the Cohere async client."""
        if self._client is None:
            self._client = cohere.AsyncClientV2(api_key=self._api_key)
        return self._client

    @retry(
        retry=retry_if_exception(_is_transient),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(2),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "cohere_rerank_retry",
            attempt=retry_state.attempt_number,
            wait=retry_state.next_action.sleep if retry_state.next_action else 0,
        ),
    )
    async def _rerank_request(self, model: str, query: str, documents: list[str]):
        return await self.client.rerank(
            model=model,
            query=query,
            documents=documents,
            top_n=len(documents),
        )

    async def rerank(self, model: str, query: str, documents: list[str]) -> RerankResponse:
        """
        Rerank documents by relevance to query.

        Args:
            model: Rerank model identifier.
            query: The search query.
            documents: Document texts; result indices refer to this list.

        Returns:
            Results sorted by relevance score (descending) and billed units.

        Raises:
            RerankProviderError: If the Cohere call fails.
        """
        if not documents:
            return RerankResponse()

        try:
            response = await self._rerank_request(model, query, documents)
        except Exception as e:
            status = getattr(e, "status_code", None)
            suffix = f" [{status}]" if status else f" [{type(e).__name__}]"
            raise RerankProviderError(
                "cohere",
                f"{e}{suffix}",
                {"model": model, "status": status},
            ) from e

        results = [
            RerankItem(index=item.index, score=float(item.relevance_score or 0.0))
            for item in response.results or []
        ]

        usage_units = None
        meta = getattr(response, "meta", None)
        billed = getattr(meta, "billed_units", None) if meta else None
        if billed is not None and billed.search_units is not None:
            usage_units = int(billed.search_units)

        logger.info(
            "rerank_completed",
            model=model,
            query_length=len(query),
            doc_count=len(documents),
            results=len(results),
            usage_units=usage_units,
        )
        return RerankResponse(results=results, usage_units=usage_units)


def get_reranker(settings: Optional[Settings] = None) -> Optional[CohereReranker]:
    """Create the rerank provider, or None when no key or model is configured."""
    if settings is None:
        from answerdesk.config.settings import get_settings
        settings = get_settings()

    if not settings.cohere_configured or not settings.rerank_models:
        logger.info("reranker_not_configured")
        return None

    return CohereReranker(api_key=settings.cohere_api_key.get_secret_value())
