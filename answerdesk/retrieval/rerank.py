"""
Rerank fallback chain.

Walks a prioritized list of rerank models and returns the ordering from the
first one that answers with at least one result. Every failure is recorded as
``"<model>: <reason>"`` so the pipeline trace can explain why a model was
passed over.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import structlog

from answerdesk.config.settings import dedupe_models
from answerdesk.monitoring.metrics import record_rerank_attempt
from answerdesk.providers.reranker import RerankItem, RerankProvider
from answerdesk.retrieval.usage import RerankUsageCounter

logger = structlog.get_logger(__name__)

NOT_CONFIGURED_REASON = "reranker not configured"


@dataclass
class RerankExecution:
    """Outcome of running the chain once."""

    model: Optional[str] = None
    results: list[RerankItem] = field(default_factory=list)
    attempted_models: list[str] = field(default_factory=list)
    warning: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.model is not None


class RerankChain:
    """
    Rerank with graceful degradation across models.

    Args:
        reranker: Rerank provider, or None when not configured
        models: Model identifiers in priority order
        usage: Daily usage counter fed with every reported unit count
    """

    def __init__(
        self,
        reranker: Optional[RerankProvider],
        models: list[str],
        usage: RerankUsageCounter,
    ) -> None:
        self._reranker = reranker
        self._models = dedupe_models(models)
        self._usage = usage

    @property
    def models(self) -> list[str]:
        return list(self._models)

    @property
    def is_configured(self) -> bool:
        return self._reranker is not None and bool(self._models)

    async def run(self, query: str, documents: list[str]) -> RerankExecution:
        if not self.is_configured:
            return RerankExecution(warning=NOT_CONFIGURED_REASON)

        attempted: list[str] = []
        reasons: list[str] = []

        for model in self._models:
            attempted.append(model)
            try:
                response = await self._reranker.rerank(model, query, documents)
            except Exception as e:
                record_rerank_attempt(model, "error")
                reasons.append(f"{model}: {getattr(e, 'message', None) or e}")
                logger.warning(
                    "rerank_model_failed",
                    model=model,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            if response.usage_units:
                await self._usage.record(response.usage_units)

            results = _valid_results(response.results, len(documents))
            if not results:
                record_rerank_attempt(model, "empty")
                reasons.append(f"{model}: returned no results")
                logger.warning("rerank_model_empty", model=model)
                continue

            record_rerank_attempt(model, "success")
            return RerankExecution(
                model=model,
                results=results,
                attempted_models=attempted,
                warning=" | ".join(reasons) or None,
            )

        return RerankExecution(attempted_models=attempted, warning=" | ".join(reasons) or None)


def _valid_results(results: list[RerankItem], document_count: int) -> list[RerankItem]:
    """Keep the first score per in-range index."""
    seen: set[int] = set()
    valid = []
    for item in results:
        if 0 <= item.index < document_count and item.index not in seen:
            seen.add(item.index)
            valid.append(item)
    return valid
