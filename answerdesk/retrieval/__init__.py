"""
Retrieval for AnswerDesk.

Vector search, metadata reconciliation, rerank fallback chain and the
confidence gate, plus the daily rerank usage counter.

Example:
    from answerdesk.retrieval import RetrievalPipeline

    result = await pipeline.search("How do I reset my password?", top_k=5)
    print(result.pipeline.rerank.model)
"""

from answerdesk.retrieval.models import (
    Candidate,
    PipelineTrace,
    RerankTrace,
    SearchMatch,
    SearchResult,
    VectorTrace,
)
from answerdesk.retrieval.pipeline import (
    DEFAULT_MIN_RERANK_SCORE,
    MAX_TOP_K,
    RetrievalPipeline,
)
from answerdesk.retrieval.rerank import RerankChain, RerankExecution
from answerdesk.retrieval.usage import (
    InMemoryRerankUsageCounter,
    RedisRerankUsageCounter,
    RerankUsageCounter,
    UsageSnapshot,
    get_rerank_usage_counter,
)

__all__ = [
    # Models
    "Candidate",
    "PipelineTrace",
    "RerankTrace",
    "SearchMatch",
    "SearchResult",
    "VectorTrace",
    # Pipeline
    "DEFAULT_MIN_RERANK_SCORE",
    "MAX_TOP_K",
    "RetrievalPipeline",
    # Rerank
    "RerankChain",
    "RerankExecution",
    # Usage
    "InMemoryRerankUsageCounter",
    "RedisRerankUsageCounter",
    "RerankUsageCounter",
    "UsageSnapshot",
    "get_rerank_usage_counter",
]
