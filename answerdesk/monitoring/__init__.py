"""
Monitoring and observability for AnswerDesk.

Provides Prometheus metrics for the knowledge store, vector sync and search.

Usage:
    from answerdesk.monitoring import track_search

    with track_search():
        result = await pipeline.search(query, top_k)
"""

from answerdesk.monitoring.metrics import (
    CONFIDENCE_GATE_REJECTIONS,
    KNOWLEDGE_STORE_OPERATIONS,
    RERANK_ATTEMPTS,
    SEARCH_DURATION,
    SYNC_ATTEMPTS,
    SYNC_OUTCOMES,
    metrics_endpoint,
    record_confidence_rejection,
    record_rerank_attempt,
    record_sync_attempt,
    record_sync_outcome,
    track_knowledge_store_operation,
    track_search,
)

__all__ = [
    "CONFIDENCE_GATE_REJECTIONS",
    "KNOWLEDGE_STORE_OPERATIONS",
    "RERANK_ATTEMPTS",
    "SEARCH_DURATION",
    "SYNC_ATTEMPTS",
    "SYNC_OUTCOMES",
    "metrics_endpoint",
    "record_confidence_rejection",
    "record_rerank_attempt",
    "record_sync_attempt",
    "record_sync_outcome",
    "track_knowledge_store_operation",
    "track_search",
]
