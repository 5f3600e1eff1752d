"""
Prometheus metrics for AnswerDesk observability.

Provides standardized metrics for the knowledge store, the sync engine and
the retrieval pipeline.

Usage:
    from answerdesk.monitoring.metrics import track_search

    with track_search():
        result = await pipeline.search(query, top_k)

    # Or manually
    SYNC_OUTCOMES.labels(outcome="ready").inc()
"""

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from starlette.responses import Response


# =============================================================================
# Metric Definitions
# =============================================================================

# Knowledge store metrics
KNOWLEDGE_STORE_OPERATIONS = Counter(
    "answerdesk_knowledge_store_operations_total",
    "Total knowledge store operations",
    ["store", "operation", "status"],
)

KNOWLEDGE_STORE_LATENCY = Histogram(
    "answerdesk_knowledge_store_latency_seconds",
    "Latency of knowledge store operations",
    ["store", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# Sync engine metrics
SYNC_ATTEMPTS = Counter(
    "answerdesk_sync_attempts_total",
    "Vector sync attempts, including retries",
    ["status"],
)

SYNC_OUTCOMES = Counter(
    "answerdesk_sync_outcomes_total",
    "Final sync status written per record sync",
    ["outcome"],
)

# Retrieval metrics
SEARCH_DURATION = Histogram(
    "answerdesk_search_duration_seconds",
    "Duration of search requests in seconds",
    ["status"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

RERANK_ATTEMPTS = Counter(
    "answerdesk_rerank_attempts_total",
    "Rerank calls per model and outcome",
    ["model", "status"],
)

CONFIDENCE_GATE_REJECTIONS = Counter(
    "answerdesk_confidence_gate_rejections_total",
    "Searches whose top rerank score fell below the confidence threshold",
)


# =============================================================================
# Tracking Context Managers
# =============================================================================


@contextmanager
def track_knowledge_store_operation(
    store: str,
    operation: str,
) -> Generator[None, None, None]:
    """
    Context manager to track knowledge store operations.

    Usage:
        with track_knowledge_store_operation("supabase", "create"):
            result = await run(...)
    """
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time
        KNOWLEDGE_STORE_OPERATIONS.labels(
            store=store,
            operation=operation,
            status=status,
        ).inc()
        KNOWLEDGE_STORE_LATENCY.labels(
            store=store,
            operation=operation,
        ).observe(duration)


@contextmanager
def track_search() -> Generator[None, None, None]:
    """Context manager to track search duration and status."""
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        SEARCH_DURATION.labels(status=status).observe(time.perf_counter() - start_time)


def record_sync_attempt(status: str) -> None:
    """Record a single sync attempt ("success" or "error")."""
    SYNC_ATTEMPTS.labels(status=status).inc()


def record_sync_outcome(outcome: str) -> None:
    """Record the final status of a record sync."""
    SYNC_OUTCOMES.labels(outcome=outcome).inc()


def record_rerank_attempt(model: str, status: str) -> None:
    """Record a rerank call ("success", "empty" or "error")."""
    RERANK_ATTEMPTS.labels(model=model, status=status).inc()


def record_confidence_rejection() -> None:
    CONFIDENCE_GATE_REJECTIONS.inc()


# =============================================================================
# Metrics Endpoint
# =============================================================================


async def metrics_endpoint(request) -> Response:
    """Prometheus metrics endpoint handler."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
