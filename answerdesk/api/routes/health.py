"""Health check endpoints for the AnswerDesk API.

Reports the knowledge store, the vector index and the rerank provider.
Providers that are not configured report ``disabled`` and do not make the
service unhealthy.
"""

from datetime import datetime, timezone
import time
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException

from answerdesk.api.dependencies import get_dependency_container
from answerdesk.api.models import HealthCheckResponse, HealthStatus
from answerdesk.core.container import DependencyContainer

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Health"])

API_VERSION = "1.0.0"

# Track server start time for uptime calculation
_server_start_time: Optional[float] = None


def set_server_start_time() -> None:
    """Set the server start time. Called on application startup."""
    global _server_start_time
    _server_start_time = time.time()


def get_uptime_seconds() -> Optional[float]:
    """Get server uptime in seconds."""
    if _server_start_time is None:
        return None
    return time.time() - _server_start_time


async def check_store_health(container: DependencyContainer) -> HealthStatus:
    """Check knowledge store connectivity."""
    start_time = time.time()
    try:
        count = await container.store.count()
        latency = (time.time() - start_time) * 1000
        backend = "Supabase" if container.settings.supabase_configured else "in-memory store"
        return HealthStatus(
            status="healthy" if container.settings.supabase_configured else "degraded",
            latency_ms=round(latency, 2),
            message=f"{backend}: {count} records",
        )
    except Exception as e:
        latency = (time.time() - start_time) * 1000
        logger.error("knowledge_store_health_check_failed", error=str(e))
        return HealthStatus(
            status="unhealthy",
            latency_ms=round(latency, 2),
            message=f"Knowledge store check failed: {str(e)[:100]}",
        )


async def check_vector_index_health(container: DependencyContainer) -> HealthStatus:
    """Check Pinecone vector index connectivity."""
    index = container.vector_index
    if index is None:
        return HealthStatus(status="disabled", message="Vector index not configured")

    start_time = time.time()
    try:
        stats = await index.stats()
        latency = (time.time() - start_time) * 1000
        return HealthStatus(
            status="healthy",
            latency_ms=round(latency, 2),
            message=f"Connected to Pinecone: {stats.total_count} vectors",
        )
    except Exception as e:
        latency = (time.time() - start_time) * 1000
        logger.error("pinecone_health_check_failed", error=str(e))
        return HealthStatus(
            status="unhealthy",
            latency_ms=round(latency, 2),
            message=f"Pinecone connection failed: {str(e)[:100]}",
        )


def check_reranker_health(container: DependencyContainer) -> HealthStatus:
    if container.reranker is None:
        return HealthStatus(status="disabled", message="Reranking not configured")
    models = ", ".join(container.settings.rerank_models)
    return HealthStatus(status="healthy", message=f"Rerank models: {models}")


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health Check",
    description="Check the health status of the API and its dependencies.",
)
async def health_check(
    container: DependencyContainer = Depends(get_dependency_container),
) -> HealthCheckResponse:
    """
    Perform a health check of all system components.

    Returns the status of:
    - Knowledge store (Supabase or in-memory)
    - Vector index (Pinecone)
    - Reranker (Cohere)
    """
    services = {
        "knowledge_store": await check_store_health(container),
        "vector_index": await check_vector_index_health(container),
        "reranker": check_reranker_health(container),
    }

    statuses = [s.status for s in services.values() if s.status != "disabled"]
    if any(s == "unhealthy" for s in statuses):
        overall_status = "unhealthy"
    elif all(s == "healthy" for s in statuses) and len(statuses) == len(services):
        overall_status = "healthy"
    else:
        overall_status = "degraded"

    return HealthCheckResponse(
        status=overall_status,
        version=API_VERSION,
        timestamp=datetime.now(timezone.utc),
        services=services,
        uptime_seconds=get_uptime_seconds(),
    )


@router.get(
    "/health/live",
    summary="Liveness Check",
    description="Simple liveness check for container orchestration.",
)
async def liveness() -> dict:
    """Returns 200 if the service is alive."""
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get(
    "/health/ready",
    summary="Readiness Check",
    description="Check if the service is ready to accept traffic.",
)
async def readiness(
    container: DependencyContainer = Depends(get_dependency_container),
) -> dict:
    """Returns 200 only if the knowledge store is reachable."""
    store_status = await check_store_health(container)

    if store_status.status == "unhealthy":
        raise HTTPException(
            status_code=503,
            detail="Service not ready: knowledge store unavailable",
        )

    return {"status": "ready", "timestamp": datetime.now(timezone.utc).isoformat()}
