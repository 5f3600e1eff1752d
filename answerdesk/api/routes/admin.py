"""Administrative endpoints: stats, full resync and full teardown."""

from dataclasses import asdict

import structlog
from fastapi import APIRouter, Depends

from answerdesk.api.dependencies import get_knowledge_service
from answerdesk.api.models import (
    DeleteAllResponse,
    ErrorResponse,
    ResyncResponse,
    StatsResponse,
)
from answerdesk.knowledge.service import KnowledgeService

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Admin"])


@router.get(
    "/metrics",
    response_model=StatsResponse,
    summary="Knowledge base statistics",
    description="Record counts per sync status, vector count and rerank usage for today.",
)
async def stats(
    service: KnowledgeService = Depends(get_knowledge_service),
) -> StatsResponse:
    return StatsResponse.model_validate(await service.stats())


@router.post(
    "/admin/resync",
    response_model=ResyncResponse,
    summary="Rebuild the vector namespace",
    description=(
        "Clears the namespace and re-syncs every record, most recently updated "
        "first. Runs to completion before responding."
    ),
    responses={503: {"model": ErrorResponse, "description": "Vector index not configured"}},
)
async def resync_all(
    service: KnowledgeService = Depends(get_knowledge_service),
) -> ResyncResponse:
    logger.info("admin_resync_requested")
    report = await service.resync_all()
    return ResyncResponse.model_validate(asdict(report))


@router.delete(
    "/admin/qa",
    response_model=DeleteAllResponse,
    summary="Delete every record",
    description="Deletes all vectors (failures are listed) and all records.",
)
async def delete_all(
    service: KnowledgeService = Depends(get_knowledge_service),
) -> DeleteAllResponse:
    logger.warning("admin_delete_all_requested")
    report = await service.delete_all()
    return DeleteAllResponse.model_validate(asdict(report))
