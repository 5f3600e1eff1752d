"""Knowledge record endpoints for the AnswerDesk API.

CRUD over question/answer pairs. Mutations return as soon as the canonical
write succeeds; vector sync runs in the background and shows up in
``sync_status`` on later reads.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query

from answerdesk.api.dependencies import get_knowledge_service
from answerdesk.api.models import (
    ErrorResponse,
    QADeleteResponse,
    QAInput,
    QAListResponse,
    QAMutationResponse,
    QAResponse,
)
from answerdesk.knowledge.models import KnowledgeRecord
from answerdesk.knowledge.service import KnowledgeService
from answerdesk.knowledge.store import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/qa", tags=["Knowledge"])


def _to_response(record: KnowledgeRecord) -> QAResponse:
    return QAResponse(
        id=record.id,
        question=record.question,
        answer=record.answer,
        language=record.language,
        sync_status=record.sync_status.value,
        vector_ref=record.vector_ref,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


@router.get(
    "",
    response_model=QAListResponse,
    summary="List question/answer pairs",
    description="Paginated listing, most recently updated first, with optional substring search.",
)
async def list_records(
    page: int = Query(1, ge=1, description="Page number (1-based)"),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Page size"),
    search: Optional[str] = Query(None, description="Case-insensitive substring filter"),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> QAListResponse:
    result = await service.list(page=page, page_size=page_size, search=search)
    return QAListResponse(
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        items=[_to_response(record) for record in result.items],
    )


@router.post(
    "",
    response_model=QAMutationResponse,
    summary="Create a question/answer pair",
    description=(
        "Creates a record. If a record with the same question (ignoring case and "
        "surrounding whitespace) exists it is replaced and `replaced` is true."
    ),
    responses={422: {"model": ErrorResponse, "description": "Invalid request data"}},
)
async def create_record(
    body: QAInput,
    service: KnowledgeService = Depends(get_knowledge_service),
) -> QAMutationResponse:
    result = await service.create(body.question, body.answer, body.language)
    return QAMutationResponse(record=_to_response(result.record), replaced=result.replaced)


@router.get(
    "/{record_id}",
    response_model=QAResponse,
    summary="Get a question/answer pair",
    responses={404: {"model": ErrorResponse, "description": "Record not found"}},
)
async def get_record(
    record_id: str,
    service: KnowledgeService = Depends(get_knowledge_service),
) -> QAResponse:
    return _to_response(await service.get(record_id))


@router.put(
    "/{record_id}",
    response_model=QAMutationResponse,
    summary="Update a question/answer pair",
    responses={
        404: {"model": ErrorResponse, "description": "Record not found"},
        422: {"model": ErrorResponse, "description": "Invalid data or duplicate question"},
    },
)
async def update_record(
    record_id: str,
    body: QAInput,
    service: KnowledgeService = Depends(get_knowledge_service),
) -> QAMutationResponse:
    result = await service.update(record_id, body.question, body.answer, body.language)
    return QAMutationResponse(record=_to_response(result.record))


@router.delete(
    "/{record_id}",
    response_model=QADeleteResponse,
    summary="Delete a question/answer pair",
    description="Removes the vector first; a vector failure is reported as a warning.",
    responses={404: {"model": ErrorResponse, "description": "Record not found"}},
)
async def delete_record(
    record_id: str,
    service: KnowledgeService = Depends(get_knowledge_service),
) -> QADeleteResponse:
    result = await service.delete(record_id)
    return QADeleteResponse(
        id=result.record_id,
        vector_removed=result.vector_removed,
        warning=result.vector_warning,
    )


@router.post(
    "/{record_id}/resync",
    response_model=QAResponse,
    summary="Resync one record",
    description="Re-embeds and re-upserts the record now and returns its new sync status.",
    responses={
        404: {"model": ErrorResponse, "description": "Record not found"},
        502: {"model": ErrorResponse, "description": "Provider failure"},
    },
)
async def resync_record(
    record_id: str,
    service: KnowledgeService = Depends(get_knowledge_service),
) -> QAResponse:
    return _to_response(await service.resync(record_id))
