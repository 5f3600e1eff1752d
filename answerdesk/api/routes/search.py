"""Search endpoint for the AnswerDesk API."""

import structlog
from fastapi import APIRouter, Depends, Query

from answerdesk.api.dependencies import get_retrieval_pipeline
from answerdesk.api.models import ErrorResponse, SearchResponse
from answerdesk.config.settings import get_settings
from answerdesk.retrieval.pipeline import MAX_TOP_K, RetrievalPipeline

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Search"])


@router.get(
    "/search",
    response_model=SearchResponse,
    summary="Search the knowledge base",
    description=(
        "Embeds the query, fetches nearest vectors, reranks and applies the "
        "confidence gate. `pipeline` explains which stage produced the ordering."
    ),
    responses={
        422: {"model": ErrorResponse, "description": "Empty query or top_k out of range"},
        502: {"model": ErrorResponse, "description": "Embedding or vector provider failure"},
        503: {"model": ErrorResponse, "description": "Vector search is not configured"},
    },
)
async def search(
    query: str = Query(..., min_length=1, description="Free-text query"),
    top_k: int | None = Query(None, ge=1, le=MAX_TOP_K, description="Number of results"),
    pipeline: RetrievalPipeline = Depends(get_retrieval_pipeline),
) -> SearchResponse:
    top_k = top_k or get_settings().search_default_top_k
    result = await pipeline.search(query, top_k=top_k)
    return SearchResponse.model_validate(result.to_dict())
