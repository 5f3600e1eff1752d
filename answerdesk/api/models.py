"""Pydantic models for API requests and responses.

This module defines all the request/response schemas for the AnswerDesk API.
"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


SyncStatusType = Literal["pending", "ready", "failed", "skipped"]


# =============================================================================
# Knowledge Record Models
# =============================================================================


class QAInput(BaseModel):
    """Request model for creating or updating a question/answer pair."""

    question: str = Field(
        ...,
        min_length=1,
        description="Customer question",
        json_schema_extra={"example": "How do I reset my password?"},
    )
    answer: str = Field(
        ...,
        min_length=1,
        description="Answer shown to the customer",
        json_schema_extra={"example": "Click 'Forgot password' on the sign-in page."},
    )
    language: Optional[str] = Field(
        None,
        min_length=2,
        max_length=8,
        description="Language tag, defaults to 'ru'",
    )

    @field_validator("question", "answer")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class QAResponse(BaseModel):
    """Response model for a knowledge record."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Record identifier")
    question: str = Field(..., description="Question text")
    answer: str = Field(..., description="Answer text")
    language: str = Field(..., description="Language tag")
    sync_status: SyncStatusType = Field(..., description="Vector sync status")
    vector_ref: Optional[str] = Field(None, description="Vector id once synced")
    created_at: datetime = Field(..., description="When the record was created")
    updated_at: datetime = Field(..., description="Last content change")


class QAMutationResponse(BaseModel):
    """Response model for create/update."""

    record: QAResponse
    replaced: bool = Field(
        default=False,
        description="True if an existing record with the same question was replaced",
    )


class QAListResponse(BaseModel):
    total: int = Field(..., description="Total matching records")
    page: int = Field(..., description="Page number (1-based)")
    page_size: int = Field(..., description="Page size")
    items: list[QAResponse] = Field(..., description="Records on this page")


class QADeleteResponse(BaseModel):
    id: str = Field(..., description="Deleted record id")
    deleted: bool = Field(default=True)
    vector_removed: bool = Field(..., description="Whether a vector was removed")
    warning: Optional[str] = Field(None, description="Vector removal problem, if any")


# =============================================================================
# Search Models
# =============================================================================


class SearchMatchResponse(BaseModel):
    id: str
    score: float = Field(..., description="Rerank score if reranked, else vector score")
    vector_score: float
    rerank_score: Optional[float] = None
    question: str
    answer: str
    language: str


class VectorTraceResponse(BaseModel):
    index: Optional[str] = None
    namespace: str
    top_k: int


class RerankTraceResponse(BaseModel):
    model: Optional[str] = Field(None, description="Model whose ordering was used")
    applied: bool
    attempted_models: list[str] = Field(default_factory=list)
    fallback_reason: Optional[str] = Field(
        None, description="Why reranking was not applied, or warnings from skipped models"
    )
    rejected: bool = False
    top_score: Optional[float] = None
    threshold: float


class PipelineTraceResponse(BaseModel):
    vector: VectorTraceResponse
    rerank: RerankTraceResponse
    dropped_ids: list[str] = Field(default_factory=list)


class SearchResponse(BaseModel):
    """Response model for a search."""

    query: str
    top_k: int
    matches: list[SearchMatchResponse] = Field(..., description="Ranked answers")
    fallback_matches: list[SearchMatchResponse] = Field(
        default_factory=list,
        description="Vector-ordered candidates when the confidence gate rejected the rerank",
    )
    reranker_rejected: bool = False
    pipeline: PipelineTraceResponse


# =============================================================================
# Admin Models
# =============================================================================


class ResyncResponse(BaseModel):
    total: int
    synced: int
    skipped: int
    failed: int
    errors: list[str] = Field(default_factory=list, description="At most 50 error messages")


class DeleteAllResponse(BaseModel):
    deleted_count: int
    vector_failures: list[str] = Field(default_factory=list)


class RerankUsageResponse(BaseModel):
    date: str
    units_used: int
    daily_limit: Optional[int] = None
    remaining: Optional[int] = None


class StatsResponse(BaseModel):
    total_records: int
    vector_count: Optional[int] = None
    status_counts: dict[str, int]
    rerank_usage: Optional[RerankUsageResponse] = None


# =============================================================================
# Health Models
# =============================================================================


class HealthStatus(BaseModel):
    """Health status of a single service."""

    status: Literal["healthy", "unhealthy", "degraded", "disabled"] = Field(
        ..., description="Service health status"
    )
    latency_ms: Optional[float] = Field(None, description="Response latency in milliseconds")
    message: Optional[str] = Field(None, description="Additional status message")


class HealthCheckResponse(BaseModel):
    """Response model for health check endpoint."""

    status: Literal["healthy", "unhealthy", "degraded"] = Field(
        ..., description="Overall system health"
    )
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(..., description="Check timestamp")
    services: dict[str, HealthStatus] = Field(
        default_factory=dict,
        description="Health status of individual services",
    )
    uptime_seconds: Optional[float] = Field(None, description="Server uptime in seconds")


# =============================================================================
# Error Models
# =============================================================================


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error details")
    path: Optional[str] = Field(None, description="Request path that caused the error")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")


class ValidationErrorDetail(BaseModel):
    """Detail for a single validation error."""

    field: str = Field(..., description="Field that failed validation")
    message: str = Field(..., description="Validation error message")
    value: Optional[Any] = Field(None, description="Invalid value provided")


class ValidationErrorResponse(BaseModel):
    """Response model for validation errors."""

    error: str = Field(default="validation_error", description="Error type")
    message: str = Field(default="Request validation failed", description="Error message")
    errors: list[ValidationErrorDetail] = Field(..., description="List of validation errors")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
