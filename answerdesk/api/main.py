"""AnswerDesk API - Main FastAPI Application.

This module provides the main FastAPI application for the AnswerDesk
knowledge base. It includes:
- CORS middleware configuration
- API versioning (/api/v1)
- Health check endpoints
- Question/answer management, search and admin endpoints
- Prometheus metrics at /metrics/prometheus

Usage:
    # Run with uvicorn
    uvicorn answerdesk.api.main:app --reload

    # Or run the entry point
    python main.py
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

import structlog
from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from answerdesk.api.models import ErrorResponse, ValidationErrorDetail, ValidationErrorResponse
from answerdesk.api.routes.admin import router as admin_router
from answerdesk.api.routes.health import API_VERSION, router as health_router, set_server_start_time
from answerdesk.api.routes.qa import router as qa_router
from answerdesk.api.routes.search import router as search_router
from answerdesk.config.settings import get_settings
from answerdesk.core.container import initialize_container, shutdown_container
from answerdesk.core.exceptions import (
    AnswerDeskError,
    ConfigurationError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from answerdesk.monitoring.metrics import metrics_endpoint

logger = structlog.get_logger(__name__)

# API metadata for OpenAPI documentation
API_TITLE = "AnswerDesk API"
API_DESCRIPTION = """
## Customer-support knowledge base with hybrid search

Question/answer pairs are stored canonically and mirrored into a vector index
in the background. Search combines vector similarity, reranking and a
confidence gate, and returns a pipeline trace explaining the ordering.

### Getting Started

1. **Add answers**: `POST /api/v1/qa`
2. **Search**: `GET /api/v1/search?query=...`
3. **Check sync state**: `GET /api/v1/metrics`
4. **Rebuild the index**: `POST /api/v1/admin/resync`
"""


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Build the dependency container
    - Shutdown: Cancel in-flight syncs, close connections
    """
    logger.info("application_starting")
    set_server_start_time()

    await initialize_container()
    logger.info("application_started")

    yield

    logger.info("application_stopping")
    await shutdown_container()
    logger.info("application_stopped")


# Create FastAPI application
app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    openapi_tags=[
        {"name": "Health", "description": "System health and status endpoints"},
        {"name": "Knowledge", "description": "Question/answer pair management"},
        {"name": "Search", "description": "Hybrid retrieval over the knowledge base"},
        {"name": "Admin", "description": "Statistics, full resync and teardown"},
    ],
)

# Configure CORS middleware (from settings)
_settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_allowed_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Accept"],
)


# =============================================================================
# Exception Handlers
# =============================================================================


def _status_for(exc: AnswerDeskError) -> int:
    if isinstance(exc, ValidationError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, ConfigurationError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, ProviderError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_name(exc: AnswerDeskError) -> str:
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, ConfigurationError):
        return "service_unavailable"
    if isinstance(exc, ProviderError):
        return "provider_error"
    return "internal_error"


@app.exception_handler(AnswerDeskError)
async def answerdesk_exception_handler(request: Request, exc: AnswerDeskError) -> JSONResponse:
    """Map domain errors to HTTP status codes."""
    status_code = _status_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "request_failed",
        path=request.url.path,
        method=request.method,
        status_code=status_code,
        error=exc.message,
        error_type=type(exc).__name__,
    )

    response = ErrorResponse(
        error=_error_name(exc),
        message=exc.message,
        details=exc.details or None,
        path=request.url.path,
    )
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with detailed response."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append(ValidationErrorDetail(
            field=field,
            message=error["msg"],
            value=error.get("input"),
        ))

    response = ValidationErrorResponse(
        errors=errors,
        timestamp=datetime.now(timezone.utc),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=response.model_dump(mode="json"),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
    )

    response = ErrorResponse(
        error="internal_server_error",
        message="An unexpected error occurred",
        details={"error": str(exc)} if get_settings().debug else None,
        path=request.url.path,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=response.model_dump(mode="json"),
    )


# =============================================================================
# Root Endpoints
# =============================================================================


@app.get("/", include_in_schema=False)
async def root() -> dict:
    """Root endpoint - points at the API documentation."""
    return {
        "name": API_TITLE,
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/health",
        "api": "/api/v1",
    }


# Prometheus scrape endpoint
app.add_route("/metrics/prometheus", metrics_endpoint, methods=["GET"], include_in_schema=False)


# =============================================================================
# Include Routers
# =============================================================================

# Health endpoints at root level
app.include_router(health_router)

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(qa_router)
api_v1_router.include_router(search_router)
api_v1_router.include_router(admin_router)

app.include_router(api_v1_router)
