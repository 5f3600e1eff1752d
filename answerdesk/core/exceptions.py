"""
Core exception hierarchy for AnswerDesk.

Provides standardized exception types with categorization for retry logic.
All components should use these exceptions instead of generic Exception.

Index drift (a vector hit with no usable metadata and no canonical row) is
not an exception: it is logged as a warning and the candidate is dropped.
"""

from typing import Any, Optional


# =============================================================================
# Base Exceptions
# =============================================================================


class AnswerDeskError(Exception):
    """Base exception for all AnswerDesk errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class RetryableError(AnswerDeskError):
    """
    Transient errors that should be retried.

    Examples: Rate limits, timeouts, temporary network issues.
    """

    pass


class PermanentError(AnswerDeskError):
    """
    Errors that won't be fixed by retrying.

    Examples: Invalid input, missing records, missing configuration.
    """

    pass


# =============================================================================
# Knowledge Errors
# =============================================================================


class ValidationError(PermanentError):
    """Raised when input is rejected before it reaches any store."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        details = {"field": field} if field else None
        super().__init__(message, details)


class NotFoundError(PermanentError):
    """Raised when a knowledge record does not exist."""

    def __init__(self, record_id: str, message: Optional[str] = None):
        self.record_id = record_id
        super().__init__(message or "Knowledge record not found", {"record_id": record_id})


class InvalidTransitionError(PermanentError):
    """Raised when a sync status change is not allowed by the state machine."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Sync status cannot move from {current} to {requested}",
            {"current": current, "requested": requested},
        )


# =============================================================================
# Initialization & Configuration Errors
# =============================================================================


class InitializationError(PermanentError):
    """Raised when a critical component fails to initialize."""

    def __init__(self, component: str, message: str, details: Optional[dict[str, Any]] = None):
        self.component = component
        super().__init__(f"[{component}] {message}", details)


class ConfigurationError(PermanentError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        details = {"config_key": config_key} if config_key else None
        super().__init__(message, details)


class SearchUnavailableError(ConfigurationError):
    """Raised when search is requested but no vector index is configured."""

    def __init__(self, message: str = "Vector search is not available yet"):
        super().__init__(message, config_key="pinecone_api_key")


# =============================================================================
# Provider Errors
# =============================================================================


class ProviderError(RetryableError):
    """Base exception for failures of an external provider call."""

    def __init__(
        self,
        provider: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        self.provider = provider
        super().__init__(f"[{provider}] {message}", details)


class EmbeddingProviderError(ProviderError):
    """Raised when the embedding provider fails or returns a malformed response."""

    pass


class VectorIndexError(ProviderError):
    """Raised when a vector index operation fails."""

    pass


class VectorNotFoundError(VectorIndexError):
    """Raised when the vector index reports that the target does not exist."""

    pass


class RerankProviderError(ProviderError):
    """Raised when a rerank call fails."""

    pass
