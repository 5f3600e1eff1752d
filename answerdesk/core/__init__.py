"""
Core infrastructure modules for AnswerDesk.

Provides common utilities used across the application:
- exceptions: Standardized exception hierarchy
- tasks: Background sync task runner
- container: Dependency container wiring stores, providers and services
"""

from answerdesk.core.exceptions import (
    AnswerDeskError,
    RetryableError,
    PermanentError,
    ValidationError,
    NotFoundError,
    InvalidTransitionError,
    InitializationError,
    ConfigurationError,
    SearchUnavailableError,
    ProviderError,
    EmbeddingProviderError,
    VectorIndexError,
    VectorNotFoundError,
    RerankProviderError,
)

from answerdesk.core.tasks import SyncTaskRunner

from answerdesk.core.container import (
    DependencyContainer,
    get_container,
    set_container,
    initialize_container,
    shutdown_container,
)

__all__ = [
    # Exceptions
    "AnswerDeskError",
    "RetryableError",
    "PermanentError",
    "ValidationError",
    "NotFoundError",
    "InvalidTransitionError",
    "InitializationError",
    "ConfigurationError",
    "SearchUnavailableError",
    "ProviderError",
    "EmbeddingProviderError",
    "VectorIndexError",
    "VectorNotFoundError",
    "RerankProviderError",
    # Tasks
    "SyncTaskRunner",
    # Dependency Container
    "DependencyContainer",
    "get_container",
    "set_container",
    "initialize_container",
    "shutdown_container",
]
