"""
Dependency Injection Container for AnswerDesk.

Provides centralized management of service dependencies with lazy initialization
and proper lifecycle management.

Usage:
    # At application startup
    container = DependencyContainer()
    await container.initialize()

    # Pass to components that need dependencies
    result = await container.pipeline.search("reset password", top_k=5)

    # At shutdown
    await container.shutdown()
"""

from __future__ import annotations

import structlog
from typing import TYPE_CHECKING, Optional

from answerdesk.config.settings import Settings, get_settings
from answerdesk.core.exceptions import InitializationError
from answerdesk.core.tasks import SyncTaskRunner

if TYPE_CHECKING:
    from answerdesk.knowledge.service import KnowledgeService
    from answerdesk.knowledge.store import KnowledgeStore
    from answerdesk.providers.embeddings import EmbeddingProvider
    from answerdesk.providers.reranker import RerankProvider
    from answerdesk.providers.vector_index import VectorIndex
    from answerdesk.retrieval.pipeline import RetrievalPipeline
    from answerdesk.retrieval.usage import RerankUsageCounter
    from answerdesk.sync.engine import SyncEngine

logger = structlog.get_logger(__name__)

_UNSET = object()


class DependencyContainer:
    """
    Central container for all service dependencies.

    Services are created on first access and cached. Any of them can be
    passed in directly, which is how tests swap in fakes.

    Example:
        container = DependencyContainer()
        await container.initialize()  # Connects the usage counter

        service = container.service
        pipeline = container.pipeline

        # Cleanup
        await container.shutdown()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: "KnowledgeStore | None" = None,
        embeddings: "EmbeddingProvider | None" = None,
        vector_index: "VectorIndex | None | object" = _UNSET,
        reranker: "RerankProvider | None | object" = _UNSET,
        usage_counter: "RerankUsageCounter | None" = None,
    ):
        """
        Initialize the container.

        Args:
            settings: Application settings. Defaults to get_settings().
            store: Knowledge store override.
            embeddings: Embedding provider override.
            vector_index: Vector index override; pass None to disable search.
            reranker: Rerank provider override; pass None to disable reranking.
            usage_counter: Rerank usage counter override.
        """
        self._settings = settings or get_settings()
        self._store = store
        self._embeddings = embeddings
        self._vector_index = vector_index
        self._reranker = reranker
        self._usage_counter = usage_counter
        self._engine: SyncEngine | None = None
        self._pipeline: RetrievalPipeline | None = None
        self._service: KnowledgeService | None = None
        self._task_runner = SyncTaskRunner()
        self._initialized = False

        logger.info("dependency_container_created")

    @property
    def settings(self) -> Settings:
        """Get application settings."""
        return self._settings

    @property
    def task_runner(self) -> SyncTaskRunner:
        return self._task_runner

    @property
    def store(self) -> "KnowledgeStore":
        """
        Get knowledge store (lazy initialization).

        Raises:
            InitializationError: If the store cannot be created.
        """
        if self._store is None:
            try:
                from answerdesk.knowledge.store import get_knowledge_store

                self._store = get_knowledge_store(self._settings)
            except Exception as e:
                logger.error("knowledge_store_creation_failed", error=str(e))
                raise InitializationError(
                    "KnowledgeStore",
                    f"Failed to create knowledge store: {e}",
                    {"table": self._settings.supabase_table},
                )
        return self._store

    @property
    def embeddings(self) -> "EmbeddingProvider":
        """
        Get embeddings service (lazy initialization).

        Raises:
            InitializationError: If embeddings service cannot be created.
        """
        if self._embeddings is None:
            try:
                from answerdesk.providers.embeddings import get_embeddings_service

                self._embeddings = get_embeddings_service(self._settings)
                logger.info("embeddings_service_created")
            except Exception as e:
                logger.error("embeddings_service_creation_failed", error=str(e))
                raise InitializationError(
                    "EmbeddingProvider",
                    f"Failed to create embeddings service: {e}",
                )
        return self._embeddings

    @property
    def vector_index(self) -> Optional["VectorIndex"]:
        """Get vector index client, or None when Pinecone is not configured."""
        if self._vector_index is _UNSET:
            try:
                from answerdesk.providers.vector_index import get_vector_index

                self._vector_index = get_vector_index(self._settings)
            except Exception as e:
                logger.error("pinecone_client_creation_failed", error=str(e))
                raise InitializationError(
                    "PineconeVectorIndex",
                    f"Failed to create Pinecone client: {e}",
                    {"index": self._settings.pinecone_index_name},
                )
        return self._vector_index

    @property
    def reranker(self) -> Optional["RerankProvider"]:
        """Get rerank provider, or None when reranking is not configured."""
        if self._reranker is _UNSET:
            from answerdesk.providers.reranker import get_reranker

            self._reranker = get_reranker(self._settings)
        return self._reranker

    @property
    def usage_counter(self) -> "RerankUsageCounter":
        """
        Get rerank usage counter.

        In-memory until initialize() has had a chance to connect Redis.
        """
        if self._usage_counter is None:
            from answerdesk.retrieval.usage import InMemoryRerankUsageCounter

            self._usage_counter = InMemoryRerankUsageCounter(
                daily_limit=self._settings.rerank_daily_limit
            )
        return self._usage_counter

    @property
    def sync_engine(self) -> "SyncEngine":
        if self._engine is None:
            from answerdesk.sync.engine import SyncEngine

            self._engine = SyncEngine(
                store=self.store,
                embeddings=self.embeddings,
                vector_index=self.vector_index,
                namespace=self._settings.pinecone_namespace,
                max_attempts=self._settings.sync_max_attempts,
                retry_delay=self._settings.sync_retry_delay_seconds,
            )
        return self._engine

    @property
    def pipeline(self) -> "RetrievalPipeline":
        if self._pipeline is None:
            from answerdesk.retrieval.pipeline import RetrievalPipeline
            from answerdesk.retrieval.rerank import RerankChain

            self._pipeline = RetrievalPipeline(
                store=self.store,
                embeddings=self.embeddings,
                vector_index=self.vector_index,
                rerank_chain=RerankChain(
                    reranker=self.reranker,
                    models=self._settings.rerank_models,
                    usage=self.usage_counter,
                ),
                namespace=self._settings.pinecone_namespace,
                min_rerank_score=self._settings.rerank_min_score,
                max_top_k=self._settings.search_max_top_k,
            )
        return self._pipeline

    @property
    def service(self) -> "KnowledgeService":
        if self._service is None:
            from answerdesk.knowledge.service import KnowledgeService

            self._service = KnowledgeService(
                store=self.store,
                engine=self.sync_engine,
                runner=self._task_runner,
                vector_index=self.vector_index,
                usage_counter=self.usage_counter,
            )
        return self._service

    async def initialize(self) -> None:
        """
        Initialize core services.

        Call this at application startup. Missing provider credentials are
        not an error; the affected features run in degraded mode.

        Raises:
            InitializationError: If any core service fails to initialize.
        """
        if self._initialized:
            logger.warning("container_already_initialized")
            return

        logger.info("container_initializing")

        try:
            if self._usage_counter is None:
                from answerdesk.retrieval.usage import get_rerank_usage_counter

                self._usage_counter = await get_rerank_usage_counter(self._settings)

            # Touch the lazy services so configuration problems surface at startup
            _ = self.service
            _ = self.pipeline

            self._initialized = True
            logger.info(
                "container_initialized",
                vector_index=self.vector_index is not None,
                reranker=self.reranker is not None,
            )

        except InitializationError:
            raise
        except Exception as e:
            logger.error(
                "container_initialization_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise InitializationError(
                "DependencyContainer",
                f"Failed to initialize dependencies: {e}",
            )

    async def shutdown(self) -> None:
        """
        Shutdown all services gracefully.

        Cancels in-flight background syncs; unsynced records stay pending and
        are picked up by the next edit or a full resync.
        """
        logger.info("container_shutting_down")

        await self._task_runner.shutdown()

        disconnect = getattr(self._usage_counter, "disconnect", None)
        if disconnect is not None:
            try:
                await disconnect()
            except Exception as e:
                logger.error("usage_counter_close_error", error=str(e))

        self._initialized = False
        logger.info("container_shutdown_complete")

    @property
    def is_initialized(self) -> bool:
        """Check if container has been initialized."""
        return self._initialized


# Global container instance for convenience
# Prefer passing container explicitly via dependency injection
_container: DependencyContainer | None = None


def get_container() -> DependencyContainer:
    """
    Get the global container instance.

    Creates one if it doesn't exist.
    """
    global _container
    if _container is None:
        _container = DependencyContainer()
    return _container


def set_container(container: DependencyContainer | None) -> None:
    """Replace the global container (tests)."""
    global _container
    _container = container


async def initialize_container() -> DependencyContainer:
    """Initialize and return the global container."""
    container = get_container()
    await container.initialize()
    return container


async def shutdown_container() -> None:
    """Shutdown the global container."""
    global _container
    if _container is not None:
        await _container.shutdown()
        _container = None
