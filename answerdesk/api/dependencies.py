"""FastAPI dependency injection providers.

Route handlers receive services from the global dependency container,
which tests replace with ``set_container``.
"""

from answerdesk.core.container import DependencyContainer, get_container
from answerdesk.knowledge.service import KnowledgeService
from answerdesk.retrieval.pipeline import RetrievalPipeline


def get_dependency_container() -> DependencyContainer:
    return get_container()


def get_knowledge_service() -> KnowledgeService:
    """Get the knowledge service from the global container."""
    return get_container().service


def get_retrieval_pipeline() -> RetrievalPipeline:
    """Get the retrieval pipeline from the global container."""
    return get_container().pipeline
