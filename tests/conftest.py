"""
Pytest Configuration and Shared Fixtures.

This module provides fakes for the three external providers and wired-up
components built on them:

- store: Fresh in-memory knowledge store
- embeddings: FakeEmbeddings (deterministic vectors, scripted failures)
- vector_index: FakeVectorIndex (in-memory namespaces, cosine scoring)
- reranker: FakeReranker (scripted per-model responses)
- engine / runner / service / usage_counter: real components over the fakes
"""

import math
from datetime import date
from typing import Any, Optional, Union

import pytest

from answerdesk.core.exceptions import EmbeddingProviderError
from answerdesk.core.tasks import SyncTaskRunner
from answerdesk.knowledge.service import KnowledgeService
from answerdesk.knowledge.store import InMemoryKnowledgeStore
from answerdesk.providers.embeddings import EmbeddingIntent, EmbeddingResult, pseudo_embedding
from answerdesk.providers.reranker import RerankItem, RerankResponse
from answerdesk.providers.vector_index import IndexStats, VectorMatch
from answerdesk.retrieval.usage import InMemoryRerankUsageCounter
from answerdesk.sync.engine import SyncEngine


# =============================================================================
# Provider Fakes
# =============================================================================


class FakeEmbeddings:
    """Embedding provider returning pseudo-embeddings, optionally failing first."""

    def __init__(
        self,
        dimension: int = 16,
        vector: Optional[list[float]] = None,
        fail_times: int = 0,
        error: Optional[Exception] = None,
    ):
        self.dimension = dimension
        self.vector = vector
        self.fail_times = fail_times
        self.error = error
        self.calls: list[tuple[str, EmbeddingIntent]] = []

    async def embed(self, text: str, intent: EmbeddingIntent) -> EmbeddingResult:
        self.calls.append((text, intent))
        if self.fail_times > 0:
            self.fail_times -= 1
            raise self.error or EmbeddingProviderError("fake", "embedding service unavailable")
        vector = list(self.vector) if self.vector is not None else pseudo_embedding(text, self.dimension)
        return EmbeddingResult(vector=vector, dimension=len(vector), model_name="fake-embed")


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeVectorIndex:
    """In-memory vector index keyed by namespace."""

    def __init__(self, index_name: str = "test-index"):
        self._index_name = index_name
        self.namespaces: dict[str, dict[str, dict[str, Any]]] = {}
        self.query_results: Optional[list[VectorMatch]] = None
        self.upsert_error: Optional[Exception] = None
        self.query_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None
        self.delete_many_error: Optional[Exception] = None
        self.delete_all_error: Optional[Exception] = None
        self.upserts: list[str] = []
        self.delete_many_calls: list[list[str]] = []

    @property
    def index_name(self) -> str:
        return self._index_name

    def ids(self, namespace: str = "qa") -> set[str]:
        return set(self.namespaces.get(namespace, {}))

    async def upsert(self, namespace: str, id: str, vector: list[float], metadata: dict[str, Any]) -> None:
        if self.upsert_error is not None:
            raise self.upsert_error
        self.upserts.append(id)
        self.namespaces.setdefault(namespace, {})[id] = {"vector": vector, "metadata": dict(metadata)}

    async def query(self, namespace: str, vector: list[float], top_k: int) -> list[VectorMatch]:
        if self.query_error is not None:
            raise self.query_error
        if self.query_results is not None:
            return list(self.query_results[:top_k])
        entries = self.namespaces.get(namespace, {})
        matches = [
            VectorMatch(id=id, score=_cosine(vector, entry["vector"]), metadata=dict(entry["metadata"]))
            for id, entry in entries.items()
        ]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:top_k]

    async def delete_one(self, namespace: str, id: str) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        self.namespaces.get(namespace, {}).pop(id, None)

    async def delete_many(self, namespace: str, ids: list[str]) -> None:
        self.delete_many_calls.append(list(ids))
        if self.delete_many_error is not None:
            raise self.delete_many_error
        for id in ids:
            self.namespaces.get(namespace, {}).pop(id, None)

    async def delete_all(self, namespace: str) -> None:
        if self.delete_all_error is not None:
            raise self.delete_all_error
        self.namespaces.pop(namespace, None)

    async def stats(self) -> IndexStats:
        counts = {name: len(entries) for name, entries in self.namespaces.items()}
        return IndexStats(total_count=sum(counts.values()), dimension=16, namespaces=counts)


class FakeReranker:
    """
    Rerank provider scripted per model.

    A model maps to a RerankResponse, an exception to raise, or a list of
    scores (one per document, in document order).
    """

    def __init__(self, responses: Optional[dict[str, Union[RerankResponse, Exception, list[float]]]] = None):
        self.responses = responses or {}
        self.calls: list[tuple[str, str, list[str]]] = []

    async def rerank(self, model: str, query: str, documents: list[str]) -> RerankResponse:
        self.calls.append((model, query, list(documents)))
        response = self.responses.get(model)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, RerankResponse):
            return response
        scores = response if response is not None else [1.0 - i * 0.1 for i in range(len(documents))]
        items = [RerankItem(index=i, score=s) for i, s in enumerate(scores[: len(documents)])]
        items.sort(key=lambda item: item.score, reverse=True)
        return RerankResponse(results=items, usage_units=1)


class FixedClock:
    """Injectable day source for usage counter tests."""

    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store() -> InMemoryKnowledgeStore:
    """Fresh in-memory knowledge store."""
    return InMemoryKnowledgeStore()


@pytest.fixture
def embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def vector_index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture
def reranker() -> FakeReranker:
    return FakeReranker()


@pytest.fixture
def usage_counter() -> InMemoryRerankUsageCounter:
    return InMemoryRerankUsageCounter(daily_limit=1000)


@pytest.fixture
def engine(store, embeddings, vector_index) -> SyncEngine:
    """Sync engine over the fakes, with no backoff delay."""
    return SyncEngine(
        store=store,
        embeddings=embeddings,
        vector_index=vector_index,
        namespace="qa",
        max_attempts=3,
        retry_delay=0,
    )


@pytest.fixture
async def runner():
    """Task runner that cancels leftovers after the test."""
    task_runner = SyncTaskRunner()
    yield task_runner
    await task_runner.shutdown()


@pytest.fixture
def service(store, engine, runner, vector_index, usage_counter) -> KnowledgeService:
    return KnowledgeService(
        store=store,
        engine=engine,
        runner=runner,
        vector_index=vector_index,
        usage_counter=usage_counter,
    )
