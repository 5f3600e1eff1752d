"""
Pinecone Vector Index Client.

Stores ``(id, vector, metadata)`` triples for knowledge records inside a
namespace and answers top-K similarity queries. Metadata is a denormalized
snapshot of the record and may be missing or stale; the canonical store is
the source of truth.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, TypeVar

import structlog
from pinecone import Pinecone
from pinecone.exceptions import NotFoundException

from answerdesk.config.settings import Settings
from answerdesk.core.exceptions import VectorIndexError, VectorNotFoundError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Pinecone accepts at most 1000 ids per delete request.
DELETE_BATCH_SIZE = 1000


@dataclass
class VectorMatch:
    """A single similarity hit."""

    id: str
    score: float
    metadata: Optional[dict[str, Any]] = None


@dataclass
class IndexStats:
    total_count: int
    dimension: Optional[int] = None
    namespaces: dict[str, int] = field(default_factory=dict)


class VectorIndex(Protocol):
    """Protocol for vector index implementations."""

    @property
    def index_name(self) -> Optional[str]: ...

    async def upsert(
        self,
        namespace: str,
        id: str,
        vector: list[float],
        metadata: dict[str, Any],
    ) -> None: ...

    async def query(self, namespace: str, vector: list[float], top_k: int) -> list[VectorMatch]: ...

    async def delete_one(self, namespace: str, id: str) -> None: ...

    async def delete_many(self, namespace: str, ids: list[str]) -> None: ...

    async def delete_all(self, namespace: str) -> None: ...

    async def stats(self) -> IndexStats: ...


def _is_not_found(error: BaseException) -> bool:
    if isinstance(error, NotFoundException):
        return True
    status = getattr(error, "status", None) or getattr(error, "status_code", None)
    return status == 404


class PineconeVectorIndex:
    """
    Pinecone vector index client.

    Usage:
        index = PineconeVectorIndex(api_key="...", index_name="answerdesk")

        await index.upsert("qa", record_id, vector, {"question": ..., "answer": ...})
        matches = await index.query("qa", query_vector, top_k=5)
        await index.delete_one("qa", record_id)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        index_name: Optional[str] = None,
        host: Optional[str] = None,
        index: Any = None,
    ) -> None:
        """
        Initialize the Pinecone client.

        Args:
            api_key: Pinecone API key.
            index_name: Index name.
            host: Optional index host; skips the describe_index lookup.
            index: Pre-built index handle, mainly for tests.
        """
        self._api_key = api_key
        self._index_name = index_name
        self._host = host
        self._client: Pinecone | None = None
        self._index: Any = index

    @property
    def index_name(self) -> Optional[str]:
        return self._index_name

    @property
    def index(self) -> Any:
        """Get the Pinecone index handle, connecting on first use."""
        if self._index is None:
            if self._client is None:
                self._client = Pinecone(api_key=self._api_key)
                logger.info("pinecone_client_initialized")
            if self._host:
                self._index = self._client.Index(name=self._index_name, host=self._host)
            else:
                self._index = self._client.Index(self._index_name)
            logger.info("pinecone_index_connected", index_name=self._index_name)
        return self._index

    async def _call(self, operation: str, fn: Callable[[], T]) -> T:
        """Run a blocking Pinecone call in the thread pool and map its errors."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn)
        except Exception as e:
            if _is_not_found(e):
                raise VectorNotFoundError(
                    "pinecone",
                    f"{operation}: target not found",
                    {"index": self._index_name},
                ) from e
            raise VectorIndexError(
                "pinecone",
                f"{operation} failed: {e}",
                {"index": self._index_name},
            ) from e

    async def upsert(
        self,
        namespace: str,
        id: str,
        vector: list[float],
        metadata: dict[str, Any],
    ) -> None:
        await self._call(
            "upsert",
            lambda: self.index.upsert(
                vectors=[{"id": id, "values": vector, "metadata": metadata}],
                namespace=namespace,
            ),
        )
        logger.debug("pinecone_upsert_completed", id=id, namespace=namespace)

    async def query(self, namespace: str, vector: list[float], top_k: int) -> list[VectorMatch]:
        """
        Query the namespace for similar vectors.

        Returns:
            Matches in the order Pinecone returns them (descending similarity).
        """
        result = await self._call(
            "query",
            lambda: self.index.query(
                vector=vector,
                top_k=top_k,
                namespace=namespace,
                include_metadata=True,
                include_values=False,
            ),
        )

        matches = []
        for match in result.matches or []:
            if not match.id:
                continue
            matches.append(
                VectorMatch(
                    id=match.id,
                    score=float(match.score or 0.0),
                    metadata=dict(match.metadata) if match.metadata else None,
                )
            )

        logger.debug("pinecone_query_completed", top_k=top_k, matches=len(matches))
        return matches

    async def delete_one(self, namespace: str, id: str) -> None:
        await self._call(
            "delete",
            lambda: self.index.delete(ids=[id], namespace=namespace),
        )
        logger.info("pinecone_delete_ids", count=1, namespace=namespace)

    async def delete_many(self, namespace: str, ids: list[str]) -> None:
        """Delete ids in batches; the first failing batch raises."""
        for i in range(0, len(ids), DELETE_BATCH_SIZE):
            batch = ids[i : i + DELETE_BATCH_SIZE]
            await self._call(
                "delete",
                lambda: self.index.delete(ids=batch, namespace=namespace),
            )
        logger.info("pinecone_delete_ids", count=len(ids), namespace=namespace)

    async def delete_all(self, namespace: str) -> None:
        await self._call(
            "delete_all",
            lambda: self.index.delete(delete_all=True, namespace=namespace),
        )
        logger.info("pinecone_delete_all", namespace=namespace)

    async def stats(self) -> IndexStats:
        """Get index statistics."""
        stats = await self._call("describe_index_stats", lambda: self.index.describe_index_stats())
        namespaces = {
            name: getattr(summary, "vector_count", 0)
            for name, summary in (stats.namespaces or {}).items()
        }
        return IndexStats(
            total_count=stats.total_vector_count or 0,
            dimension=stats.dimension,
            namespaces=namespaces,
        )


def get_vector_index(settings: Optional[Settings] = None) -> Optional[PineconeVectorIndex]:
    """Create the vector index client, or None when Pinecone is not configured."""
    if settings is None:
        from answerdesk.config.settings import get_settings
        settings = get_settings()

    if not settings.pinecone_configured:
        logger.warning("vector_index_not_configured")
        return None

    return PineconeVectorIndex(
        api_key=settings.pinecone_api_key.get_secret_value(),
        index_name=settings.pinecone_index_name,
        host=settings.pinecone_host,
    )
