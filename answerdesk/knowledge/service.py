"""
Knowledge Service.

Mutation facade over the knowledge store and the sync engine. Creates and
updates return as soon as the canonical write succeeds; the vector sync runs
in the background and its outcome is visible through ``sync_status``.

Usage:
    service = KnowledgeService(store, engine, runner)

    result = await service.create("How do I reset my password?", "Click ...")
    print(result.record.id, result.replaced)
"""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from answerdesk.core.exceptions import NotFoundError, ValidationError
from answerdesk.core.tasks import SyncTaskRunner
from answerdesk.knowledge.models import KnowledgeRecord, Page, RecordInput, SyncStatus
from answerdesk.knowledge.store import MAX_PAGE_SIZE, KnowledgeStore
from answerdesk.providers.vector_index import VectorIndex
from answerdesk.retrieval.usage import RerankUsageCounter
from answerdesk.sync.engine import DeleteAllReport, ResyncReport, SyncEngine

logger = structlog.get_logger(__name__)


@dataclass
class MutationResult:
    record: KnowledgeRecord
    replaced: bool = False
    sync_task: Optional[asyncio.Task] = None


@dataclass
class DeleteResult:
    record_id: str
    vector_removed: bool
    vector_warning: Optional[str] = None


def _validate_page(page: Optional[int], page_size: Optional[int]) -> None:
    if page is not None and page < 1:
        raise ValidationError("page must be >= 1", field="page")
    if page_size is not None and not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValidationError(
            f"page_size must be between 1 and {MAX_PAGE_SIZE}", field="page_size"
        )


class KnowledgeService:
    """
    CRUD over knowledge records with background vector sync.

    Args:
        store: Canonical knowledge store
        engine: Sync engine
        runner: Background task runner for post-mutation syncs
        vector_index: Used only for stats; None when not configured
        usage_counter: Rerank usage counter, reported in stats
    """

    def __init__(
        self,
        store: KnowledgeStore,
        engine: SyncEngine,
        runner: SyncTaskRunner,
        vector_index: Optional[VectorIndex] = None,
        usage_counter: Optional[RerankUsageCounter] = None,
    ) -> None:
        self._store = store
        self._engine = engine
        self._runner = runner
        self._index = vector_index
        self._usage = usage_counter

    def _schedule_sync(self, record: KnowledgeRecord) -> Optional[asyncio.Task]:
        if not self._engine.is_configured:
            return None
        return self._runner.submit(
            f"sync:{record.id}",
            self._engine.sync_one_with_retry(record),
        )

    async def create(
        self,
        question: Optional[str],
        answer: Optional[str],
        language: Optional[str] = None,
    ) -> MutationResult:
        """
        Create a record, or replace the one with the same normalized question.

        Raises:
            ValidationError: If question or answer is empty.
        """
        data = RecordInput.build(question, answer, language)
        record, replaced = await self._store.create(data)
        logger.info("knowledge_record_saved", record_id=record.id, replaced=replaced)
        return MutationResult(record=record, replaced=replaced, sync_task=self._schedule_sync(record))

    async def update(
        self,
        record_id: str,
        question: Optional[str],
        answer: Optional[str],
        language: Optional[str] = None,
    ) -> MutationResult:
        """
        Edit a record and schedule a resync.

        Raises:
            ValidationError: Empty text, or the question collides with another record.
            NotFoundError: If the record does not exist.
        """
        data = RecordInput.build(question, answer, language)
        record = await self._store.update(record_id, data)
        logger.info("knowledge_record_updated", record_id=record.id)
        return MutationResult(record=record, sync_task=self._schedule_sync(record))

    async def get(self, record_id: str) -> KnowledgeRecord:
        record = await self._store.get(record_id)
        if record is None:
            raise NotFoundError(record_id)
        return record

    async def list(
        self,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        search: Optional[str] = None,
    ) -> Page:
        _validate_page(page, page_size)
        return await self._store.list(page=page, page_size=page_size, search=search)

    async def delete(self, record_id: str) -> DeleteResult:
        """
        Remove the record's vector, then the record.

        A vector removal failure becomes a warning on the result; the
        canonical row is deleted regardless.

        Raises:
            NotFoundError: If the record does not exist.
        """
        record = await self.get(record_id)
        removal = await self._engine.remove_vector(record)

        if not await self._store.delete(record_id):
            raise NotFoundError(record_id)

        logger.info(
            "knowledge_record_deleted",
            record_id=record_id,
            vector_removed=removal.removed,
            vector_skipped=removal.skipped,
        )
        return DeleteResult(
            record_id=record_id,
            vector_removed=removal.removed,
            vector_warning=removal.error,
        )

    async def resync(self, record_id: str) -> KnowledgeRecord:
        """
        Sync one record now and return it with its new status.

        Raises:
            NotFoundError: If the record does not exist.
            ProviderError: If every attempt failed.
        """
        record = await self.get(record_id)
        return await self._engine.sync_one_with_retry(record)

    async def resync_all(self) -> ResyncReport:
        return await self._engine.resync_all()

    async def delete_all(self) -> DeleteAllReport:
        return await self._engine.delete_all()

    async def stats(self) -> dict[str, Any]:
        """Record counts per sync status, vector count and rerank usage."""
        records = await self._store.all_records()
        status_counts = Counter(record.sync_status.value for record in records)

        vector_count = None
        if self._index is not None:
            try:
                index_stats = await self._index.stats()
                vector_count = index_stats.namespaces.get(
                    self._engine.namespace, index_stats.total_count
                )
            except Exception as e:
                logger.warning("vector_stats_unavailable", error=str(e))

        rerank_usage = None
        if self._usage is not None:
            try:
                rerank_usage = (await self._usage.snapshot()).to_dict()
            except Exception as e:
                logger.warning("rerank_usage_unavailable", error=str(e))

        return {
            "total_records": len(records),
            "vector_count": vector_count,
            "status_counts": {status.value: status_counts.get(status.value, 0) for status in SyncStatus},
            "rerank_usage": rerank_usage,
        }
