"""Knowledge store factory with Supabase and in-memory implementations.

The knowledge store is the canonical repository of question/answer records.
It owns record identity, text and per-record sync status; it never talks to
the vector index.

Usage:
    # Get store (auto-selects Supabase or in-memory)
    store = get_knowledge_store(settings)

    record, replaced = await store.create(RecordInput.build(question, answer))
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field, replace
from typing import Optional, Protocol

import structlog

from answerdesk.config.settings import Settings
from answerdesk.core.exceptions import NotFoundError, ValidationError
from answerdesk.knowledge.models import (
    DEFAULT_LANGUAGE,
    KnowledgeRecord,
    Page,
    RecordInput,
    SyncStatus,
    question_key,
    utcnow,
)

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def clamp_page(page: Optional[int], page_size: Optional[int]) -> tuple[int, int]:
    """Clamp pagination to page >= 1 and page_size in [1, 100]."""
    page = max(1, page or 1)
    page_size = max(1, min(page_size or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE))
    return page, page_size


class KnowledgeStore(Protocol):
    """Protocol for canonical knowledge store implementations."""

    async def create(self, data: RecordInput) -> tuple[KnowledgeRecord, bool]: ...

    async def update(self, record_id: str, data: RecordInput) -> KnowledgeRecord: ...

    async def delete(self, record_id: str) -> bool: ...

    async def get(self, record_id: str) -> Optional[KnowledgeRecord]: ...

    async def find_by_ids(self, ids: list[str]) -> list[KnowledgeRecord]: ...

    async def list(
        self,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        search: Optional[str] = None,
    ) -> Page: ...

    async def all_records(self) -> list[KnowledgeRecord]: ...

    async def count(self) -> int: ...

    async def set_sync_status(
        self,
        record_id: str,
        status: SyncStatus,
        vector_ref: Optional[str] = None,
    ) -> KnowledgeRecord: ...

    async def delete_all(self) -> int: ...


@dataclass
class InMemoryKnowledgeStore:
    """
    In-memory knowledge store for development or when Supabase is not configured.

    WARNING: Does not persist across restarts and does not share
    state between multiple application instances.
    """

    _records: dict[str, KnowledgeRecord] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def _find_by_question(self, key: str) -> Optional[KnowledgeRecord]:
        for record in self._records.values():
            if record.question_key == key:
                return record
        return None

    async def create(self, data: RecordInput) -> tuple[KnowledgeRecord, bool]:
        """Insert a record, or replace the one whose question matches."""
        async with self._lock:
            now = utcnow()
            existing = self._find_by_question(question_key(data.question))

            if existing is not None:
                existing.question = data.question
                existing.answer = data.answer
                existing.language = data.language or DEFAULT_LANGUAGE
                existing.sync_status = SyncStatus.ensure_transition(
                    existing.sync_status, SyncStatus.PENDING
                )
                existing.updated_at = now
                return replace(existing), True

            record = KnowledgeRecord(
                id=str(uuid.uuid4()),
                question=data.question,
                answer=data.answer,
                language=data.language or DEFAULT_LANGUAGE,
                created_at=now,
                updated_at=now,
            )
            self._records[record.id] = record
            return replace(record), False

    async def update(self, record_id: str, data: RecordInput) -> KnowledgeRecord:
        async with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise NotFoundError(record_id)

            clash = self._find_by_question(question_key(data.question))
            if clash is not None and clash.id != record_id:
                raise ValidationError(
                    "Another record already uses this question", field="question"
                )

            record.question = data.question
            record.answer = data.answer
            record.language = data.language or record.language or DEFAULT_LANGUAGE
            record.sync_status = SyncStatus.ensure_transition(
                record.sync_status, SyncStatus.PENDING
            )
            record.updated_at = utcnow()
            return replace(record)

    async def delete(self, record_id: str) -> bool:
        async with self._lock:
            return self._records.pop(record_id, None) is not None

    async def get(self, record_id: str) -> Optional[KnowledgeRecord]:
        record = self._records.get(record_id)
        return replace(record) if record else None

    async def find_by_ids(self, ids: list[str]) -> list[KnowledgeRecord]:
        return [replace(self._records[i]) for i in dict.fromkeys(ids) if i in self._records]

    async def list(
        self,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        search: Optional[str] = None,
    ) -> Page:
        page, page_size = clamp_page(page, page_size)
        records = await self.all_records()

        term = (search or "").strip().casefold()
        if term:
            records = [
                r for r in records
                if term in r.question.casefold() or term in r.answer.casefold()
            ]

        offset = (page - 1) * page_size
        return Page(
            total=len(records),
            page=page,
            page_size=page_size,
            items=records[offset : offset + page_size],
        )

    async def all_records(self) -> list[KnowledgeRecord]:
        """All records, most recently updated first."""
        records = sorted(
            self._records.values(), key=lambda r: r.updated_at, reverse=True
        )
        return [replace(r) for r in records]

    async def count(self) -> int:
        return len(self._records)

    async def set_sync_status(
        self,
        record_id: str,
        status: SyncStatus,
        vector_ref: Optional[str] = None,
    ) -> KnowledgeRecord:
        async with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise NotFoundError(record_id)

            record.sync_status = SyncStatus.ensure_transition(record.sync_status, status)
            if vector_ref is not None:
                record.vector_ref = vector_ref
            return replace(record)

    async def delete_all(self) -> int:
        async with self._lock:
            deleted = len(self._records)
            self._records.clear()
            return deleted


def get_knowledge_store(settings: Optional[Settings] = None) -> KnowledgeStore:
    """
    Create the knowledge store for the given settings.

    Uses Supabase when configured, falls back to in-memory.

    Args:
        settings: Application settings (uses get_settings() if not provided)

    Returns:
        Knowledge store instance (Supabase or in-memory)
    """
    if settings is None:
        from answerdesk.config.settings import get_settings
        settings = get_settings()

    if settings.supabase_configured:
        from answerdesk.knowledge.supabase_store import SupabaseKnowledgeStore

        store = SupabaseKnowledgeStore(
            url=settings.supabase_url,
            key=settings.supabase_key.get_secret_value(),
            table=settings.supabase_table,
        )
        logger.info("knowledge_store_initialized", backend="supabase")
        return store

    logger.warning(
        "knowledge_store_initialized",
        backend="in_memory",
        message="Supabase not configured, records will not persist",
    )
    return InMemoryKnowledgeStore()
