"""
Supabase Knowledge Store.

Canonical storage of knowledge records in a Supabase (PostgreSQL) table.
The table carries a ``question_key`` column holding the trimmed, case-folded
question under a unique index, which backs the replace-on-duplicate rule.
See scripts/setup_supabase.py for the schema.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar

import structlog
from postgrest.exceptions import APIError
from supabase import Client, create_client

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
from answerdesk.knowledge.store import clamp_page
from answerdesk.monitoring.metrics import track_knowledge_store_operation

logger = structlog.get_logger(__name__)

T = TypeVar("T")

UNIQUE_VIOLATION = "23505"
# PostgREST caps IN filters by URL length; keep lookups in modest chunks.
ID_CHUNK_SIZE = 200
# PostgREST returns at most max-rows (1000 by default) per request.
ALL_RECORDS_PAGE_SIZE = 1000


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not value:
        return utcnow()
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _row_to_record(row: dict[str, Any]) -> KnowledgeRecord:
    """Convert a qa_pairs row to a KnowledgeRecord."""
    return KnowledgeRecord(
        id=row["id"],
        question=row["question"],
        answer=row["answer"],
        language=row.get("language") or DEFAULT_LANGUAGE,
        sync_status=SyncStatus(row.get("sync_status") or SyncStatus.PENDING.value),
        vector_ref=row.get("vector_ref"),
        created_at=_parse_timestamp(row.get("created_at")),
        updated_at=_parse_timestamp(row.get("updated_at")),
    )


def _escape_filter_value(term: str) -> str:
    return term.replace("\\", "\\\\").replace('"', '\\"')


class SupabaseKnowledgeStore:
    """
    Knowledge store backed by a Supabase table.

    The supabase client is synchronous, so every call runs in the default
    thread pool.

    Args:
        url: Supabase project URL
        key: Supabase service key
        table: Table name (default: "qa_pairs")
        client: Pre-built client, mainly for tests
    """

    STORE_NAME = "supabase"

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        table: str = "qa_pairs",
        client: Optional[Client] = None,
    ) -> None:
        self._url = url
        self._key = key
        self._table = table
        self._client = client

    @property
    def client(self) -> Client:
        """Get or create the Supabase client."""
        if self._client is None:
            self._client = create_client(self._url, self._key)
        return self._client

    def _query(self):
        return self.client.table(self._table)

    async def _run(self, operation: str, fn: Callable[[], T]) -> T:
        with track_knowledge_store_operation(self.STORE_NAME, operation):
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, fn)

    def _select_by_key_sync(self, key: str) -> Optional[dict[str, Any]]:
        result = self._query().select("*").eq("question_key", key).limit(1).execute()
        return result.data[0] if result.data else None

    def _select_by_id_sync(self, record_id: str) -> Optional[dict[str, Any]]:
        result = self._query().select("*").eq("id", record_id).limit(1).execute()
        return result.data[0] if result.data else None

    def _replace_sync(self, record_id: str, data: RecordInput) -> dict[str, Any]:
        result = (
            self._query()
            .update({
                "question": data.question,
                "question_key": question_key(data.question),
                "answer": data.answer,
                "language": data.language or DEFAULT_LANGUAGE,
                "sync_status": SyncStatus.PENDING.value,
                "updated_at": utcnow().isoformat(),
            })
            .eq("id", record_id)
            .execute()
        )
        return result.data[0]

    def _create_sync(self, data: RecordInput) -> tuple[dict[str, Any], bool]:
        key = question_key(data.question)
        existing = self._select_by_key_sync(key)
        if existing is not None:
            return self._replace_sync(existing["id"], data), True

        now = utcnow().isoformat()
        try:
            result = self._query().insert({
                "id": str(uuid.uuid4()),
                "question": data.question,
                "question_key": key,
                "answer": data.answer,
                "language": data.language or DEFAULT_LANGUAGE,
                "sync_status": SyncStatus.PENDING.value,
                "vector_ref": None,
                "created_at": now,
                "updated_at": now,
            }).execute()
        except APIError as e:
            # Lost a race with a concurrent create of the same question.
            if e.code != UNIQUE_VIOLATION:
                raise
            existing = self._select_by_key_sync(key)
            if existing is None:
                raise
            return self._replace_sync(existing["id"], data), True

        return result.data[0], False

    async def create(self, data: RecordInput) -> tuple[KnowledgeRecord, bool]:
        """Insert a record, or replace the one whose question matches."""
        row, replaced = await self._run("create", lambda: self._create_sync(data))
        return _row_to_record(row), replaced

    def _update_sync(self, record_id: str, data: RecordInput) -> dict[str, Any]:
        existing = self._select_by_id_sync(record_id)
        if existing is None:
            raise NotFoundError(record_id)

        clash = self._select_by_key_sync(question_key(data.question))
        if clash is not None and clash["id"] != record_id:
            raise ValidationError("Another record already uses this question", field="question")

        SyncStatus.ensure_transition(
            SyncStatus(existing.get("sync_status") or SyncStatus.PENDING.value),
            SyncStatus.PENDING,
        )
        result = (
            self._query()
            .update({
                "question": data.question,
                "question_key": question_key(data.question),
                "answer": data.answer,
                "language": data.language or existing.get("language") or DEFAULT_LANGUAGE,
                "sync_status": SyncStatus.PENDING.value,
                "updated_at": utcnow().isoformat(),
            })
            .eq("id", record_id)
            .execute()
        )
        if not result.data:
            raise NotFoundError(record_id)
        return result.data[0]

    async def update(self, record_id: str, data: RecordInput) -> KnowledgeRecord:
        row = await self._run("update", lambda: self._update_sync(record_id, data))
        return _row_to_record(row)

    async def delete(self, record_id: str) -> bool:
        result = await self._run(
            "delete",
            lambda: self._query().delete().eq("id", record_id).execute(),
        )
        return bool(result.data)

    async def get(self, record_id: str) -> Optional[KnowledgeRecord]:
        row = await self._run("get", lambda: self._select_by_id_sync(record_id))
        return _row_to_record(row) if row else None

    def _find_by_ids_sync(self, ids: list[str]) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for i in range(0, len(ids), ID_CHUNK_SIZE):
            chunk = ids[i : i + ID_CHUNK_SIZE]
            result = self._query().select("*").in_("id", chunk).execute()
            rows.extend(result.data or [])
        return rows

    async def find_by_ids(self, ids: list[str]) -> list[KnowledgeRecord]:
        unique_ids = list(dict.fromkeys(i for i in ids if i))
        if not unique_ids:
            return []
        rows = await self._run("find_by_ids", lambda: self._find_by_ids_sync(unique_ids))
        return [_row_to_record(row) for row in rows]

    def _list_sync(self, page: int, page_size: int, search: Optional[str]):
        query = self._query().select("*", count="exact")

        term = (search or "").strip()
        if term:
            pattern = _escape_filter_value(f"%{term}%")
            query = query.or_(f'question.ilike."{pattern}",answer.ilike."{pattern}"')

        offset = (page - 1) * page_size
        return (
            query.order("updated_at", desc=True)
            .range(offset, offset + page_size - 1)
            .execute()
        )

    async def list(
        self,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        search: Optional[str] = None,
    ) -> Page:
        page, page_size = clamp_page(page, page_size)
        result = await self._run("list", lambda: self._list_sync(page, page_size, search))
        items = [_row_to_record(row) for row in (result.data or [])]
        return Page(
            total=result.count if result.count is not None else len(items),
            page=page,
            page_size=page_size,
            items=items,
        )

    def _all_records_sync(self) -> list[dict]:
        rows: list[dict] = []
        offset = 0
        while True:
            result = (
                self._query()
                .select("*")
                .order("updated_at", desc=True)
                .order("id")
                .range(offset, offset + ALL_RECORDS_PAGE_SIZE - 1)
                .execute()
            )
            page = result.data or []
            rows.extend(page)
            if len(page) < ALL_RECORDS_PAGE_SIZE:
                return rows
            offset += ALL_RECORDS_PAGE_SIZE

    async def all_records(self) -> list[KnowledgeRecord]:
        """All records, most recently updated first."""
        rows = await self._run("all_records", self._all_records_sync)
        return [_row_to_record(row) for row in rows]

    async def count(self) -> int:
        result = await self._run(
            "count",
            lambda: self._query().select("id", count="exact").limit(1).execute(),
        )
        return result.count or 0

    def _set_sync_status_sync(
        self,
        record_id: str,
        status: SyncStatus,
        vector_ref: Optional[str],
    ) -> dict[str, Any]:
        existing = self._select_by_id_sync(record_id)
        if existing is None:
            raise NotFoundError(record_id)

        SyncStatus.ensure_transition(
            SyncStatus(existing.get("sync_status") or SyncStatus.PENDING.value),
            status,
        )
        payload: dict[str, Any] = {"sync_status": status.value}
        if vector_ref is not None:
            payload["vector_ref"] = vector_ref

        result = self._query().update(payload).eq("id", record_id).execute()
        if not result.data:
            raise NotFoundError(record_id)
        return result.data[0]

    async def set_sync_status(
        self,
        record_id: str,
        status: SyncStatus,
        vector_ref: Optional[str] = None,
    ) -> KnowledgeRecord:
        row = await self._run(
            "set_sync_status",
            lambda: self._set_sync_status_sync(record_id, status, vector_ref),
        )
        return _row_to_record(row)

    async def delete_all(self) -> int:
        # PostgREST refuses unfiltered deletes.
        result = await self._run(
            "delete_all",
            lambda: self._query().delete().neq("id", "").execute(),
        )
        return len(result.data or [])
