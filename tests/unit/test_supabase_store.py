"""Unit tests for the Supabase knowledge store against a mocked query builder."""

from types import SimpleNamespace

import pytest
from unittest.mock import MagicMock, patch
from postgrest.exceptions import APIError

from answerdesk.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from answerdesk.knowledge.models import RecordInput, SyncStatus
from answerdesk.knowledge.supabase_store import SupabaseKnowledgeStore

BUILDER_METHODS = ["select", "eq", "neq", "limit", "insert", "update", "delete", "in_", "or_", "order", "range"]


def _row(id="id-1", question="How do I reset my password?", status="pending", **extra):
    row = {
        "id": id,
        "question": question,
        "answer": "Click forgot password.",
        "language": "en",
        "sync_status": status,
        "vector_ref": None,
        "created_at": "2024-03-01T10:00:00Z",
        "updated_at": "2024-03-01T10:00:00+00:00",
    }
    row.update(extra)
    return row


def _result(data, count=None):
    return SimpleNamespace(data=data, count=count)


@pytest.fixture
def builder():
    """Fluent PostgREST builder; every chained call returns the builder itself."""
    builder = MagicMock()
    for name in BUILDER_METHODS:
        getattr(builder, name).return_value = builder
    return builder


@pytest.fixture
def store(builder):
    client = MagicMock()
    client.table.return_value = builder
    return SupabaseKnowledgeStore(client=client, table="qa_pairs")


class TestCreate:
    """Test create and replace-on-duplicate."""

    @pytest.mark.asyncio
    async def test_inserts_new_question(self, store, builder):
        builder.execute.side_effect = [_result([]), _result([_row()])]

        record, replaced = await store.create(RecordInput.build("How do I reset my password?", "Click forgot password."))

        assert replaced is False
        assert record.created_at.tzinfo is not None
        inserted = builder.insert.call_args.args[0]
        assert inserted["question_key"] == "how do i reset my password?"
        assert inserted["sync_status"] == "pending"

    @pytest.mark.asyncio
    async def test_replaces_existing_question(self, store, builder):
        builder.execute.side_effect = [_result([_row(status="ready")]), _result([_row()])]

        record, replaced = await store.create(RecordInput.build("HOW do I reset my password? ", "New"))

        assert replaced is True
        assert record.id == "id-1"
        builder.insert.assert_not_called()
        assert builder.update.call_args.args[0]["sync_status"] == "pending"

    @pytest.mark.asyncio
    async def test_unique_violation_race_becomes_replace(self, store, builder):
        """Losing an insert race to the same question replaces the winner."""
        builder.execute.side_effect = [
            _result([]),
            APIError({"code": "23505", "message": "duplicate key value"}),
            _result([_row(id="winner")]),
            _result([_row(id="winner")]),
        ]

        record, replaced = await store.create(RecordInput.build("How do I reset my password?", "a"))

        assert replaced is True
        assert record.id == "winner"

    @pytest.mark.asyncio
    async def test_other_api_errors_propagate(self, store, builder):
        builder.execute.side_effect = [_result([]), APIError({"code": "42501", "message": "denied"})]

        with pytest.raises(APIError):
            await store.create(RecordInput.build("Q?", "a"))


class TestUpdateAndStatus:
    """Test update and sync status writes."""

    @pytest.mark.asyncio
    async def test_update_missing(self, store, builder):
        builder.execute.side_effect = [_result([])]

        with pytest.raises(NotFoundError):
            await store.update("id-1", RecordInput.build("Q?", "a"))

    @pytest.mark.asyncio
    async def test_update_clash(self, store, builder):
        builder.execute.side_effect = [_result([_row(id="id-1")]), _result([_row(id="id-2", question="Q?")])]

        with pytest.raises(ValidationError):
            await store.update("id-1", RecordInput.build("q?", "a"))

    @pytest.mark.asyncio
    async def test_set_sync_status(self, store, builder):
        builder.execute.side_effect = [
            _result([_row()]),
            _result([_row(status="ready", vector_ref="id-1")]),
        ]

        record = await store.set_sync_status("id-1", SyncStatus.READY, vector_ref="id-1")

        assert record.sync_status is SyncStatus.READY
        builder.update.assert_called_once_with({"sync_status": "ready", "vector_ref": "id-1"})

    @pytest.mark.asyncio
    async def test_set_sync_status_rejects_illegal_transition(self, store, builder):
        builder.execute.side_effect = [_result([_row(status="ready")])]

        with pytest.raises(InvalidTransitionError):
            await store.set_sync_status("id-1", SyncStatus.SKIPPED)


class TestReads:
    """Test list and lookups."""

    @pytest.mark.asyncio
    async def test_list_with_search(self, store, builder):
        builder.execute.return_value = _result([_row()], count=41)

        page = await store.list(page=3, page_size=20, search="password")

        assert page.total == 41
        assert page.page == 3
        builder.or_.assert_called_once_with('question.ilike."%password%",answer.ilike."%password%"')
        builder.range.assert_called_once_with(40, 59)
        builder.order.assert_called_once_with("updated_at", desc=True)

    @pytest.mark.asyncio
    async def test_find_by_ids_deduplicates(self, store, builder):
        builder.execute.return_value = _result([_row(id="a")])

        records = await store.find_by_ids(["a", "a", ""])

        builder.in_.assert_called_once_with("id", ["a"])
        assert [r.id for r in records] == ["a"]

    @pytest.mark.asyncio
    async def test_find_by_ids_empty(self, store, builder):
        assert await store.find_by_ids([]) == []
        builder.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_all_counts_rows(self, store, builder):
        builder.execute.return_value = _result([_row(id="a"), _row(id="b")])

        assert await store.delete_all() == 2
        builder.neq.assert_called_once_with("id", "")

    @pytest.mark.asyncio
    async def test_all_records_reads_every_page(self, store, builder):
        """Pages are requested until a short page comes back."""
        builder.execute.side_effect = [
            _result([_row(id="a"), _row(id="b")]),
            _result([_row(id="c"), _row(id="d")]),
            _result([_row(id="e")]),
        ]

        with patch("answerdesk.knowledge.supabase_store.ALL_RECORDS_PAGE_SIZE", 2):
            records = await store.all_records()

        assert [r.id for r in records] == ["a", "b", "c", "d", "e"]
        assert [c.args for c in builder.range.call_args_list] == [(0, 1), (2, 3), (4, 5)]

    @pytest.mark.asyncio
    async def test_all_records_stops_on_empty_page(self, store, builder):
        builder.execute.side_effect = [_result([_row(id="a"), _row(id="b")]), _result([])]

        with patch("answerdesk.knowledge.supabase_store.ALL_RECORDS_PAGE_SIZE", 2):
            records = await store.all_records()

        assert len(records) == 2
        assert builder.execute.call_count == 2
