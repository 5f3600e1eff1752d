"""Unit tests for the vector sync engine."""

import pytest
from unittest.mock import patch

from answerdesk.core.exceptions import (
    ConfigurationError,
    EmbeddingProviderError,
    NotFoundError,
    VectorIndexError,
    VectorNotFoundError,
)
from answerdesk.knowledge.models import RecordInput, SyncStatus
from answerdesk.providers.embeddings import EmbeddingIntent
from answerdesk.sync.engine import MAX_REPORTED_ERRORS, SyncEngine

from tests.conftest import FakeEmbeddings


async def _create(store, question="How do I reset my password?", answer="Click forgot password."):
    record, _ = await store.create(RecordInput.build(question, answer))
    return record


class TestSyncOne:
    """Test single-record sync."""

    @pytest.mark.asyncio
    async def test_success_marks_ready(self, engine, store, embeddings, vector_index):
        """A successful upsert sets ready and vector_ref = id."""
        record = await _create(store)

        synced = await engine.sync_one(record)

        assert synced.sync_status is SyncStatus.READY
        assert synced.vector_ref == record.id
        entry = vector_index.namespaces["qa"][record.id]
        assert entry["metadata"] == {
            "question": "How do I reset my password?",
            "answer": "Click forgot password.",
            "language": "ru",
        }
        assert embeddings.calls == [
            ("How do I reset my password?\n\nClick forgot password.", EmbeddingIntent.DOCUMENT)
        ]

    @pytest.mark.asyncio
    async def test_empty_vector_marks_skipped(self, store, vector_index):
        """An all-zero vector skips the record without error."""
        engine = SyncEngine(store, FakeEmbeddings(vector=[0.0] * 16), vector_index, retry_delay=0)
        record = await _create(store)

        synced = await engine.sync_one(record)

        assert synced.sync_status is SyncStatus.SKIPPED
        assert vector_index.upserts == []

    @pytest.mark.asyncio
    async def test_failure_marks_failed_and_raises(self, engine, store, vector_index):
        """Provider errors set failed and propagate."""
        vector_index.upsert_error = VectorIndexError("pinecone", "upsert failed")
        record = await _create(store)

        with pytest.raises(VectorIndexError):
            await engine.sync_one(record)

        assert (await store.get(record.id)).sync_status is SyncStatus.FAILED

    @pytest.mark.asyncio
    async def test_unconfigured_index_leaves_pending(self, store, embeddings):
        """Without a vector index the record stays pending."""
        engine = SyncEngine(store, embeddings, None)
        record = await _create(store)

        synced = await engine.sync_one(record)

        assert synced.sync_status is SyncStatus.PENDING
        assert embeddings.calls == []

    @pytest.mark.asyncio
    async def test_resync_of_failed_record(self, engine, store):
        """A failed record passes back through pending and becomes ready."""
        record = await _create(store)
        failed = await store.set_sync_status(record.id, SyncStatus.FAILED)

        synced = await engine.sync_one(failed)

        assert synced.sync_status is SyncStatus.READY

    @pytest.mark.asyncio
    async def test_embeds_latest_text(self, engine, store, embeddings):
        """A stale snapshot still syncs the current canonical text."""
        stale = await _create(store)
        await store.update(stale.id, RecordInput.build(stale.question, "Updated answer"))

        await engine.sync_one(stale)

        assert embeddings.calls[-1][0].endswith("Updated answer")


class TestSyncOneWithRetry:
    """Test retry with linear backoff."""

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, store, vector_index):
        embeddings = FakeEmbeddings(fail_times=2)
        engine = SyncEngine(store, embeddings, vector_index, max_attempts=3, retry_delay=0)
        record = await _create(store)

        synced = await engine.sync_one_with_retry(record)

        assert synced.sync_status is SyncStatus.READY
        assert len(embeddings.calls) == 3

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self, store, vector_index):
        embeddings = FakeEmbeddings(fail_times=10)
        engine = SyncEngine(store, embeddings, vector_index, max_attempts=3, retry_delay=0)
        record = await _create(store)

        with pytest.raises(EmbeddingProviderError):
            await engine.sync_one_with_retry(record)

        assert len(embeddings.calls) == 3
        assert (await store.get(record.id)).sync_status is SyncStatus.FAILED

    @pytest.mark.asyncio
    async def test_waits_grow_linearly(self, store, vector_index):
        """Attempt N waits N * delay before the next attempt."""
        embeddings = FakeEmbeddings(fail_times=2)
        engine = SyncEngine(store, embeddings, vector_index, max_attempts=3, retry_delay=0.01)
        record = await _create(store)

        with patch("answerdesk.sync.engine.logger") as mock_logger:
            await engine.sync_one_with_retry(record)

        waits = [
            call.kwargs["wait"]
            for call in mock_logger.warning.call_args_list
            if call.args and call.args[0] == "sync_attempt_failed_retrying"
        ]
        assert waits == pytest.approx([0.01, 0.02])

    @pytest.mark.asyncio
    async def test_aborts_when_record_deleted(self, store, vector_index):
        """A record deleted between attempts stops the retry with NotFoundError."""
        record = await _create(store)

        class DeletingEmbeddings(FakeEmbeddings):
            async def embed(self, text, intent):
                self.calls.append((text, intent))
                await store.delete(record.id)
                raise EmbeddingProviderError("fake", "timeout")

        embeddings = DeletingEmbeddings()
        engine = SyncEngine(store, embeddings, vector_index, max_attempts=3, retry_delay=0)

        with pytest.raises(NotFoundError):
            await engine.sync_one_with_retry(record)

        assert len(embeddings.calls) == 1


class TestRemoveVector:
    """Test single vector removal."""

    @pytest.mark.asyncio
    async def test_removes_vector(self, engine, store, vector_index):
        record = await engine.sync_one(await _create(store))

        result = await engine.remove_vector(record)

        assert result.removed is True
        assert record.id not in vector_index.ids()

    @pytest.mark.asyncio
    async def test_not_configured_is_skipped(self, store, embeddings):
        engine = SyncEngine(store, embeddings, None)

        result = await engine.remove_vector(await _create(store))

        assert result.skipped is True
        assert result.removed is False

    @pytest.mark.asyncio
    async def test_not_found_is_success(self, engine, store, vector_index):
        """An index 'not found' reply is not an error."""
        vector_index.delete_error = VectorNotFoundError("pinecone", "delete: target not found")

        result = await engine.remove_vector(await _create(store))

        assert result.error is None
        assert result.removed is False

    @pytest.mark.asyncio
    async def test_other_errors_reported(self, engine, store, vector_index):
        vector_index.delete_error = VectorIndexError("pinecone", "connection reset")

        result = await engine.remove_vector(await _create(store))

        assert result.removed is False
        assert "connection reset" in result.error


class TestBulkOperations:
    """Test resync and teardown."""

    @pytest.mark.asyncio
    async def test_delete_all_collects_vector_failures(self, engine, store, vector_index):
        """A failed bulk vector delete is reported, rows are deleted anyway."""
        ids = [(await _create(store, f"Question {i}?", "a")).id for i in range(10)]
        vector_index.delete_many_error = VectorIndexError("pinecone", "unavailable")

        report = await engine.delete_all()

        assert report.deleted_count == 10
        assert sorted(report.vector_failures) == sorted(ids)
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_delete_all_removes_vectors(self, engine, store, vector_index):
        for i in range(3):
            await engine.sync_one(await _create(store, f"Question {i}?", "a"))

        report = await engine.delete_all()

        assert report.deleted_count == 3
        assert report.vector_failures == []
        assert vector_index.ids() == set()
        assert len(vector_index.delete_many_calls) == 1

    @pytest.mark.asyncio
    async def test_resync_all_rebuilds_namespace(self, store, vector_index):
        """Resync clears stale vectors and reports per-record outcomes."""
        class SelectiveEmbeddings(FakeEmbeddings):
            async def embed(self, text, intent):
                if text.startswith("Broken"):
                    raise EmbeddingProviderError("fake", "rejected")
                if text.startswith("Empty"):
                    return await FakeEmbeddings(vector=[]).embed(text, intent)
                return await super().embed(text, intent)

        engine = SyncEngine(store, SelectiveEmbeddings(), vector_index, max_attempts=2, retry_delay=0)
        await vector_index.upsert("qa", "orphan", [1.0] * 16, {"question": "x", "answer": "y"})
        good = await _create(store, "Good?", "yes")
        await _create(store, "Broken?", "no")
        await _create(store, "Empty?", "no")

        report = await engine.resync_all()

        assert report.total == 3
        assert report.synced == 1
        assert report.failed == 1
        assert report.skipped == 1
        assert len(report.errors) == 1
        assert vector_index.ids() == {good.id}

    @pytest.mark.asyncio
    async def test_resync_all_caps_errors(self, store, vector_index):
        engine = SyncEngine(store, FakeEmbeddings(fail_times=10_000), vector_index, max_attempts=1, retry_delay=0)
        for i in range(MAX_REPORTED_ERRORS + 5):
            await _create(store, f"Question {i}?", "a")

        report = await engine.resync_all()

        assert report.failed == MAX_REPORTED_ERRORS + 5
        assert len(report.errors) == MAX_REPORTED_ERRORS

    @pytest.mark.asyncio
    async def test_resync_all_requires_index(self, store, embeddings):
        engine = SyncEngine(store, embeddings, None)

        with pytest.raises(ConfigurationError):
            await engine.resync_all()

    @pytest.mark.asyncio
    async def test_delete_all_vectors_tolerates_empty_namespace(self, engine, vector_index):
        vector_index.delete_all_error = VectorNotFoundError("pinecone", "namespace not found")

        await engine.delete_all_vectors()
