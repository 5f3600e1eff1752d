"""
Vector Sync Engine.

Keeps the vector index eventually consistent with the canonical knowledge
store. Per record:

    pending --(embed + upsert ok)----> ready
    pending --(empty/invalid vector)--> skipped
    pending --(any other failure)-----> failed
    ready/failed/skipped --(edit)-----> pending

The engine only ever writes ``sync_status`` and ``vector_ref``. A sync of a
record that is not pending first moves it back to pending (manual resync).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from answerdesk.core.exceptions import (
    ConfigurationError,
    InvalidTransitionError,
    NotFoundError,
    VectorNotFoundError,
)
from answerdesk.knowledge.models import KnowledgeRecord, SyncStatus
from answerdesk.knowledge.store import KnowledgeStore
from answerdesk.monitoring.metrics import record_sync_attempt, record_sync_outcome
from answerdesk.providers.embeddings import (
    EmbeddingIntent,
    EmbeddingProvider,
    is_usable_vector,
)
from answerdesk.providers.vector_index import DELETE_BATCH_SIZE, VectorIndex

logger = structlog.get_logger(__name__)

MAX_REPORTED_ERRORS = 50


@dataclass
class VectorRemoval:
    """Outcome of removing one record's vector."""

    removed: bool
    skipped: bool = False
    error: Optional[str] = None


@dataclass
class ResyncReport:
    total: int = 0
    synced: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class DeleteAllReport:
    deleted_count: int
    vector_failures: list[str] = field(default_factory=list)


def _should_retry(exception: BaseException) -> bool:
    # A record that vanished will not come back; cancellation must propagate.
    return isinstance(exception, Exception) and not isinstance(exception, NotFoundError)


def _retry_logger(record_id: str) -> Callable[[RetryCallState], None]:
    def log_retry(retry_state: RetryCallState) -> None:
        logger.warning(
            "sync_attempt_failed_retrying",
            record_id=record_id,
            attempt=retry_state.attempt_number,
            wait=retry_state.next_action.sleep if retry_state.next_action else 0,
            error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        )

    return log_retry


class SyncEngine:
    """
    Drives the knowledge store -> vector index consistency protocol.

    Args:
        store: Canonical knowledge store
        embeddings: Embedding provider used with document intent
        vector_index: Vector index, or None when not configured
        namespace: Vector namespace holding record vectors
        max_attempts: Attempts per record in sync_one_with_retry
        retry_delay: Linear backoff unit in seconds (attempt N waits N * delay)
    """

    def __init__(
        self,
        store: KnowledgeStore,
        embeddings: EmbeddingProvider,
        vector_index: Optional[VectorIndex],
        namespace: str = "qa",
        max_attempts: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        self._store = store
        self._embeddings = embeddings
        self._index = vector_index
        self._namespace = namespace
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay

    @property
    def is_configured(self) -> bool:
        return self._index is not None

    @property
    def namespace(self) -> str:
        return self._namespace

    @staticmethod
    def _metadata(record: KnowledgeRecord) -> dict[str, Any]:
        return {
            "question": record.question,
            "answer": record.answer,
            "language": record.language,
        }

    async def _mark_failed(self, record_id: str, error: Exception) -> None:
        try:
            await self._store.set_sync_status(record_id, SyncStatus.FAILED)
        except NotFoundError:
            logger.warning("sync_failed_record_missing", record_id=record_id, error=str(error))
        except InvalidTransitionError as e:
            # A concurrent sync already settled the record.
            logger.warning(
                "sync_failed_status_not_recorded",
                record_id=record_id,
                error=str(error),
                reason=str(e),
            )

    async def sync_one(self, record: KnowledgeRecord) -> KnowledgeRecord:
        """
        Embed one record and upsert its vector.

        Returns:
            The record with its new sync status. Unchanged (pending) when no
            vector index is configured.

        Raises:
            Exception: Whatever the embedding or vector call raised, after the
                record has been marked failed.
        """
        if self._index is None:
            logger.info("sync_deferred_no_vector_index", record_id=record.id)
            return record

        # Always embed the latest canonical text, not the caller's snapshot.
        latest = await self._store.get(record.id)
        if latest is None:
            raise NotFoundError(record.id)
        record = latest

        if record.sync_status is not SyncStatus.PENDING:
            record = await self._store.set_sync_status(record.id, SyncStatus.PENDING)

        try:
            result = await self._embeddings.embed(record.embedding_text, EmbeddingIntent.DOCUMENT)
            if not is_usable_vector(result.vector):
                record_sync_attempt("success")
                logger.info(
                    "sync_skipped_empty_vector",
                    record_id=record.id,
                    model=result.model_name,
                )
                return await self._store.set_sync_status(record.id, SyncStatus.SKIPPED)

            await self._index.upsert(
                self._namespace,
                record.id,
                result.vector,
                self._metadata(record),
            )
        except Exception as e:
            record_sync_attempt("error")
            await self._mark_failed(record.id, e)
            raise

        record_sync_attempt("success")
        try:
            return await self._store.set_sync_status(
                record.id, SyncStatus.READY, vector_ref=record.id
            )
        except NotFoundError:
            # Deleted while we were upserting; do not leave an orphan behind.
            await self.remove_vector(record)
            raise

    async def sync_one_with_retry(
        self,
        record: KnowledgeRecord,
        max_attempts: Optional[int] = None,
    ) -> KnowledgeRecord:
        """
        Sync a record, retrying with linear backoff.

        The record is re-read before each retry so concurrent edits are picked
        up; if it has been deleted the sync stops with NotFoundError.

        Raises:
            NotFoundError: If the record disappeared between attempts.
            Exception: The last attempt's error once attempts are exhausted.
        """
        attempts = max_attempts or self._max_attempts
        current = record
        synced = record

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_incrementing(start=self._retry_delay, increment=self._retry_delay),
                retry=retry_if_exception(_should_retry),
                before_sleep=_retry_logger(record.id),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        current = await self._store.get(record.id)
                        if current is None:
                            raise NotFoundError(
                                record.id, "Knowledge record disappeared before sync retry"
                            )
                    synced = await self.sync_one(current)
        except NotFoundError:
            logger.warning("sync_aborted_record_missing", record_id=record.id)
            raise
        except Exception as e:
            record_sync_outcome(SyncStatus.FAILED.value)
            logger.error(
                "sync_exhausted",
                record_id=record.id,
                attempts=attempts,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        record_sync_outcome(synced.sync_status.value)
        return synced

    async def remove_vector(self, record: KnowledgeRecord) -> VectorRemoval:
        """
        Remove a record's vector.

        An index reply of "not found" counts as success (already gone).
        Other failures are reported in the result rather than raised.
        """
        if self._index is None:
            return VectorRemoval(removed=False, skipped=True)

        vector_id = record.effective_vector_ref
        try:
            await self._index.delete_one(self._namespace, vector_id)
        except VectorNotFoundError:
            logger.info("vector_already_absent", record_id=record.id, vector_id=vector_id)
            return VectorRemoval(removed=False)
        except Exception as e:
            logger.warning(
                "vector_removal_failed",
                record_id=record.id,
                vector_id=vector_id,
                error=str(e),
            )
            return VectorRemoval(removed=False, error=str(e))

        return VectorRemoval(removed=True)

    async def delete_all_vectors(self, namespace: Optional[str] = None) -> None:
        """Clear a whole namespace; an already-empty namespace is success."""
        if self._index is None:
            raise ConfigurationError("Vector index is not configured", config_key="pinecone_api_key")

        namespace = namespace or self._namespace
        try:
            await self._index.delete_all(namespace)
        except VectorNotFoundError:
            logger.info("vector_namespace_already_empty", namespace=namespace)

    async def resync_all(self) -> ResyncReport:
        """
        Rebuild the namespace from the canonical store.

        Clears the namespace, then syncs every record, most recently updated
        first. Records are independent, so a failure only affects its own
        counters.
        """
        await self.delete_all_vectors()

        records = await self._store.all_records()
        report = ResyncReport(total=len(records))
        logger.info("resync_started", total=report.total, namespace=self._namespace)

        for record in records:
            try:
                synced = await self.sync_one_with_retry(record)
            except Exception as e:
                report.failed += 1
                if len(report.errors) < MAX_REPORTED_ERRORS:
                    report.errors.append(f"{record.id}: {e}")
                continue

            if synced.sync_status is SyncStatus.SKIPPED:
                report.skipped += 1
            else:
                report.synced += 1

        logger.info(
            "resync_completed",
            total=report.total,
            synced=report.synced,
            skipped=report.skipped,
            failed=report.failed,
        )
        return report

    async def delete_all(self) -> DeleteAllReport:
        """
        Delete every record and its vector.

        Vector deletion failures are collected, never fatal; canonical rows
        are deleted regardless.
        """
        records = await self._store.all_records()
        vector_ids = [record.effective_vector_ref for record in records]
        vector_failures: list[str] = []

        if self._index is not None:
            for i in range(0, len(vector_ids), DELETE_BATCH_SIZE):
                batch = vector_ids[i : i + DELETE_BATCH_SIZE]
                try:
                    await self._index.delete_many(self._namespace, batch)
                except VectorNotFoundError:
                    continue
                except Exception as e:
                    logger.warning(
                        "bulk_vector_delete_failed",
                        count=len(batch),
                        error=str(e),
                    )
                    vector_failures.extend(batch)

        deleted_count = await self._store.delete_all()
        logger.info(
            "knowledge_base_cleared",
            deleted_count=deleted_count,
            vector_failures=len(vector_failures),
        )
        return DeleteAllReport(deleted_count=deleted_count, vector_failures=vector_failures)
