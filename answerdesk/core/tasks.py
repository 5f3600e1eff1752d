"""
Background task runner.

Record syncs triggered by create/update run after the HTTP response has been
sent. The runner keeps a handle on every in-flight task so the application
can wait for them (tests, graceful shutdown) or cancel them.

Usage:
    runner = SyncTaskRunner()
    task = runner.submit("sync:abc", engine.sync_one_with_retry(record))

    await runner.drain()      # wait for everything submitted so far
    await runner.shutdown()   # cancel whatever is still running
"""

import asyncio
from typing import Any, Coroutine

import structlog

logger = structlog.get_logger(__name__)


class SyncTaskRunner:
    """Tracks fire-and-forget sync tasks. Task failures are logged, never raised."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def submit(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """
        Schedule a coroutine on the running event loop.

        Args:
            name: Task name used in logs.
            coro: Coroutine to run.

        Returns:
            The created task. Awaiting it never raises except on cancellation.
        """
        task = asyncio.create_task(self._run(name, coro), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, name: str, coro: Coroutine[Any, Any, Any]) -> Any:
        try:
            return await coro
        except asyncio.CancelledError:
            logger.info("background_task_cancelled", task=name)
            raise
        except Exception as e:
            logger.error(
                "background_task_failed",
                task=name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def drain(self) -> None:
        """Wait until every submitted task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel in-flight tasks and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("task_runner_shutdown", cancelled=len(tasks))
