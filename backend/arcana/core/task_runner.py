"""
In-process background task runner

Jobs are scheduled as asyncio tasks on the running loop. The runner keeps a
strong reference to each task until it finishes so that fire-and-forget work
outlives the request that created it.
"""
import asyncio
from typing import Awaitable, Callable, Dict, Optional

from arcana.core.errors import DuplicateJobError
from arcana.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)


class BackgroundTaskRunner:
    """Schedules keyed coroutines and tracks them until completion"""

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    def submit(self, key: str, factory: Callable[[], Awaitable[None]]) -> asyncio.Task:
        """
        Schedule factory() as a task identified by key

        Args:
            key: Unique job key (the job id)
            factory: Zero-argument coroutine factory

        Returns:
            The scheduled asyncio.Task

        Raises:
            DuplicateJobError: a task with the same key is still running
        """
        existing = self._tasks.get(key)
        if existing is not None and not existing.done():
            raise DuplicateJobError(f"Job {key} is already scheduled")

        task = asyncio.get_running_loop().create_task(factory(), name=f"job:{key}")
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._on_done(k, t))

        logger.debug("Background job scheduled", extra={"job_id": key})
        return task

    def _on_done(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

        if task.cancelled():
            logger.warning("Background job cancelled", extra={"job_id": key})
            return

        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background job failed: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"job_id": key, "error_type": type(exc).__name__},
            )

    def is_running(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    @property
    def active_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight jobs; cancel whatever is left after timeout"""
        pending = [task for task in self._tasks.values() if not task.done()]
        if not pending:
            return

        logger.info(f"Waiting for {len(pending)} background jobs", extra={"pending": len(pending)})
        done, still_pending = await asyncio.wait(pending, timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            await asyncio.gather(*still_pending, return_exceptions=True)
            logger.warning(
                f"Cancelled {len(still_pending)} background jobs on shutdown",
                extra={"cancelled": len(still_pending)},
            )
