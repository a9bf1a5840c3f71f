"""Detached background work for ingestion side-effects.

The request handler submits coroutines and returns immediately. Jobs run as
asyncio tasks on the same event loop, at most ``concurrency`` at a time. When
``max_pending`` jobs are already waiting, new jobs are dropped. Failures are
logged and never reach the submitter.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from interaction_analytics.exceptions import SideEffectError

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[object]]


class BackgroundDispatcher:
    """Bounded fire-and-forget task runner."""

    def __init__(self, concurrency: int = 8, max_pending: int = 1000):
        """Initialize dispatcher.

        Args:
            concurrency: Max jobs running at once
            max_pending: Max jobs submitted but not finished
        """
        self.concurrency = concurrency
        self.max_pending = max_pending
        self._semaphore = asyncio.Semaphore(concurrency)
        self._tasks: set[asyncio.Task] = set()
        self.completed = 0
        self.failed = 0
        self.dropped = 0

    @property
    def pending(self) -> int:
        """Number of jobs submitted but not finished."""
        return len(self._tasks)

    def submit(self, name: str, job: Job) -> bool:
        """Schedule a job without waiting for it.

        Args:
            name: Short label used in logs
            job: Zero-argument callable returning an awaitable

        Returns:
            False if the job was dropped because the dispatcher is full
        """
        if len(self._tasks) >= self.max_pending:
            self.dropped += 1
            logger.warning(f"Background queue full ({self.max_pending}); dropped job {name}")
            return False

        task = asyncio.create_task(self._run(name, job), name=f"side-effect:{name}")
        # Keep a strong reference until the task finishes
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run(self, name: str, job: Job) -> None:
        async with self._semaphore:
            try:
                await job()
                self.completed += 1
            except asyncio.CancelledError:
                logger.warning(f"Background job {name} cancelled")
                raise
            except Exception as e:
                self.failed += 1
                error = SideEffectError(str(e), job=name)
                logger.error(f"Side-effect failed: {error}", exc_info=e)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight jobs; cancel whatever is left after ``timeout``."""
        if not self._tasks:
            return

        tasks = list(self._tasks)
        done, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning(f"Cancelled {len(still_running)} background jobs at shutdown")
            await asyncio.gather(*still_running, return_exceptions=True)
