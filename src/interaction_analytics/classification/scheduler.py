"""Periodic trigger for the batch classifier."""

import asyncio
import logging

from interaction_analytics.classification.batch import BatchClassifier

logger = logging.getLogger(__name__)


class ClassificationScheduler:
    """Start a classifier run every ``interval`` seconds.

    A tick does not wait for the previous run to finish, so runs may overlap
    when a batch takes longer than the interval.
    """

    def __init__(self, classifier: BatchClassifier, interval: float = 60.0):
        self.classifier = classifier
        self.interval = interval
        self._loop_task: asyncio.Task | None = None
        self._runs: set[asyncio.Task] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def active_runs(self) -> int:
        return len(self._runs)

    async def start(self) -> None:
        """Start the periodic loop."""
        if self._running:
            return

        self._running = True
        self._loop_task = asyncio.create_task(self._tick_loop())
        logger.info(f"Evaluation scheduler started (interval={self.interval}s)")

    async def stop(self) -> None:
        """Stop the loop and cancel runs still in flight."""
        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        for task in list(self._runs):
            task.cancel()
        if self._runs:
            await asyncio.gather(*self._runs, return_exceptions=True)
        logger.info("Evaluation scheduler stopped")

    def trigger(self) -> asyncio.Task:
        """Start one run in the background and return its task."""
        task = asyncio.create_task(self._run_once())
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)
        return task

    async def _tick_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            self.trigger()

    async def _run_once(self) -> None:
        try:
            await self.classifier.run_batch()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Evaluation run failed: {e}", exc_info=True)
