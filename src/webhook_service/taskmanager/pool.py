"""Bounded asyncio worker pool.

Replaces fire-and-forget ``create_task`` calls for delivery attempts and
inbound handling: at most ``concurrency`` jobs run at once and at most
``queue_size`` wait.  Submissions beyond that are dropped with a warning;
the underlying rows stay in storage and are picked up again by the retry
sweep (deliveries) or the incoming recovery job (provider callbacks).
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from webhook_service.metrics.collector import EngineMetrics

logger = logging.getLogger(__name__)


class WorkerPool:
    """Fixed number of consumer tasks draining a bounded queue."""

    def __init__(
        self,
        name: str,
        *,
        concurrency: int = 8,
        queue_size: int = 1000,
        metrics: EngineMetrics | None = None,
    ) -> None:
        if concurrency < 1:
            msg = "concurrency must be >= 1"
            raise ValueError(msg)
        self._name = name
        self._concurrency = concurrency
        self._queue: asyncio.Queue[Callable[[], Awaitable[object]]] = asyncio.Queue(
            maxsize=queue_size
        )
        self._workers: list[asyncio.Task[None]] = []
        self._running = False
        self._metrics = metrics

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        """Jobs queued but not yet picked up."""
        return self._queue.qsize()

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._workers = [
            asyncio.create_task(self._consume(), name=f"{self._name}-worker-{i}")
            for i in range(self._concurrency)
        ]
        logger.info("Worker pool %s started (%d workers)", self._name, self._concurrency)

    async def stop(self) -> None:
        """Cancel the workers.  Queued jobs are discarded."""
        if not self._running:
            return
        self._running = False
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        logger.info("Worker pool %s stopped", self._name)

    def submit(self, job: Callable[[], Awaitable[object]]) -> bool:
        """Enqueue *job* without waiting.

        Returns:
            False if the pool is not running or its queue is full.
        """
        if not self._running:
            logger.warning("Worker pool %s not running; job dropped", self._name)
            return False
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            logger.warning("Worker pool %s queue full; job dropped", self._name)
            if self._metrics:
                self._metrics.record_pool_drop(self._name)
            return False
        return True

    async def join(self) -> None:
        """Wait until every queued job has finished."""
        await self._queue.join()

    async def _consume(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Worker pool %s job failed", self._name)
            finally:
                self._queue.task_done()
