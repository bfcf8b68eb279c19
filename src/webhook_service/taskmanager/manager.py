"""Cron scheduling for engine maintenance jobs.

Each registered ``CronJob`` gets its own asyncio loop.  When a cache is
supplied every run first takes a ``SET NX`` lock keyed by job name, so
across a fleet of instances only one of them executes a given job at a
time; the others skip that tick.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from webhook_service.cache.client import CacheClient
    from webhook_service.metrics.collector import EngineMetrics

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "webhooks:cron:"


@dataclass(frozen=True)
class CronJob:
    """A named handler run every ``period`` seconds."""

    name: str
    period: float
    handler: Callable[[], Awaitable[None]]

    @property
    def lock_key(self) -> str:
        return LOCK_KEY_PREFIX + self.name


class TaskManager:
    """Runs cron jobs on background tasks, one loop per job.

    Usage::

        tm = TaskManager(metrics=engine_metrics, cache=cache, lock_ttl=120)
        tm.register(CronJob("retry_sweep", 30, sweep))
        await tm.start()
        ...
        await tm.stop()
    """

    def __init__(
        self,
        *,
        metrics: EngineMetrics | None = None,
        cache: CacheClient | None = None,
        lock_ttl: int = 120,
    ) -> None:
        self._jobs: dict[str, CronJob] = {}
        self._loops: dict[str, asyncio.Task[None]] = {}
        self._running = False
        self._metrics = metrics
        self._cache = cache
        self._lock_ttl = lock_ttl
        # Lock value identifying this process as the holder
        self._owner = uuid.uuid4().hex

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def jobs(self) -> dict[str, CronJob]:
        return dict(self._jobs)

    def register(self, job: CronJob) -> None:
        """Add *job*, replacing any job with the same name.

        Raises:
            ValueError: On an empty name or a non-positive period.
        """
        if not job.name or job.period <= 0:
            msg = f"invalid cron job {job.name!r} (period={job.period})"
            raise ValueError(msg)
        self._jobs[job.name] = job
        if self._running:
            self._restart(job)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for job in self._jobs.values():
            self._restart(job)
        logger.info("Cron scheduler started: %s", ", ".join(sorted(self._jobs)) or "no jobs")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        loops = list(self._loops.values())
        self._loops.clear()
        for loop in loops:
            loop.cancel()
        await asyncio.gather(*loops, return_exceptions=True)
        logger.info("Cron scheduler stopped")

    async def run_once(self, name: str) -> bool:
        """Execute job *name* now, honouring the cross-instance lock.

        Returns:
            False if another instance holds the lock, True otherwise.

        Raises:
            KeyError: If no job is registered under *name*.
        """
        job = self._jobs[name]
        cache = self._cache if self._cache is not None and self._cache.is_connected else None
        if cache is not None and not await cache.set_nx(job.lock_key, self._owner, self._lock_ttl):
            logger.debug("Cron job %s skipped: lock held by another instance", name)
            return False
        try:
            if self._metrics:
                with self._metrics.track_cron(name):
                    await job.handler()
            else:
                await job.handler()
        finally:
            if cache is not None:
                await self._release(cache, job.lock_key)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _restart(self, job: CronJob) -> None:
        previous = self._loops.pop(job.name, None)
        if previous is not None:
            previous.cancel()
        self._loops[job.name] = asyncio.create_task(self._loop(job), name=f"cron-{job.name}")

    async def _release(self, cache: CacheClient, lock_key: str) -> None:
        # An expired lock may already belong to another instance
        if await cache.get(lock_key) == self._owner:
            await cache.delete(lock_key)

    async def _loop(self, job: CronJob) -> None:
        while True:
            await asyncio.sleep(job.period)
            try:
                await self.run_once(job.name)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Cron job %s failed", job.name)
