"""Background task definitions — cron job handlers.

- ``retry_sweep`` (30 s): reclaim stuck attempts, re-queue due retries
  and orphaned pending deliveries
- ``delivery_cleanup`` (1 h): drop finished deliveries past retention
- ``rate_limit_cleanup`` (1 h): drop expired rate-limit windows
- ``incoming_recovery`` (60 s): re-queue verified provider callbacks that
  were never handled
"""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING

from webhook_service.taskmanager.manager import CronJob

if TYPE_CHECKING:
    from webhook_service.engine.client import WebhookEngine
    from webhook_service.taskmanager.manager import TaskManager

logger = logging.getLogger(__name__)

RETRY_SWEEP_JOB = "retry_sweep"
DELIVERY_CLEANUP_JOB = "delivery_cleanup"
RATE_LIMIT_CLEANUP_JOB = "rate_limit_cleanup"
INCOMING_RECOVERY_JOB = "incoming_recovery"


async def task_retry_sweep(engine: WebhookEngine) -> None:
    """Submit deliveries that are due for another attempt."""
    await engine.retry_scheduler.run_once()


async def task_cleanup_deliveries(engine: WebhookEngine) -> None:
    """Delete delivered / exhausted deliveries older than the retention period."""
    await engine.retry_scheduler.cleanup()


async def task_cleanup_rate_limits(engine: WebhookEngine) -> None:
    """Delete rate-limit windows that have ended."""
    await engine.rate_limiter.cleanup()


async def task_recover_incoming(engine: WebhookEngine) -> None:
    await engine.incoming_processor.recover()


def register_default_jobs(tm: TaskManager, engine: WebhookEngine) -> None:
    """Register the engine's maintenance jobs on *tm*."""
    config = engine.config
    for job in (
        CronJob(
            RETRY_SWEEP_JOB,
            config.retry.sweep_period_seconds,
            partial(task_retry_sweep, engine),
        ),
        CronJob(
            DELIVERY_CLEANUP_JOB,
            config.retry.cleanup_period_seconds,
            partial(task_cleanup_deliveries, engine),
        ),
        CronJob(
            RATE_LIMIT_CLEANUP_JOB,
            config.rate_limit.cleanup_period_seconds,
            partial(task_cleanup_rate_limits, engine),
        ),
        CronJob(
            INCOMING_RECOVERY_JOB,
            config.incoming.recovery_period_seconds,
            partial(task_recover_incoming, engine),
        ),
    ):
        tm.register(job)
    logger.debug("Registered %d maintenance jobs", len(tm.jobs))
