"""Retry scheduler — periodic sweep that re-queues due deliveries.

Each sweep:
1. reclaims attempts stuck in ``delivering`` (worker crashed or restarted),
2. submits failed deliveries whose ``next_retry_at`` has passed,
3. re-submits ``pending`` deliveries that were never picked up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import delete, select, update

from webhook_service.engine.models.base import utcnow
from webhook_service.engine.models.delivery import (
    DELIVERY_STATUS_DELIVERED,
    DELIVERY_STATUS_DELIVERING,
    DELIVERY_STATUS_FAILED,
    DELIVERY_STATUS_PENDING,
    WebhookDelivery,
)

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy import Select

    from webhook_service.engine.client import WebhookEngine

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "delivery attempt interrupted"


@dataclass
class SweepResult:
    """Counts from one sweep."""

    retried: int = 0
    resubmitted: int = 0
    reclaimed: int = 0


class RetryScheduler:
    """Finds deliveries that need another attempt and submits them."""

    def __init__(self, engine: WebhookEngine) -> None:
        self._engine = engine

    async def run_once(self, *, now: datetime | None = None) -> SweepResult:
        now = now or utcnow()
        result = SweepResult()
        result.reclaimed = await self.reclaim_stuck(now=now)

        for delivery_id in await self.due_retries(now=now):
            if self._engine.submit_delivery(delivery_id):
                result.retried += 1

        for delivery_id in await self.stale_pending(now=now):
            if self._engine.submit_delivery(delivery_id):
                result.resubmitted += 1

        if result.retried or result.resubmitted or result.reclaimed:
            logger.info(
                "Retry sweep: %d retried, %d resubmitted, %d reclaimed",
                result.retried,
                result.resubmitted,
                result.reclaimed,
            )
        return result

    async def due_retries(self, *, now: datetime | None = None) -> list[str]:
        """Ids of failed deliveries whose retry time has passed, oldest first."""
        now = now or utcnow()
        stmt = (
            select(WebhookDelivery.id)
            .where(
                WebhookDelivery.status == DELIVERY_STATUS_FAILED,
                WebhookDelivery.next_retry_at.is_not(None),
                WebhookDelivery.next_retry_at <= now,
                WebhookDelivery.attempt_count < WebhookDelivery.max_attempts,
            )
            .order_by(WebhookDelivery.next_retry_at)
            .limit(self._engine.config.retry.batch_size)
        )
        return await self._ids(stmt)

    async def stale_pending(self, *, now: datetime | None = None) -> list[str]:
        """Ids of pending deliveries older than the orphan threshold."""
        now = now or utcnow()
        cutoff = now - timedelta(seconds=self._engine.config.retry.stale_pending_seconds)
        stmt = (
            select(WebhookDelivery.id)
            .where(
                WebhookDelivery.status == DELIVERY_STATUS_PENDING,
                WebhookDelivery.created_at <= cutoff,
            )
            .order_by(WebhookDelivery.created_at)
            .limit(self._engine.config.retry.batch_size)
        )
        return await self._ids(stmt)

    async def reclaim_stuck(self, *, now: datetime | None = None) -> int:
        """Fail attempts left in ``delivering`` past the stuck threshold.

        Reclaimed rows with attempts left are due immediately; the rest
        become terminal.
        """
        now = now or utcnow()
        cutoff = now - timedelta(seconds=self._engine.config.retry.stale_delivering_seconds)
        async with self._engine.datastore.session() as session:
            base = (
                update(WebhookDelivery)
                .where(
                    WebhookDelivery.status == DELIVERY_STATUS_DELIVERING,
                    WebhookDelivery.last_attempt_at <= cutoff,
                )
                .execution_options(synchronize_session=False)
            )
            retryable = await session.execute(
                base.where(WebhookDelivery.attempt_count < WebhookDelivery.max_attempts).values(
                    status=DELIVERY_STATUS_FAILED,
                    failed_at=now,
                    next_retry_at=now,
                    error_message=INTERRUPTED_MESSAGE,
                )
            )
            exhausted = await session.execute(
                base.where(WebhookDelivery.attempt_count >= WebhookDelivery.max_attempts).values(
                    status=DELIVERY_STATUS_FAILED,
                    failed_at=now,
                    next_retry_at=None,
                    error_message=INTERRUPTED_MESSAGE,
                )
            )
            await session.commit()
        count = (retryable.rowcount or 0) + (exhausted.rowcount or 0)
        if count:
            logger.warning("Reclaimed %d interrupted delivery attempt(s)", count)
        return count

    async def cleanup(self, *, now: datetime | None = None) -> int:
        """Delete finished deliveries older than the retention period."""
        now = now or utcnow()
        cutoff = now - timedelta(days=self._engine.config.retry.retention_days)
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                delete(WebhookDelivery).where(
                    WebhookDelivery.created_at < cutoff,
                    (WebhookDelivery.status == DELIVERY_STATUS_DELIVERED)
                    | (
                        (WebhookDelivery.status == DELIVERY_STATUS_FAILED)
                        & (WebhookDelivery.attempt_count >= WebhookDelivery.max_attempts)
                    ),
                )
            )
            await session.commit()
        count = result.rowcount or 0
        if count:
            logger.info("Removed %d deliveries past retention", count)
        return count

    async def _ids(self, stmt: Select) -> list[str]:  # type: ignore[type-arg]
        if self._engine.datastore.is_postgres:
            # Concurrent sweepers on other instances skip rows we are reading
            stmt = stmt.with_for_update(skip_locked=True)
        async with self._engine.datastore.session() as session:
            result = await session.execute(stmt)
            ids = list(result.scalars().all())
            await session.commit()
        return ids
