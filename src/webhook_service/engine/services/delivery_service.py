"""Delivery service — delivery history, manual retry and statistics."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from webhook_service.engine.models.base import utcnow
from webhook_service.engine.models.delivery import (
    DELIVERY_STATUS_DELIVERED,
    DELIVERY_STATUS_DELIVERING,
    DELIVERY_STATUS_FAILED,
    DELIVERY_STATUS_PENDING,
    WebhookDelivery,
)
from webhook_service.engine.models.endpoint import WebhookEndpoint
from webhook_service.errors.definitions import (
    ErrDeliveryAlreadyDelivered,
    ErrDeliveryInProgress,
    ErrDeliveryNotFound,
    ErrEndpointNotFound,
    ErrMissingTenant,
)

if TYPE_CHECKING:
    from webhook_service.engine.client import WebhookEngine

logger = logging.getLogger(__name__)

DEFAULT_STATS_DAYS = 7
MAX_PAGE_SIZE = 200


@dataclass(frozen=True)
class DeliveryStats:
    """Aggregate delivery figures for a tenant over a date range."""

    start_date: datetime
    end_date: datetime
    total: int
    delivered: int
    failed: int
    pending: int
    delivering: int
    success_rate: float
    avg_response_time_ms: float


class DeliveryService:
    """Tenant-scoped reads over deliveries plus operator actions."""

    def __init__(self, engine: WebhookEngine) -> None:
        self._engine = engine

    async def list(
        self,
        tenant_id: str,
        *,
        endpoint_id: str | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[WebhookDelivery], int]:
        """Page through deliveries, newest first.

        Returns:
            ``(page, total)`` where *total* ignores limit/offset.
        """
        if not tenant_id:
            raise ErrMissingTenant
        filters = [WebhookDelivery.tenant_id == tenant_id]
        if endpoint_id:
            filters.append(WebhookDelivery.endpoint_id == endpoint_id)
        if status:
            filters.append(WebhookDelivery.status == status)

        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)
        async with self._engine.datastore.session() as session:
            total = (
                await session.execute(select(func.count(WebhookDelivery.id)).where(*filters))
            ).scalar_one()
            result = await session.execute(
                select(WebhookDelivery)
                .where(*filters)
                .order_by(WebhookDelivery.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars().all()), int(total)

    async def get(self, tenant_id: str, delivery_id: str) -> WebhookDelivery:
        if not tenant_id:
            raise ErrMissingTenant
        async with self._engine.datastore.session() as session:
            delivery = await session.get(WebhookDelivery, delivery_id)
        if delivery is None or delivery.tenant_id != tenant_id:
            raise ErrDeliveryNotFound
        return delivery

    async def retry(self, tenant_id: str, delivery_id: str) -> WebhookDelivery:
        """Queue a failed or pending delivery for an immediate attempt.

        An exhausted delivery gets one extra attempt.

        Raises:
            WebhookError: 404 if unknown or its endpoint was deleted, 409 if
                delivered or in flight.
        """
        delivery = await self.get(tenant_id, delivery_id)
        if delivery.status == DELIVERY_STATUS_DELIVERED:
            raise ErrDeliveryAlreadyDelivered
        if delivery.status == DELIVERY_STATUS_DELIVERING:
            raise ErrDeliveryInProgress

        async with self._engine.datastore.session() as session:
            # Deliveries of a deleted endpoint stay cancelled
            endpoint = await session.get(WebhookEndpoint, delivery.endpoint_id)
            if endpoint is None or endpoint.deleted_at is not None:
                raise ErrEndpointNotFound
            row = await session.get(WebhookDelivery, delivery_id, populate_existing=True)
            if row is None:
                raise ErrDeliveryNotFound
            if row.status == DELIVERY_STATUS_DELIVERED:
                raise ErrDeliveryAlreadyDelivered
            if row.status == DELIVERY_STATUS_DELIVERING:
                raise ErrDeliveryInProgress
            if row.attempt_count >= row.max_attempts:
                row.max_attempts = row.attempt_count + 1
            if row.status == DELIVERY_STATUS_FAILED:
                row.next_retry_at = utcnow()
            await session.commit()
            await session.refresh(row)

        self._engine.submit_delivery(row.id)
        logger.info("Manual retry queued for delivery %s", row.id)
        return row

    async def stats(
        self,
        tenant_id: str,
        *,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> DeliveryStats:
        """Counts by status, success rate and mean response time.

        Defaults to the last seven days.
        """
        if not tenant_id:
            raise ErrMissingTenant
        end = end_date or utcnow()
        start = start_date or end - timedelta(days=DEFAULT_STATS_DAYS)
        window = (
            WebhookDelivery.tenant_id == tenant_id,
            WebhookDelivery.created_at >= start,
            WebhookDelivery.created_at <= end,
        )
        async with self._engine.datastore.session() as session:
            rows = await session.execute(
                select(WebhookDelivery.status, func.count(WebhookDelivery.id))
                .where(*window)
                .group_by(WebhookDelivery.status)
            )
            counts = {status: int(n) for status, n in rows.all()}
            avg = (
                await session.execute(
                    select(func.avg(WebhookDelivery.response_time)).where(
                        *window, WebhookDelivery.response_time.is_not(None)
                    )
                )
            ).scalar_one()

        delivered = counts.get(DELIVERY_STATUS_DELIVERED, 0)
        failed = counts.get(DELIVERY_STATUS_FAILED, 0)
        finished = delivered + failed
        return DeliveryStats(
            start_date=start,
            end_date=end,
            total=sum(counts.values()),
            delivered=delivered,
            failed=failed,
            pending=counts.get(DELIVERY_STATUS_PENDING, 0),
            delivering=counts.get(DELIVERY_STATUS_DELIVERING, 0),
            success_rate=round(delivered / finished * 100, 2) if finished else 0.0,
            avg_response_time_ms=round(float(avg), 2) if avg is not None else 0.0,
        )

    async def failed_logs(self, tenant_id: str, *, limit: int = 100) -> list[WebhookDelivery]:
        """Most recent failed deliveries."""
        if not tenant_id:
            raise ErrMissingTenant
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                select(WebhookDelivery)
                .where(
                    WebhookDelivery.tenant_id == tenant_id,
                    WebhookDelivery.status == DELIVERY_STATUS_FAILED,
                )
                .order_by(WebhookDelivery.failed_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
