"""Delivery worker — performs one signed HTTP attempt for a delivery.

An attempt is claimed with a conditional UPDATE, so a delivery that is
already being sent, is delivered, or has run out of attempts is left alone
no matter how many times it is submitted.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import case, select, update

from webhook_service.engine.models.base import utcnow
from webhook_service.engine.models.delivery import (
    DELIVERY_STATUS_DELIVERED,
    DELIVERY_STATUS_DELIVERING,
    DELIVERY_STATUS_FAILED,
    DELIVERY_STATUS_PENDING,
    WebhookDelivery,
)
from webhook_service.engine.models.endpoint import (
    ENDPOINT_STATUS_DISABLED,
    RETRY_POLICY_LINEAR,
    WebhookEndpoint,
)

if TYPE_CHECKING:
    from datetime import datetime

    from webhook_service.engine.client import WebhookEngine
    from webhook_service.engine.services.sender import SendResult

logger = logging.getLogger(__name__)

MAX_BACKOFF = timedelta(hours=24)


def compute_backoff(attempt: int, policy: str = "exponential") -> timedelta:
    """Delay before retry number *attempt* + 1.

    ``exponential``: attempt² minutes; ``linear``: attempt minutes; both
    capped at 24 hours.
    """
    n = max(attempt, 1)
    minutes = n if policy == RETRY_POLICY_LINEAR else n * n
    return min(MAX_BACKOFF, timedelta(minutes=minutes))


class DeliveryWorker:
    """Sends deliveries and records the outcome."""

    def __init__(self, engine: WebhookEngine) -> None:
        self._engine = engine

    async def deliver(self, delivery_id: str) -> WebhookDelivery | None:
        """Run one attempt for *delivery_id*.

        Returns:
            The updated delivery, or None when nothing was attempted
            (unknown delivery, missing or deleted endpoint, or the claim
            was lost).
        """
        ds = self._engine.datastore

        async with ds.session() as session:
            delivery = await session.get(WebhookDelivery, delivery_id)
            if delivery is None:
                logger.warning("Delivery %s not found", delivery_id)
                return None
            endpoint = await session.get(WebhookEndpoint, delivery.endpoint_id)
            if (
                endpoint is None
                or endpoint.tenant_id != delivery.tenant_id
                or endpoint.deleted_at is not None
            ):
                logger.warning(
                    "Delivery %s: endpoint %s could not be loaded, attempt skipped",
                    delivery_id,
                    delivery.endpoint_id,
                )
                return None

        now = utcnow()
        if not await self._claim(delivery_id, now):
            logger.debug("Delivery %s not claimable, skipping", delivery_id)
            return None

        sender = self._engine.sender
        headers = sender.build_headers(
            delivery.request_body,
            secret=endpoint.secret,
            event=delivery.event,
            message_id=delivery.id,
            extra=endpoint.headers,
            timestamp=int(now.timestamp()),
        )
        metrics = self._engine.metrics
        if metrics:
            with metrics.track_delivery():
                result = await sender.post(
                    endpoint.url, delivery.request_body, headers, timeout=endpoint.timeout_seconds
                )
        else:
            result = await sender.post(
                endpoint.url, delivery.request_body, headers, timeout=endpoint.timeout_seconds
            )

        updated = await self._record(delivery_id, endpoint, headers, result)

        # First attempts were counted when the dispatcher reserved their slot
        if updated.attempt_count > 1:
            try:
                await self._engine.rate_limiter.increment(endpoint)
            except Exception:
                logger.exception("Rate limit increment failed for endpoint %s", endpoint.id)

        return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _claim(self, delivery_id: str, now: datetime) -> bool:
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                update(WebhookDelivery)
                .where(
                    WebhookDelivery.id == delivery_id,
                    WebhookDelivery.status.in_([DELIVERY_STATUS_PENDING, DELIVERY_STATUS_FAILED]),
                    WebhookDelivery.attempt_count < WebhookDelivery.max_attempts,
                )
                .values(
                    status=DELIVERY_STATUS_DELIVERING,
                    attempt_count=WebhookDelivery.attempt_count + 1,
                    last_attempt_at=now,
                    next_retry_at=None,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return bool(result.rowcount)

    async def _record(
        self,
        delivery_id: str,
        endpoint: WebhookEndpoint,
        request_headers: dict[str, str],
        result: SendResult,
    ) -> WebhookDelivery:
        now = utcnow()
        threshold = self._engine.config.delivery.disable_threshold

        async with self._engine.datastore.session() as session:
            delivery = (
                await session.execute(
                    select(WebhookDelivery)
                    .where(WebhookDelivery.id == delivery_id)
                    .execution_options(populate_existing=True)
                )
            ).scalar_one()

            delivery.request_headers = _redact(request_headers)
            delivery.response_status = result.status_code
            delivery.response_headers = result.headers
            delivery.response_body = result.body
            delivery.response_time = result.response_time_ms

            endpoint_values: dict[str, object] = {"last_delivery_at": now}

            if result.success:
                delivery.status = DELIVERY_STATUS_DELIVERED
                delivery.delivered_at = now
                delivery.error_message = ""
                endpoint_values["failure_count"] = 0
                endpoint_values["last_status"] = DELIVERY_STATUS_DELIVERED
                outcome = "delivered"
            else:
                delivery.status = DELIVERY_STATUS_FAILED
                delivery.failed_at = now
                delivery.error_message = result.error_message()
                if delivery.attempt_count < delivery.max_attempts:
                    delivery.next_retry_at = now + compute_backoff(
                        delivery.attempt_count, endpoint.retry_policy
                    )
                    endpoint_values["last_status"] = DELIVERY_STATUS_FAILED
                    outcome = "failed"
                else:
                    delivery.next_retry_at = None
                    bumped = WebhookEndpoint.failure_count + 1
                    endpoint_values["failure_count"] = bumped
                    endpoint_values["last_status"] = case(
                        (bumped >= threshold, ENDPOINT_STATUS_DISABLED),
                        else_=DELIVERY_STATUS_FAILED,
                    )
                    outcome = "exhausted"

            await session.execute(
                update(WebhookEndpoint)
                .where(WebhookEndpoint.id == endpoint.id)
                .values(**endpoint_values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        if outcome == "delivered":
            logger.info(
                "Delivered %s (%s) to endpoint %s in %d ms",
                delivery.id,
                delivery.event,
                endpoint.id,
                result.response_time_ms,
            )
        else:
            logger.warning(
                "Delivery %s attempt %d/%d to endpoint %s failed: %s",
                delivery.id,
                delivery.attempt_count,
                delivery.max_attempts,
                endpoint.id,
                delivery.error_message[:200],
            )
        if self._engine.metrics:
            self._engine.metrics.record_delivery(outcome)
        return delivery


def _redact(headers: dict[str, str]) -> dict[str, str]:
    """Copy of request headers safe to persist (signature kept, auth dropped)."""
    return {k: v for k, v in headers.items() if k.lower() not in {"authorization", "cookie"}}
