"""Event dispatcher — fans a domain event out to subscribed endpoints."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from webhook_service.engine.models.base import utcnow
from webhook_service.engine.models.delivery import DELIVERY_STATUS_PENDING, WebhookDelivery
from webhook_service.engine.models.endpoint import RETRY_POLICY_NONE, WebhookEndpoint
from webhook_service.errors.definitions import ErrPayloadNotSerializable

if TYPE_CHECKING:
    from webhook_service.engine.client import WebhookEngine
    from webhook_service.notifications.events import DomainEvent

logger = logging.getLogger(__name__)


def build_envelope(
    tenant_id: str, event: str, event_id: str, payload: Any, *, created_at: datetime
) -> str:
    """Serialize the outbound body.

    Raises:
        TypeError, ValueError: If *payload* is not JSON serializable.
    """
    return json.dumps(
        {
            "id": event_id,
            "event": event,
            "tenant_id": tenant_id,
            "created_at": created_at.isoformat(),
            "data": payload,
        },
        separators=(",", ":"),
        allow_nan=False,
    )


def ensure_serializable(payload: Any) -> None:
    """Reject payloads that cannot become a strict JSON body.

    Raises:
        WebhookError: 400 for NaN, infinities or non-JSON types.
    """
    try:
        json.dumps(payload, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise ErrPayloadNotSerializable from e


def max_attempts_for(endpoint: WebhookEndpoint) -> int:
    if endpoint.retry_policy == RETRY_POLICY_NONE:
        return 1
    return max(endpoint.max_retries, 1)


class EventDispatcher:
    """Creates one pending delivery per eligible endpoint and queues it."""

    def __init__(self, engine: WebhookEngine) -> None:
        self._engine = engine

    async def dispatch(
        self,
        tenant_id: str,
        event: str,
        event_id: str,
        payload: Any,
    ) -> list[WebhookDelivery]:
        """Fan *event* out to the tenant's subscribed endpoints.

        Never raises for per-endpoint problems; an unserializable payload
        yields no deliveries.

        Returns:
            Deliveries created (and submitted) by this call.
        """
        try:
            body = build_envelope(tenant_id, event, event_id, payload, created_at=utcnow())
        except (TypeError, ValueError):
            logger.exception("Event %s (%s) payload not serializable", event_id, event)
            return []

        endpoints = await self.eligible_endpoints(tenant_id, event)
        if not endpoints:
            logger.debug("No endpoints subscribed to %s for tenant %s", event, tenant_id)
            return []

        created: list[WebhookDelivery] = []
        for endpoint in endpoints:
            try:
                delivery = await self._create_delivery(endpoint, event, event_id, body)
            except Exception:
                logger.exception(
                    "Failed to queue %s for endpoint %s (tenant %s)", event, endpoint.id, tenant_id
                )
                if self._engine.metrics:
                    self._engine.metrics.record_dispatch_skip("error")
                continue
            if delivery is None:
                continue
            created.append(delivery)
            self._engine.submit_delivery(delivery.id)

        logger.info(
            "Dispatched %s (%s) for tenant %s to %d endpoint(s)",
            event,
            event_id,
            tenant_id,
            len(created),
        )
        return created

    async def dispatch_event(self, event: DomainEvent) -> list[WebhookDelivery]:
        """Bus relay entry point."""
        return await self.dispatch(event.tenant_id, event.type, event.event_id, event.data)

    async def eligible_endpoints(self, tenant_id: str, event: str) -> list[WebhookEndpoint]:
        """Active, undeleted, non-tripped endpoints subscribed to *event*."""
        threshold = self._engine.config.delivery.disable_threshold
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                select(WebhookEndpoint)
                .where(
                    WebhookEndpoint.tenant_id == tenant_id,
                    WebhookEndpoint.deleted_at.is_(None),
                    WebhookEndpoint.is_active.is_(True),
                    WebhookEndpoint.failure_count < threshold,
                )
                .order_by(WebhookEndpoint.created_at)
            )
            endpoints = result.scalars().all()
        # JSON list membership is filtered here for portability across backends
        return [ep for ep in endpoints if ep.supports_event(event)]

    async def _create_delivery(
        self, endpoint: WebhookEndpoint, event: str, event_id: str, body: str
    ) -> WebhookDelivery | None:
        # The first attempt's slot is taken here; the worker counts only retries
        if not await self._engine.rate_limiter.reserve(endpoint):
            logger.info("Endpoint %s rate limited, skipping %s", endpoint.id, event)
            if self._engine.metrics:
                self._engine.metrics.record_dispatch_skip("rate_limited")
            return None

        delivery = WebhookDelivery(
            tenant_id=endpoint.tenant_id,
            endpoint_id=endpoint.id,
            event=event,
            event_id=event_id,
            status=DELIVERY_STATUS_PENDING,
            attempt_count=0,
            max_attempts=max_attempts_for(endpoint),
            request_method="POST",
            request_url=endpoint.url,
            request_headers={},
            request_body=body,
        )
        async with self._engine.datastore.session() as session:
            session.add(delivery)
            await session.commit()
            await session.refresh(delivery)
        return delivery
