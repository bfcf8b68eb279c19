"""Endpoint service — tenant webhook endpoint registry.

- Create / update / soft-delete endpoints
- Tenant-scoped reads
- Send a signed test payload
- Per-endpoint health summary
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from sqlalchemy import func, select, update

from webhook_service.engine.models.base import utcnow
from webhook_service.engine.models.delivery import (
    DELIVERY_STATUS_DELIVERED,
    DELIVERY_STATUS_FAILED,
    DELIVERY_STATUS_PENDING,
    WebhookDelivery,
)
from webhook_service.engine.models.endpoint import (
    RETRY_POLICIES,
    RETRY_POLICY_EXPONENTIAL,
    WebhookEndpoint,
)
from webhook_service.errors.definitions import (
    ErrEndpointNotFound,
    ErrInvalidEndpointURL,
    ErrInvalidRetryPolicy,
    ErrMissingTenant,
    ErrNoEventsSubscribed,
    ErrUnknownEventType,
)
from webhook_service.notifications.events import is_known_event
from webhook_service.utils.signing import generate_secret

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from webhook_service.engine.client import WebhookEngine

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "endpoint deleted"
TEST_EVENT = "test"

_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "url",
        "description",
        "events",
        "secret",
        "is_active",
        "retry_policy",
        "max_retries",
        "timeout_seconds",
        "headers",
    }
)


@dataclass(frozen=True)
class TestResult:
    """Outcome of :meth:`EndpointService.test`."""

    __test__ = False

    success: bool
    status_code: int | None
    response_time_ms: int
    error: str = ""


@dataclass(frozen=True)
class EndpointHealth:
    """Delivery health of one endpoint over a recent period."""

    endpoint_id: str
    is_active: bool
    is_disabled: bool
    failure_count: int
    last_status: str
    last_delivery_at: datetime | None
    period_days: int
    total_deliveries: int
    delivered: int
    failed: int
    pending: int
    success_rate: float


def validate_url(url: str) -> str:
    """Return *url* stripped, or raise if it is not an absolute http(s) URL."""
    url = (url or "").strip()
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc or not parts.hostname:
        raise ErrInvalidEndpointURL
    return url


def validate_events(events: Iterable[str]) -> list[str]:
    """De-duplicated event list, preserving order; every entry must be known."""
    result: list[str] = []
    for event in events or []:
        if not is_known_event(event):
            raise ErrUnknownEventType
        if event not in result:
            result.append(event)
    if not result:
        raise ErrNoEventsSubscribed
    return result


def _require_tenant(tenant_id: str) -> None:
    if not tenant_id:
        raise ErrMissingTenant


class EndpointService:
    """Business logic for tenant webhook endpoints."""

    def __init__(self, engine: WebhookEngine) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create(
        self,
        tenant_id: str,
        url: str,
        events: Iterable[str],
        secret: str | None = None,
        *,
        name: str = "",
        description: str = "",
        is_active: bool = True,
        retry_policy: str = RETRY_POLICY_EXPONENTIAL,
        max_retries: int = 3,
        timeout_seconds: float | None = None,
        headers: dict[str, str] | None = None,
    ) -> WebhookEndpoint:
        """Register an endpoint for *tenant_id*.

        A signing secret is generated when *secret* is not supplied.

        Raises:
            WebhookError: On invalid URL, events or retry policy.
        """
        _require_tenant(tenant_id)
        if retry_policy not in RETRY_POLICIES:
            raise ErrInvalidRetryPolicy

        endpoint = WebhookEndpoint(
            tenant_id=tenant_id,
            name=name,
            url=validate_url(url),
            description=description,
            events=validate_events(events),
            secret=secret or generate_secret(),
            is_active=is_active,
            retry_policy=retry_policy,
            max_retries=max_retries,
            timeout_seconds=timeout_seconds or self._engine.config.delivery.default_timeout_seconds,
            headers=dict(headers or {}),
            last_status=DELIVERY_STATUS_PENDING,
            failure_count=0,
        )
        async with self._engine.datastore.session() as session:
            session.add(endpoint)
            await session.commit()
            await session.refresh(endpoint)

        logger.info("Created endpoint %s for tenant %s -> %s", endpoint.id, tenant_id, endpoint.url)
        return endpoint

    async def get(self, tenant_id: str, endpoint_id: str) -> WebhookEndpoint:
        """Fetch a live endpoint.

        Raises:
            WebhookError: If not found, deleted, or owned by another tenant.
        """
        _require_tenant(tenant_id)
        async with self._engine.datastore.session() as session:
            endpoint = await self._load(session, tenant_id, endpoint_id)
        return endpoint

    async def list(self, tenant_id: str) -> list[WebhookEndpoint]:
        _require_tenant(tenant_id)
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                select(WebhookEndpoint)
                .where(
                    WebhookEndpoint.tenant_id == tenant_id,
                    WebhookEndpoint.deleted_at.is_(None),
                )
                .order_by(WebhookEndpoint.created_at)
            )
            return list(result.scalars().all())

    async def update(self, tenant_id: str, endpoint_id: str, **fields: Any) -> WebhookEndpoint:
        """Apply the supplied fields; ``None`` values and identity fields are ignored.

        Re-activating an endpoint clears its failure count, lifting the
        circuit breaker.
        """
        _require_tenant(tenant_id)
        changes = {k: v for k, v in fields.items() if k in _UPDATABLE_FIELDS and v is not None}

        if "url" in changes:
            changes["url"] = validate_url(changes["url"])
        if "events" in changes:
            changes["events"] = validate_events(changes["events"])
        if "retry_policy" in changes and changes["retry_policy"] not in RETRY_POLICIES:
            raise ErrInvalidRetryPolicy
        if "headers" in changes:
            changes["headers"] = dict(changes["headers"])

        async with self._engine.datastore.session() as session:
            endpoint = await self._load(session, tenant_id, endpoint_id)
            for key, value in changes.items():
                setattr(endpoint, key, value)
            if changes.get("is_active") is True:
                endpoint.failure_count = 0
            await session.commit()
            await session.refresh(endpoint)

        logger.info("Updated endpoint %s (%s)", endpoint_id, ", ".join(sorted(changes)) or "no-op")
        return endpoint

    async def delete(self, tenant_id: str, endpoint_id: str) -> int:
        """Soft-delete the endpoint and cancel its queued deliveries.

        Attempts already in flight finish normally.

        Returns:
            Number of deliveries cancelled.
        """
        _require_tenant(tenant_id)
        now = utcnow()
        async with self._engine.datastore.session() as session:
            endpoint = await self._load(session, tenant_id, endpoint_id)
            endpoint.deleted_at = now
            endpoint.is_active = False
            result = await session.execute(
                update(WebhookDelivery)
                .where(
                    WebhookDelivery.tenant_id == tenant_id,
                    WebhookDelivery.endpoint_id == endpoint_id,
                    WebhookDelivery.status.in_([DELIVERY_STATUS_PENDING, DELIVERY_STATUS_FAILED]),
                    WebhookDelivery.attempt_count < WebhookDelivery.max_attempts,
                )
                .values(
                    status=DELIVERY_STATUS_FAILED,
                    max_attempts=WebhookDelivery.attempt_count,
                    next_retry_at=None,
                    failed_at=now,
                    error_message=CANCELLED_MESSAGE,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        cancelled = result.rowcount or 0
        logger.info(
            "Deleted endpoint %s for tenant %s (%d queued deliveries cancelled)",
            endpoint_id,
            tenant_id,
            cancelled,
        )
        return cancelled

    async def test(self, tenant_id: str, endpoint_id: str) -> TestResult:
        """Send a signed test payload synchronously.

        No delivery row is written and the rate limit is not consumed.
        """
        endpoint = await self.get(tenant_id, endpoint_id)
        now = utcnow()
        body = json.dumps(
            {
                "event": TEST_EVENT,
                "endpoint_id": endpoint.id,
                "tenant_id": tenant_id,
                "timestamp": now.isoformat(),
                "message": "This is a test webhook",
            },
            separators=(",", ":"),
        )
        sender = self._engine.sender
        headers = sender.build_headers(
            body,
            secret=endpoint.secret,
            event=TEST_EVENT,
            message_id=str(uuid.uuid4()),
            extra=endpoint.headers,
            timestamp=int(now.timestamp()),
        )
        result = await sender.post(endpoint.url, body, headers, timeout=endpoint.timeout_seconds)
        return TestResult(
            success=result.success,
            status_code=result.status_code,
            response_time_ms=result.response_time_ms,
            error=result.error_message(),
        )

    async def health(self, tenant_id: str, endpoint_id: str, *, days: int = 7) -> EndpointHealth:
        """Summarise the endpoint's recent deliveries."""
        endpoint = await self.get(tenant_id, endpoint_id)
        since = utcnow() - timedelta(days=days)
        async with self._engine.datastore.session() as session:
            rows = await session.execute(
                select(WebhookDelivery.status, func.count(WebhookDelivery.id))
                .where(
                    WebhookDelivery.tenant_id == tenant_id,
                    WebhookDelivery.endpoint_id == endpoint_id,
                    WebhookDelivery.created_at >= since,
                )
                .group_by(WebhookDelivery.status)
            )
            counts = {status: int(n) for status, n in rows.all()}

        delivered = counts.get(DELIVERY_STATUS_DELIVERED, 0)
        failed = counts.get(DELIVERY_STATUS_FAILED, 0)
        total = sum(counts.values())
        finished = delivered + failed
        threshold = self._engine.config.delivery.disable_threshold
        return EndpointHealth(
            endpoint_id=endpoint.id,
            is_active=endpoint.is_active,
            is_disabled=endpoint.is_disabled(threshold),
            failure_count=endpoint.failure_count,
            last_status=endpoint.last_status,
            last_delivery_at=endpoint.last_delivery_at,
            period_days=days,
            total_deliveries=total,
            delivered=delivered,
            failed=failed,
            pending=total - finished,
            success_rate=round(delivered / finished * 100, 2) if finished else 0.0,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    async def _load(
        session: AsyncSession, tenant_id: str, endpoint_id: str
    ) -> WebhookEndpoint:
        result = await session.execute(
            select(WebhookEndpoint).where(
                WebhookEndpoint.id == endpoint_id,
                WebhookEndpoint.tenant_id == tenant_id,
                WebhookEndpoint.deleted_at.is_(None),
            )
        )
        endpoint = result.scalar_one_or_none()
        if endpoint is None:
            raise ErrEndpointNotFound
        return endpoint
