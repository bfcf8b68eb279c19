"""Incoming webhook processor — verify, persist, deduplicate, hand off.

Unverified callbacks are stored for audit and rejected; they never reach a
handler.  Verified callbacks carry a ``provider:event_id`` dedup key, unique
within a tenant, so a provider redelivering the same event to that tenant is
acknowledged without running the handler twice.  Verified rows left
unprocessed (dropped hand-off, crash before handling) are resubmitted by
:meth:`IncomingProcessor.recover`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from webhook_service.engine.models.base import utcnow
from webhook_service.engine.models.incoming import WebhookIncoming
from webhook_service.errors.definitions import (
    ErrInvalidSignature,
    ErrMissingTenant,
)
from webhook_service.errors.webhook_errors import WebhookError

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from webhook_service.engine.client import WebhookEngine
    from webhook_service.engine.incoming.registry import ProviderRegistry

logger = logging.getLogger(__name__)

# Headers not worth keeping in the audit copy
_DROP_HEADERS = frozenset({"authorization", "cookie"})


@dataclass(frozen=True)
class ReceiveResult:
    incoming: WebhookIncoming
    duplicate: bool = False


def dedup_key(provider: str, event_id: str) -> str:
    return f"{provider.lower()}:{event_id}"


class IncomingProcessor:
    """Entry point for third-party provider callbacks."""

    def __init__(self, engine: WebhookEngine, registry: ProviderRegistry) -> None:
        self._engine = engine
        self._registry = registry

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    async def receive(
        self,
        tenant_id: str,
        provider: str,
        body: bytes,
        headers: Mapping[str, str],
        *,
        ip_address: str = "",
        user_agent: str = "",
    ) -> ReceiveResult:
        """Verify and record a callback, then queue it for handling.

        Raises:
            WebhookError: 400 without a tenant, 404 for an unknown provider,
                401 for a bad signature, 400 for a malformed verified body.
        """
        if not tenant_id:
            raise ErrMissingTenant
        handler = self._registry.get(provider)
        provider = handler.name
        lowered = {k.lower(): v for k, v in headers.items()}
        secret = self._engine.config.provider_secret(provider)

        incoming = WebhookIncoming(
            tenant_id=tenant_id,
            provider=provider,
            signature=handler.signature(lowered)[:500],
            headers={k: v for k, v in lowered.items() if k not in _DROP_HEADERS},
            body=body.decode("utf-8", errors="replace"),
            ip_address=ip_address[:45],
            user_agent=user_agent[:500],
        )

        if not handler.verify(body, lowered, secret):
            incoming.is_verified = False
            await self._save(incoming)
            self._record(provider, "invalid_signature")
            logger.warning(
                "Rejected %s webhook for tenant %s: invalid signature (audit row %s)",
                provider,
                tenant_id,
                incoming.id,
            )
            raise ErrInvalidSignature

        incoming.is_verified = True
        try:
            parsed = handler.parse(body)
        except WebhookError as exc:
            incoming.is_processed = True
            incoming.processed_at = utcnow()
            incoming.processing_error = exc.message
            await self._save(incoming)
            self._record(provider, "malformed")
            raise

        incoming.event = parsed.event[:100]
        incoming.event_id = parsed.event_id[:255]
        incoming.dedup_key = dedup_key(provider, parsed.event_id)

        existing = await self._find_by_key(tenant_id, incoming.dedup_key)
        if existing is not None:
            self._record(provider, "duplicate")
            logger.info("Duplicate %s event %s ignored", provider, parsed.event_id)
            return ReceiveResult(incoming=existing, duplicate=True)

        try:
            await self._save(incoming)
        except IntegrityError:
            existing = await self._find_by_key(tenant_id, incoming.dedup_key)
            if existing is None:
                raise
            self._record(provider, "duplicate")
            return ReceiveResult(incoming=existing, duplicate=True)

        self._record(provider, "accepted")
        logger.info(
            "Accepted %s event %s (%s) for tenant %s",
            provider,
            parsed.event_id,
            parsed.event,
            tenant_id,
        )
        self._engine.submit_incoming(incoming.id)
        return ReceiveResult(incoming=incoming)

    async def process(self, incoming_id: str) -> WebhookIncoming | None:
        """Run the provider handler for a verified, unprocessed row.

        Produced domain events are published on the event bus.  Handler
        failures are recorded in ``processing_error``.
        """
        async with self._engine.datastore.session() as session:
            incoming = await session.get(WebhookIncoming, incoming_id)
        if incoming is None or not incoming.is_verified or incoming.is_processed:
            return None

        error = ""
        try:
            handler = self._registry.get(incoming.provider)
            parsed = handler.parse(incoming.body.encode("utf-8"))
            events = await handler.handle(incoming, parsed)
            for event in events:
                await self._engine.event_bus.publish(event)
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            logger.exception("Handler for %s webhook %s failed", incoming.provider, incoming.id)

        now = utcnow()
        async with self._engine.datastore.session() as session:
            await session.execute(
                update(WebhookIncoming)
                .where(
                    WebhookIncoming.id == incoming_id,
                    WebhookIncoming.is_processed.is_(False),
                )
                .values(is_processed=True, processed_at=now, processing_error=error)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return await session.get(WebhookIncoming, incoming_id, populate_existing=True)

    async def recover(self, *, now: datetime | None = None) -> int:
        """Resubmit verified callbacks whose handling never completed.

        Rows older than ``incoming.stale_seconds`` that are still unprocessed
        lost their hand-off (queue full, pool stopped, process restart).

        Returns:
            Number of rows submitted.
        """
        config = self._engine.config.incoming
        cutoff = (now or utcnow()) - timedelta(seconds=config.stale_seconds)
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                select(WebhookIncoming.id)
                .where(
                    WebhookIncoming.is_verified.is_(True),
                    WebhookIncoming.is_processed.is_(False),
                    WebhookIncoming.created_at <= cutoff,
                )
                .order_by(WebhookIncoming.created_at)
                .limit(config.recovery_batch_size)
            )
            ids = list(result.scalars().all())

        submitted = sum(1 for incoming_id in ids if self._engine.submit_incoming(incoming_id))
        if ids:
            logger.warning(
                "Resubmitted %d of %d unprocessed incoming webhook(s)", submitted, len(ids)
            )
        return submitted

    async def get(self, tenant_id: str, incoming_id: str) -> WebhookIncoming | None:
        async with self._engine.datastore.session() as session:
            incoming = await session.get(WebhookIncoming, incoming_id)
        if incoming is None or incoming.tenant_id != tenant_id:
            return None
        return incoming

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _save(self, incoming: WebhookIncoming) -> None:
        async with self._engine.datastore.session() as session:
            session.add(incoming)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise
            await session.refresh(incoming)

    async def _find_by_key(self, tenant_id: str, key: str) -> WebhookIncoming | None:
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                select(WebhookIncoming).where(
                    WebhookIncoming.tenant_id == tenant_id,
                    WebhookIncoming.dedup_key == key,
                )
            )
            return result.scalar_one_or_none()

    def _record(self, provider: str, result: str) -> None:
        if self._engine.metrics:
            self._engine.metrics.record_incoming(provider, result)
