"""Rate limiter — fixed hour-aligned request windows per endpoint.

Counters live in ``webhook_rate_limits``, one row per endpoint per window.
A new window simply has no row yet, so the limit resets on the hour without
any explicit reset step.  Increments are single ``UPDATE ... SET
request_count = request_count + 1`` statements; concurrent attempts never
lose updates.

The dispatcher takes a slot with :meth:`RateLimiter.reserve` before it
creates a delivery: the limit check and the increment are one conditional
``UPDATE``, so concurrent dispatches cannot both pass a nearly full window.
Retries are counted afterwards with :meth:`RateLimiter.increment`.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from webhook_service.engine.models.base import utcnow
from webhook_service.engine.models.rate_limit import WebhookRateLimit

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from webhook_service.engine.client import WebhookEngine
    from webhook_service.engine.models.endpoint import WebhookEndpoint

logger = logging.getLogger(__name__)


def window_bounds(now: datetime, window_seconds: int = 3600) -> tuple[datetime, datetime]:
    """Return ``(start, end)`` of the window containing *now*.

    Windows are aligned to the Unix epoch, so a 3600 s window starts on the
    hour in UTC.
    """
    epoch = int(now.timestamp())
    start_ts = epoch - (epoch % window_seconds)
    start = datetime.fromtimestamp(start_ts, tz=UTC)
    return start, start + timedelta(seconds=window_seconds)


class RateLimiter:
    """Per-endpoint request budget backed by the datastore."""

    def __init__(self, engine: WebhookEngine) -> None:
        self._engine = engine

    @property
    def _window_seconds(self) -> int:
        return self._engine.config.rate_limit.window_seconds

    @property
    def _default_limit(self) -> int:
        return self._engine.config.rate_limit.default_limit

    async def current_window(
        self, endpoint: WebhookEndpoint, *, now: datetime | None = None
    ) -> WebhookRateLimit | None:
        """The counter row for the window containing *now*, if any."""
        start, _ = window_bounds(now or utcnow(), self._window_seconds)
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                select(WebhookRateLimit).where(
                    WebhookRateLimit.tenant_id == endpoint.tenant_id,
                    WebhookRateLimit.endpoint_id == endpoint.id,
                    WebhookRateLimit.window_start == start,
                )
            )
            return result.scalar_one_or_none()

    async def is_limited(self, endpoint: WebhookEndpoint, *, now: datetime | None = None) -> bool:
        """True when the endpoint has used its budget for the current window."""
        row = await self.current_window(endpoint, now=now)
        if row is None:
            return False
        return row.request_count >= row.limit

    async def increment(self, endpoint: WebhookEndpoint, *, now: datetime | None = None) -> None:
        """Count one request against the current window."""
        start, end = window_bounds(now or utcnow(), self._window_seconds)
        async with self._engine.datastore.session() as session:
            if await self._bump(session, endpoint, start):
                await session.commit()
                return
            if not await self._open_window(session, endpoint, start, end):
                await self._bump(session, endpoint, start)
                await session.commit()

    async def reserve(self, endpoint: WebhookEndpoint, *, now: datetime | None = None) -> bool:
        """Take one request slot in the current window if any are left.

        Returns:
            False when the window is already at its limit; nothing is
            counted in that case.
        """
        start, end = window_bounds(now or utcnow(), self._window_seconds)
        async with self._engine.datastore.session() as session:
            if await self._bump(session, endpoint, start, below_limit=True):
                await session.commit()
                return True
            if self._default_limit > 0 and await self._open_window(session, endpoint, start, end):
                return True
            # The window row exists: either full, or created by a concurrent task
            reserved = await self._bump(session, endpoint, start, below_limit=True)
            await session.commit()
        return reserved

    async def cleanup(self, older_than: datetime | None = None) -> int:
        """Delete windows that ended before *older_than* (default: now)."""
        cutoff = older_than or utcnow()
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                delete(WebhookRateLimit).where(WebhookRateLimit.window_end < cutoff)
            )
            await session.commit()
        count = result.rowcount or 0  # type: ignore[attr-defined]
        if count:
            logger.info("Removed %d expired rate limit windows", count)
        return count

    async def _open_window(
        self, session: AsyncSession, endpoint: WebhookEndpoint, start: datetime, end: datetime
    ) -> bool:
        """Insert the window row with one request counted.

        Returns False (session rolled back) if the row already exists.
        """
        session.add(
            WebhookRateLimit(
                tenant_id=endpoint.tenant_id,
                endpoint_id=endpoint.id,
                window_start=start,
                window_end=end,
                request_count=1,
                limit=self._default_limit,
            )
        )
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            return False
        return True

    @staticmethod
    async def _bump(
        session: AsyncSession,
        endpoint: WebhookEndpoint,
        start: datetime,
        *,
        below_limit: bool = False,
    ) -> bool:
        stmt = update(WebhookRateLimit).where(
            WebhookRateLimit.tenant_id == endpoint.tenant_id,
            WebhookRateLimit.endpoint_id == endpoint.id,
            WebhookRateLimit.window_start == start,
        )
        if below_limit:
            stmt = stmt.where(WebhookRateLimit.request_count < WebhookRateLimit.limit)
        result = await session.execute(
            stmt.values(request_count=WebhookRateLimit.request_count + 1).execution_options(
                synchronize_session=False
            )
        )
        return bool(result.rowcount)
