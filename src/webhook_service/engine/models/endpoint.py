"""Webhook endpoint model — a tenant's subscription target."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[datetime]

from sqlalchemy import JSON, Boolean, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from webhook_service.engine.models.base import (
    Base,
    SoftDeleteMixin,
    TimestampMixin,
    UTCDateTime,
    new_id,
)

RETRY_POLICY_EXPONENTIAL = "exponential"
RETRY_POLICY_LINEAR = "linear"
RETRY_POLICY_NONE = "none"

RETRY_POLICIES = frozenset({RETRY_POLICY_EXPONENTIAL, RETRY_POLICY_LINEAR, RETRY_POLICY_NONE})

# Consecutive terminal failures after which an endpoint stops receiving events
DISABLE_THRESHOLD = 10

ENDPOINT_STATUS_DISABLED = "disabled"


class WebhookEndpoint(Base, TimestampMixin, SoftDeleteMixin):
    """A tenant-registered URL subscribed to a set of event types."""

    __tablename__ = "webhook_endpoints"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    url: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    events: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    secret: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    retry_policy: Mapped[str] = mapped_column(
        String(50), nullable=False, default=RETRY_POLICY_EXPONENTIAL,
        comment="exponential | linear | none",
    )
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    timeout_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=30.0)
    headers: Mapped[dict[str, str]] = mapped_column(
        JSON, nullable=False, default=dict, comment="Extra request headers"
    )

    # Health
    last_delivery_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def supports_event(self, event: str) -> bool:
        """Whether the endpoint is subscribed to *event*."""
        return event in (self.events or [])

    def is_disabled(self, threshold: int = DISABLE_THRESHOLD) -> bool:
        """Circuit breaker: too many consecutive terminal failures."""
        return self.failure_count >= threshold

    def is_dispatchable(self, threshold: int = DISABLE_THRESHOLD) -> bool:
        """Active, not deleted and not tripped by the failure threshold."""
        return self.is_active and not self.is_deleted and not self.is_disabled(threshold)

    def __repr__(self) -> str:
        return f"<WebhookEndpoint id={self.id} tenant={self.tenant_id} url={self.url[:30]}>"
