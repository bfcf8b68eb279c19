"""Webhook delivery model — one event sent to one endpoint."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[datetime]

from sqlalchemy import JSON, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from webhook_service.engine.models.base import Base, TimestampMixin, UTCDateTime, new_id

DELIVERY_STATUS_PENDING = "pending"
DELIVERY_STATUS_DELIVERING = "delivering"
DELIVERY_STATUS_DELIVERED = "delivered"
DELIVERY_STATUS_FAILED = "failed"

DELIVERY_STATUSES = frozenset(
    {
        DELIVERY_STATUS_PENDING,
        DELIVERY_STATUS_DELIVERING,
        DELIVERY_STATUS_DELIVERED,
        DELIVERY_STATUS_FAILED,
    }
)


class WebhookDelivery(Base, TimestampMixin):
    """Attempt-tracked record of sending one event to one endpoint.

    Status moves ``pending -> delivering -> delivered | failed``; a failed
    delivery re-enters ``delivering`` only while ``attempt_count < max_attempts``.
    """

    __tablename__ = "webhook_deliveries"
    __table_args__ = (
        Index("ix_webhook_deliveries_retry", "status", "next_retry_at"),
        Index("ix_webhook_deliveries_tenant_endpoint", "tenant_id", "endpoint_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    endpoint_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    event: Mapped[str] = mapped_column(String(50), nullable=False)
    event_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DELIVERY_STATUS_PENDING
    )
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    # Request snapshot
    request_method: Mapped[str] = mapped_column(String(8), nullable=False, default="POST")
    request_url: Mapped[str] = mapped_column(String(500), nullable=False)
    request_headers: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    request_body: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Response snapshot
    response_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_headers: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    response_body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    response_time: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Round trip in milliseconds"
    )
    error_message: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Timing
    last_attempt_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    next_retry_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    @property
    def is_delivered(self) -> bool:
        return self.status == DELIVERY_STATUS_DELIVERED and self.delivered_at is not None

    @property
    def is_terminal(self) -> bool:
        """Delivered, or failed with no attempts left."""
        if self.status == DELIVERY_STATUS_DELIVERED:
            return True
        return self.status == DELIVERY_STATUS_FAILED and self.attempt_count >= self.max_attempts

    def should_retry(self, now: datetime) -> bool:
        """Failed with attempts left and a retry time that has elapsed."""
        return (
            self.status == DELIVERY_STATUS_FAILED
            and self.attempt_count < self.max_attempts
            and self.next_retry_at is not None
            and self.next_retry_at <= now
        )

    def __repr__(self) -> str:
        return (
            f"<WebhookDelivery id={self.id} event={self.event} status={self.status} "
            f"attempts={self.attempt_count}/{self.max_attempts}>"
        )
