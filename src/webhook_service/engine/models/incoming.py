"""Incoming webhook model — a received third-party callback."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[datetime]

from sqlalchemy import JSON, Boolean, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from webhook_service.engine.models.base import Base, TimestampMixin, UTCDateTime, new_id


class WebhookIncoming(Base, TimestampMixin):
    """A provider callback, stored verbatim for audit.

    ``dedup_key`` (``provider:event_id``) is only set on verified rows and is
    unique per tenant, so the index rejects redeliveries to the same tenant
    while unverified audit rows never collide with a later genuine event.
    """

    __tablename__ = "webhook_incoming"
    __table_args__ = (
        UniqueConstraint("tenant_id", "dedup_key", name="uq_webhook_incoming_dedup"),
        Index("ix_webhook_incoming_unprocessed", "is_verified", "is_processed", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    event: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    event_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    signature: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    dedup_key: Mapped[str | None] = mapped_column(String(320), nullable=True)

    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    headers: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False, default="")
    user_agent: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    processing_error: Mapped[str] = mapped_column(Text, nullable=False, default="")

    def __repr__(self) -> str:
        return (
            f"<WebhookIncoming id={self.id} provider={self.provider} "
            f"verified={self.is_verified} processed={self.is_processed}>"
        )
