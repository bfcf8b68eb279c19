"""Rate limit model — fixed-window request counter per endpoint."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[datetime]

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from webhook_service.engine.models.base import Base, TimestampMixin, UTCDateTime, new_id


class WebhookRateLimit(Base, TimestampMixin):
    """Request counter for one endpoint in one hour-aligned window."""

    __tablename__ = "webhook_rate_limits"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "endpoint_id", "window_start", name="uq_webhook_rate_limit_window"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    endpoint_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    window_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    window_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    limit: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)

    def is_limited(self, now: datetime) -> bool:
        return self.request_count >= self.limit and now < self.window_end

    def __repr__(self) -> str:
        return (
            f"<WebhookRateLimit endpoint={self.endpoint_id} "
            f"window={self.window_start.isoformat()} count={self.request_count}/{self.limit}>"
        )
