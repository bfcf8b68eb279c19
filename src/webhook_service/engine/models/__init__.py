"""Engine data models (SQLAlchemy ORM).

Import :data:`ALL_MODELS` for migration and table creation.
"""

from webhook_service.engine.models.base import Base, SoftDeleteMixin, TimestampMixin
from webhook_service.engine.models.delivery import WebhookDelivery
from webhook_service.engine.models.endpoint import WebhookEndpoint
from webhook_service.engine.models.incoming import WebhookIncoming
from webhook_service.engine.models.rate_limit import WebhookRateLimit

ALL_MODELS: list[type[Base]] = [
    WebhookEndpoint,
    WebhookDelivery,
    WebhookIncoming,
    WebhookRateLimit,
]

__all__ = [
    "ALL_MODELS",
    "Base",
    "SoftDeleteMixin",
    "TimestampMixin",
    "WebhookDelivery",
    "WebhookEndpoint",
    "WebhookIncoming",
    "WebhookRateLimit",
]
