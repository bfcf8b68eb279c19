"""Event types for the notification system.

- ``WebhookEvent``: the catalogue of outbound event type strings
- ``DomainEvent``: envelope published on the in-process event bus
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any


class WebhookEvent(enum.StrEnum):
    """Event types tenants can subscribe endpoints to."""

    # Order
    ORDER_CREATED = "order.created"
    ORDER_UPDATED = "order.updated"
    ORDER_CANCELLED = "order.cancelled"
    ORDER_FULFILLED = "order.fulfilled"

    # Payment
    PAYMENT_CREATED = "payment.created"
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_REFUNDED = "payment.refunded"

    # Product
    PRODUCT_CREATED = "product.created"
    PRODUCT_UPDATED = "product.updated"
    PRODUCT_DELETED = "product.deleted"
    INVENTORY_LOW = "inventory.low"

    # Customer
    CUSTOMER_CREATED = "customer.created"
    CUSTOMER_UPDATED = "customer.updated"

    # Shipment
    SHIPMENT_CREATED = "shipment.created"
    SHIPMENT_SHIPPED = "shipment.shipped"
    SHIPMENT_DELIVERED = "shipment.delivered"


EVENT_TYPES: frozenset[str] = frozenset(e.value for e in WebhookEvent)


def is_known_event(event: str) -> bool:
    return event in EVENT_TYPES


@dataclass(frozen=True)
class DomainEvent:
    """Something that happened inside a tenant, to be fanned out to endpoints."""

    tenant_id: str
    type: str
    data: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
