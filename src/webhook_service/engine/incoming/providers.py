"""Provider handlers — signature schemes and payload mapping per provider.

Every handler answers three questions about a callback:
``verify`` (is it authentic?), ``parse`` (what is it?) and ``handle``
(which domain events does it produce?).
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from webhook_service.errors.definitions import ErrMalformedPayload
from webhook_service.notifications.events import DomainEvent, WebhookEvent
from webhook_service.utils.signing import sign, verify

if TYPE_CHECKING:
    from collections.abc import Mapping

    from webhook_service.engine.models.incoming import WebhookIncoming

logger = logging.getLogger(__name__)

PROVIDER_KIND_PAYMENT = "payment"
PROVIDER_KIND_SHIPPING = "shipping"


@dataclass(frozen=True)
class ParsedEvent:
    """Provider event identity plus the object it describes."""

    event: str
    event_id: str
    data: dict[str, Any] = field(default_factory=dict)


def _load_json(body: bytes) -> dict[str, Any]:
    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, ValueError) as e:
        raise ErrMalformedPayload from e
    if not isinstance(payload, dict):
        raise ErrMalformedPayload
    return payload


class ProviderHandler:
    """Base handler: hex HMAC-SHA256 of the raw body in a provider header.

    Subclasses override :meth:`verify` for other signature schemes and set
    the field names and event map used by :meth:`parse` / :meth:`handle`.
    """

    name: str = ""
    kind: str = PROVIDER_KIND_PAYMENT
    signature_header: str = ""
    event_field: str = "event"
    id_field: str = "event_id"
    data_field: str = "data"
    event_map: Mapping[str, str] = {}  # noqa: RUF012

    def signature(self, headers: Mapping[str, str]) -> str:
        """Raw signature header value ('' if absent); *headers* are lower-cased."""
        return headers.get(self.signature_header.lower(), "")

    def verify(self, body: bytes, headers: Mapping[str, str], secret: str) -> bool:
        return verify(body, self.signature(headers), secret)

    def parse(self, body: bytes) -> ParsedEvent:
        """Extract event type and id.

        Raises:
            WebhookError: If the body is not a JSON object with both fields.
        """
        payload = _load_json(body)
        event = payload.get(self.event_field)
        event_id = payload.get(self.id_field)
        if not event or not event_id:
            raise ErrMalformedPayload
        data = payload.get(self.data_field)
        return ParsedEvent(
            event=str(event),
            event_id=str(event_id),
            data=data if isinstance(data, dict) else payload,
        )

    def map_event(self, event: str) -> str | None:
        return self.event_map.get(event)

    async def handle(self, incoming: WebhookIncoming, parsed: ParsedEvent) -> list[DomainEvent]:
        """Translate the callback into domain events (empty if unmapped)."""
        mapped = self.map_event(parsed.event)
        if mapped is None:
            logger.info("%s event %s has no domain mapping, ignoring", self.name, parsed.event)
            return []
        return [
            DomainEvent(
                tenant_id=incoming.tenant_id,
                type=str(mapped),
                event_id=incoming.id,
                data={
                    "provider": self.name,
                    "provider_event": parsed.event,
                    "provider_event_id": parsed.event_id,
                    "object": parsed.data,
                },
            )
        ]


# ---------------------------------------------------------------------------
# Payment gateways
# ---------------------------------------------------------------------------


class StripeHandler(ProviderHandler):
    """Stripe: ``Stripe-Signature: t=<ts>,v1=<hex>`` over ``"<ts>.<body>"``."""

    name = "stripe"
    signature_header = "Stripe-Signature"
    event_field = "type"
    id_field = "id"
    event_map = {  # noqa: RUF012
        "payment_intent.succeeded": WebhookEvent.PAYMENT_SUCCEEDED,
        "charge.succeeded": WebhookEvent.PAYMENT_SUCCEEDED,
        "payment_intent.payment_failed": WebhookEvent.PAYMENT_FAILED,
        "charge.failed": WebhookEvent.PAYMENT_FAILED,
        "charge.refunded": WebhookEvent.PAYMENT_REFUNDED,
    }

    def __init__(self, tolerance_seconds: int = 300) -> None:
        self._tolerance = tolerance_seconds

    def verify(self, body: bytes, headers: Mapping[str, str], secret: str) -> bool:
        if not secret:
            return False
        timestamp = ""
        candidates: list[str] = []
        for item in self.signature(headers).split(","):
            key, _, value = item.strip().partition("=")
            if key == "t":
                timestamp = value
            elif key == "v1":
                candidates.append(value)
        if not timestamp.isdigit() or not candidates:
            return False
        if abs(time.time() - int(timestamp)) > self._tolerance:
            return False
        signed = timestamp.encode() + b"." + body
        return any(verify(signed, candidate, secret) for candidate in candidates)

    def parse(self, body: bytes) -> ParsedEvent:
        parsed = super().parse(body)
        obj = parsed.data.get("object") if isinstance(parsed.data, dict) else None
        return ParsedEvent(
            event=parsed.event,
            event_id=parsed.event_id,
            data=obj if isinstance(obj, dict) else parsed.data,
        )

    @staticmethod
    def signature_for(body: bytes, secret: str, timestamp: int | None = None) -> str:
        """Build a ``Stripe-Signature`` header value (used by tests and tooling)."""
        ts = int(time.time()) if timestamp is None else timestamp
        return f"t={ts},v1={sign(str(ts).encode() + b'.' + body, secret)}"


class PayPalHandler(ProviderHandler):
    name = "paypal"
    signature_header = "PAYPAL-TRANSMISSION-SIG"
    event_field = "event_type"
    id_field = "id"
    data_field = "resource"
    event_map = {  # noqa: RUF012
        "PAYMENT.CAPTURE.COMPLETED": WebhookEvent.PAYMENT_SUCCEEDED,
        "PAYMENT.CAPTURE.DENIED": WebhookEvent.PAYMENT_FAILED,
        "PAYMENT.CAPTURE.DECLINED": WebhookEvent.PAYMENT_FAILED,
        "PAYMENT.CAPTURE.REFUNDED": WebhookEvent.PAYMENT_REFUNDED,
    }


_MOBILE_WALLET_EVENTS = {
    "payment.success": WebhookEvent.PAYMENT_SUCCEEDED,
    "payment.completed": WebhookEvent.PAYMENT_SUCCEEDED,
    "payment.failed": WebhookEvent.PAYMENT_FAILED,
    "payment.cancelled": WebhookEvent.PAYMENT_FAILED,
    "payment.refunded": WebhookEvent.PAYMENT_REFUNDED,
}


class BkashHandler(ProviderHandler):
    name = "bkash"
    signature_header = "X-Bkash-Signature"
    event_map = _MOBILE_WALLET_EVENTS


class NagadHandler(ProviderHandler):
    name = "nagad"
    signature_header = "X-Nagad-Signature"
    event_map = _MOBILE_WALLET_EVENTS


class RocketHandler(ProviderHandler):
    name = "rocket"
    signature_header = "X-Rocket-Signature"
    event_map = _MOBILE_WALLET_EVENTS


# ---------------------------------------------------------------------------
# Shipping carriers
# ---------------------------------------------------------------------------

_CARRIER_STATUSES = {
    "created": WebhookEvent.SHIPMENT_CREATED,
    "booked": WebhookEvent.SHIPMENT_CREATED,
    "picked_up": WebhookEvent.SHIPMENT_SHIPPED,
    "shipped": WebhookEvent.SHIPMENT_SHIPPED,
    "in_transit": WebhookEvent.SHIPMENT_SHIPPED,
    "delivered": WebhookEvent.SHIPMENT_DELIVERED,
}


class CarrierHandler(ProviderHandler):
    """Carriers report ``shipment.<status>``; only the status is mapped."""

    kind = PROVIDER_KIND_SHIPPING
    event_map = _CARRIER_STATUSES

    def map_event(self, event: str) -> str | None:
        status = event.rsplit(".", 1)[-1].strip().lower().replace("-", "_").replace(" ", "_")
        return self.event_map.get(status)


class PathaoHandler(CarrierHandler):
    name = "pathao"
    signature_header = "X-Pathao-Signature"


class RedXHandler(CarrierHandler):
    name = "redx"
    signature_header = "X-RedX-Signature"


class PaperflyHandler(CarrierHandler):
    name = "paperfly"
    signature_header = "X-Paperfly-Signature"


class DHLHandler(CarrierHandler):
    name = "dhl"
    signature_header = "X-DHL-Signature"


class FedExHandler(CarrierHandler):
    name = "fedex"
    signature_header = "X-FedEx-Signature"
