"""Notifications — domain event catalogue and in-process fan-out.

Provides:
- ``WebhookEvent``: outbound event type catalogue
- ``DomainEvent``: event envelope
- ``EventBus``: fan-out bus using asyncio queues
- ``EventRelay``: forwards bus events to a coroutine (the dispatcher)
"""

from __future__ import annotations

from webhook_service.notifications.events import EVENT_TYPES, DomainEvent, WebhookEvent
from webhook_service.notifications.service import EventBus, EventRelay

__all__ = [
    "EVENT_TYPES",
    "DomainEvent",
    "EventBus",
    "EventRelay",
    "WebhookEvent",
]
