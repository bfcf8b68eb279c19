"""Inbound provider webhooks: handlers, registry and processor."""

from webhook_service.engine.incoming.processor import IncomingProcessor, ReceiveResult
from webhook_service.engine.incoming.providers import ParsedEvent, ProviderHandler
from webhook_service.engine.incoming.registry import ProviderRegistry, default_registry

__all__ = [
    "IncomingProcessor",
    "ParsedEvent",
    "ProviderHandler",
    "ProviderRegistry",
    "ReceiveResult",
    "default_registry",
]
