"""Provider registry — maps a provider tag to its handler."""

from __future__ import annotations

from typing import TYPE_CHECKING

from webhook_service.engine.incoming.providers import (
    BkashHandler,
    DHLHandler,
    FedExHandler,
    NagadHandler,
    PaperflyHandler,
    PathaoHandler,
    PayPalHandler,
    RedXHandler,
    RocketHandler,
    StripeHandler,
)
from webhook_service.errors.definitions import ErrUnknownProvider

if TYPE_CHECKING:
    from webhook_service.config.settings import IncomingConfig
    from webhook_service.engine.incoming.providers import ProviderHandler


class ProviderRegistry:
    """Lookup table of provider handlers keyed by lower-case tag."""

    def __init__(self) -> None:
        self._handlers: dict[str, ProviderHandler] = {}

    def register(self, handler: ProviderHandler) -> None:
        """Add or replace the handler for ``handler.name``."""
        if not handler.name:
            msg = "provider handler must define a name"
            raise ValueError(msg)
        self._handlers[handler.name.lower()] = handler

    def get(self, provider: str) -> ProviderHandler:
        """Return the handler for *provider*.

        Raises:
            WebhookError: If the provider is not registered.
        """
        handler = self._handlers.get((provider or "").lower())
        if handler is None:
            raise ErrUnknownProvider
        return handler

    def __contains__(self, provider: object) -> bool:
        return isinstance(provider, str) and provider.lower() in self._handlers

    @property
    def providers(self) -> list[str]:
        return sorted(self._handlers)


def default_registry(config: IncomingConfig | None = None) -> ProviderRegistry:
    """Registry with every built-in payment gateway and carrier."""
    tolerance = config.stripe_tolerance_seconds if config is not None else 300
    registry = ProviderRegistry()
    for handler in (
        StripeHandler(tolerance_seconds=tolerance),
        PayPalHandler(),
        BkashHandler(),
        NagadHandler(),
        RocketHandler(),
        PathaoHandler(),
        RedXHandler(),
        PaperflyHandler(),
        DHLHandler(),
        FedExHandler(),
    ):
        registry.register(handler)
    return registry
