"""FastAPI dependency injection helpers.

Usage in a route::

    @router.get("/webhooks/endpoints")
    async def list_endpoints(
        tenant: Annotated[TenantContext, Depends(require_tenant)],
        engine: Annotated[WebhookEngine, Depends(get_engine)],
    ) -> ...:
        ...
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, Request

from webhook_service.api.middleware.tenant import TENANT_HEADER, TenantContext, resolve_tenant
from webhook_service.engine.client import WebhookEngine  # noqa: TC001
from webhook_service.errors.definitions import ErrEngineUnavailable


def get_engine(request: Request) -> WebhookEngine:
    """Retrieve the engine stored on ``app.state`` during lifespan startup."""
    engine: WebhookEngine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        raise ErrEngineUnavailable
    return engine


def require_tenant(
    x_tenant_id: Annotated[str, Header(alias=TENANT_HEADER)] = "",
) -> TenantContext:
    """Tenant from the ``X-Tenant-ID`` header (400 when absent or malformed)."""
    return resolve_tenant(x_tenant_id)
