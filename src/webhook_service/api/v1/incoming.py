"""V1 inbound provider callbacks.

One route per provider tag; the raw body is verified against the
provider's signature scheme before anything is trusted.  Providers that
cannot send an ``X-Tenant-ID`` header use the tenant-scoped path.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from webhook_service.api.dependencies import get_engine, require_tenant
from webhook_service.api.middleware.tenant import TenantContext, resolve_tenant
from webhook_service.api.v1.schemas import IncomingReceivedResponse
from webhook_service.engine.client import WebhookEngine  # noqa: TC001

router = APIRouter(tags=["webhook-incoming"])


async def _receive(
    engine: WebhookEngine, tenant: TenantContext, provider: str, request: Request
) -> dict:
    body = await request.body()
    result = await engine.incoming_processor.receive(
        tenant.tenant_id,
        provider,
        body,
        dict(request.headers),
        ip_address=request.client.host if request.client else "",
        user_agent=request.headers.get("user-agent", ""),
    )
    return IncomingReceivedResponse(
        id=result.incoming.id,
        duplicate=result.duplicate,
    ).model_dump(mode="json")


@router.post("/webhooks/incoming/{provider}")
async def receive_webhook(
    provider: str,
    request: Request,
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    engine: Annotated[WebhookEngine, Depends(get_engine)],
) -> dict:
    """Provider callback with the tenant in ``X-Tenant-ID``."""
    return await _receive(engine, tenant, provider, request)


@router.post("/tenants/{tenant_id}/webhooks/incoming/{provider}")
async def receive_tenant_webhook(
    tenant_id: str,
    provider: str,
    request: Request,
    engine: Annotated[WebhookEngine, Depends(get_engine)],
) -> dict:
    """Provider callback with the tenant in the URL path."""
    return await _receive(engine, resolve_tenant(tenant_id), provider, request)
