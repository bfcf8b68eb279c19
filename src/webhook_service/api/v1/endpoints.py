"""V1 webhook endpoint management.

Tenants register URLs that receive signed POSTs for the event types they
subscribe to.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response

from webhook_service.api.dependencies import get_engine, require_tenant
from webhook_service.api.middleware.tenant import TenantContext  # noqa: TC001
from webhook_service.api.v1.schemas import (
    EndpointCreateRequest,
    EndpointCreateResponse,
    EndpointHealthResponse,
    EndpointResponse,
    EndpointUpdateRequest,
    TestResultResponse,
)
from webhook_service.engine.client import WebhookEngine  # noqa: TC001

router = APIRouter(prefix="/webhooks/endpoints", tags=["webhook-endpoints"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_ENDPOINT_FIELDS = tuple(EndpointResponse.model_fields)


def _endpoint_resp(ep: object, *, with_secret: bool = False) -> dict:
    values = {name: getattr(ep, name) for name in _ENDPOINT_FIELDS}
    if with_secret:
        return EndpointCreateResponse(**values, secret=ep.secret).model_dump(mode="json")  # type: ignore[attr-defined]
    return EndpointResponse(**values).model_dump(mode="json")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("", status_code=201)
async def create_endpoint(
    body: EndpointCreateRequest,
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    engine: Annotated[WebhookEngine, Depends(get_engine)],
) -> dict:
    """Register a new endpoint.  The response carries the signing secret."""
    endpoint = await engine.endpoint_service.create(
        tenant.tenant_id,
        body.url,
        body.events,
        body.secret,
        name=body.name,
        description=body.description,
        is_active=body.is_active,
        retry_policy=body.retry_policy,
        max_retries=body.max_retries,
        timeout_seconds=body.timeout_seconds,
        headers=body.headers,
    )
    return _endpoint_resp(endpoint, with_secret=True)


@router.get("")
async def list_endpoints(
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    engine: Annotated[WebhookEngine, Depends(get_engine)],
) -> list[dict]:
    endpoints = await engine.endpoint_service.list(tenant.tenant_id)
    return [_endpoint_resp(ep) for ep in endpoints]


@router.get("/{endpoint_id}")
async def get_endpoint(
    endpoint_id: str,
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    engine: Annotated[WebhookEngine, Depends(get_engine)],
) -> dict:
    endpoint = await engine.endpoint_service.get(tenant.tenant_id, endpoint_id)
    return _endpoint_resp(endpoint)


@router.api_route("/{endpoint_id}", methods=["PUT", "PATCH"])
async def update_endpoint(
    endpoint_id: str,
    body: EndpointUpdateRequest,
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    engine: Annotated[WebhookEngine, Depends(get_engine)],
) -> dict:
    """Change the supplied fields only."""
    endpoint = await engine.endpoint_service.update(
        tenant.tenant_id,
        endpoint_id,
        **body.model_dump(exclude_unset=True, exclude_none=True),
    )
    return _endpoint_resp(endpoint)


@router.delete("/{endpoint_id}", status_code=204)
async def delete_endpoint(
    endpoint_id: str,
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    engine: Annotated[WebhookEngine, Depends(get_engine)],
) -> Response:
    """Soft-delete the endpoint; queued deliveries are cancelled."""
    await engine.endpoint_service.delete(tenant.tenant_id, endpoint_id)
    return Response(status_code=204)


@router.post("/{endpoint_id}/test")
async def test_endpoint(
    endpoint_id: str,
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    engine: Annotated[WebhookEngine, Depends(get_engine)],
) -> dict:
    """Send a signed test payload and report the outcome."""
    result = await engine.endpoint_service.test(tenant.tenant_id, endpoint_id)
    return TestResultResponse(**asdict(result)).model_dump(mode="json")


@router.get("/{endpoint_id}/health")
async def endpoint_health(
    endpoint_id: str,
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    engine: Annotated[WebhookEngine, Depends(get_engine)],
    days: Annotated[int, Query(ge=1, le=90)] = 7,
) -> dict:
    health = await engine.endpoint_service.health(tenant.tenant_id, endpoint_id, days=days)
    return EndpointHealthResponse(**asdict(health)).model_dump(mode="json")
