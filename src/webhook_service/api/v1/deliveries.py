"""V1 delivery history, manual retry, stats and failure logs."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime  # noqa: TC003 - FastAPI needs this at runtime
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from webhook_service.api.dependencies import get_engine, require_tenant
from webhook_service.api.middleware.tenant import TenantContext  # noqa: TC001
from webhook_service.api.v1.schemas import (
    DeliveryResponse,
    DeliveryStatsResponse,
    PaginatedResponse,
)
from webhook_service.engine.client import WebhookEngine  # noqa: TC001

router = APIRouter(prefix="/webhooks", tags=["webhook-deliveries"])

_DELIVERY_FIELDS = tuple(DeliveryResponse.model_fields)


def _delivery_resp(d: object) -> dict:
    return DeliveryResponse(**{name: getattr(d, name) for name in _DELIVERY_FIELDS}).model_dump(
        mode="json"
    )


@router.get("/deliveries")
async def list_deliveries(
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    engine: Annotated[WebhookEngine, Depends(get_engine)],
    endpoint_id: str | None = None,
    status: str | None = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> dict:
    items, total = await engine.delivery_service.list(
        tenant.tenant_id,
        endpoint_id=endpoint_id,
        status=status,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(
        items=[_delivery_resp(d) for d in items],
        total=total,
        limit=limit,
        offset=offset,
    ).model_dump(mode="json")


@router.get("/deliveries/{delivery_id}")
async def get_delivery(
    delivery_id: str,
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    engine: Annotated[WebhookEngine, Depends(get_engine)],
) -> dict:
    delivery = await engine.delivery_service.get(tenant.tenant_id, delivery_id)
    return _delivery_resp(delivery)


@router.post("/deliveries/{delivery_id}/retry")
async def retry_delivery(
    delivery_id: str,
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    engine: Annotated[WebhookEngine, Depends(get_engine)],
) -> dict:
    """Queue a failed or pending delivery for an immediate attempt."""
    delivery = await engine.delivery_service.retry(tenant.tenant_id, delivery_id)
    return _delivery_resp(delivery)


@router.get("/stats")
async def delivery_stats(
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    engine: Annotated[WebhookEngine, Depends(get_engine)],
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    """Delivery counts and success rate (default: last 7 days)."""
    stats = await engine.delivery_service.stats(
        tenant.tenant_id, start_date=start_date, end_date=end_date
    )
    return DeliveryStatsResponse(**asdict(stats)).model_dump(mode="json")


@router.get("/logs")
async def delivery_logs(
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    engine: Annotated[WebhookEngine, Depends(get_engine)],
    limit: Annotated[int, Query(ge=1, le=200)] = 100,
) -> list[dict]:
    """Most recent failed deliveries."""
    failed = await engine.delivery_service.failed_logs(tenant.tenant_id, limit=limit)
    return [_delivery_resp(d) for d in failed]
