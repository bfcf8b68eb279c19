"""V1 REST API routes.

Combines all sub-routers under the ``/api/v1`` prefix.
"""

from fastapi import APIRouter

from webhook_service.api.v1.deliveries import router as deliveries_router
from webhook_service.api.v1.endpoints import router as endpoints_router
from webhook_service.api.v1.events import router as events_router
from webhook_service.api.v1.incoming import router as incoming_router

v1_router = APIRouter(prefix="/api/v1")

v1_router.include_router(endpoints_router)
v1_router.include_router(deliveries_router)
v1_router.include_router(events_router)
v1_router.include_router(incoming_router)

__all__ = ["v1_router"]
