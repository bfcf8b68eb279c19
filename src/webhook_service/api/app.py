"""FastAPI application factory.

``create_app`` wires config, metrics and routes; the engine itself is only
started by the lifespan hook, so the factory is cheap to call in tests.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from webhook_service import __version__
from webhook_service.api.middleware.cors import setup_cors
from webhook_service.api.v1 import v1_router
from webhook_service.config.settings import AppConfig
from webhook_service.engine.client import WebhookEngine
from webhook_service.errors.webhook_errors import WebhookError
from webhook_service.metrics.collector import EngineMetrics
from webhook_service.metrics.middleware import PrometheusMiddleware

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

# Component states that do not make the service unhealthy
_HEALTHY_STATES = frozenset({"ok", "disabled"})


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    engine = WebhookEngine(app.state.config, metrics=app.state.metrics)
    try:
        await engine.initialize()
        app.state.engine = engine
        yield
    finally:
        app.state.engine = None
        await engine.close()


async def _render_webhook_error(request: Request, exc: WebhookError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.code, "message": exc.message},
    )


async def health(request: Request) -> JSONResponse:
    """Readiness: 200 only when every engine component is up."""
    engine: WebhookEngine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        return JSONResponse(status_code=503, content={"status": "starting"})
    components = await engine.health_check()
    healthy = all(state in _HEALTHY_STATES for state in components.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "ok" if healthy else "degraded", "components": components},
    )


async def metrics(request: Request) -> Response:
    return Response(
        content=generate_latest(request.app.state.metrics.registry),
        media_type=CONTENT_TYPE_LATEST,
    )


def create_app(*, config: AppConfig | None = None) -> FastAPI:
    """Build the application.

    Args:
        config: Settings to run with; read from the environment when omitted.
    """
    config = config or AppConfig()

    app = FastAPI(
        title="webhook-service",
        version=__version__,
        description="Multi-tenant webhook delivery and provider callback ingestion",
        lifespan=_lifespan,
    )
    app.state.config = config
    app.state.engine = None
    # Shared by the request middleware and the engine so /metrics shows both
    app.state.metrics = EngineMetrics()

    setup_cors(app)
    if config.metrics.enabled:
        app.add_middleware(PrometheusMiddleware, registry=app.state.metrics.registry)

    app.add_exception_handler(WebhookError, _render_webhook_error)  # type: ignore[arg-type]
    app.add_api_route("/health", health, methods=["GET"], tags=["base"])
    app.add_api_route(
        "/metrics", metrics, methods=["GET"], tags=["base"], include_in_schema=False
    )
    app.include_router(v1_router)
    return app
