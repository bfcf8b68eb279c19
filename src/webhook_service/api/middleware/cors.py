"""CORS middleware configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.middleware.cors import CORSMiddleware

from webhook_service.api.middleware.tenant import TENANT_HEADER

if TYPE_CHECKING:
    from fastapi import FastAPI

# Signature headers are echoed on test responses so dashboards can show them
_EXPOSED_HEADERS = ["x-webhook-id", "x-webhook-signature", "x-webhook-timestamp"]


def setup_cors(app: FastAPI) -> None:
    """Allow any origin to call the management API with a tenant header."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["content-type", TENANT_HEADER],
        expose_headers=_EXPOSED_HEADERS,
    )
