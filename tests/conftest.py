"""Shared test fixtures for the webhook-service test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from webhook_service.config.settings import DatabaseEngine

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from webhook_service.engine.client import WebhookEngine

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"
ENDPOINT_URL = "https://shop.example.com/hooks"


class Recorder:
    """MockTransport handler replying with a scripted sequence of statuses.

    The last status repeats once the script runs out.
    """

    def __init__(self, *statuses: int) -> None:
        self._statuses = list(statuses) or [200]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self._statuses[min(len(self.requests), len(self._statuses)) - 1]
        return httpx.Response(status, text="ok" if status < 300 else "upstream error")


@pytest.fixture
def app_config(tmp_path):
    """Test AppConfig backed by a per-test SQLite file, cron jobs off."""
    from webhook_service.config.settings import AppConfig, DatabaseConfig, TaskConfig

    return AppConfig(
        debug=True,
        db=DatabaseConfig(
            engine=DatabaseEngine.SQLITE,
            dsn=f"sqlite+aiosqlite:///{tmp_path / 'webhooks.db'}",
        ),
        task=TaskConfig(enabled=False),
        providers={
            "stripe": "whsec_stripe_test",
            "bkash": "bkash-secret",
            "pathao": "pathao-secret",
        },
    )


@pytest.fixture
async def engine(app_config) -> AsyncIterator[WebhookEngine]:
    """Initialized engine; closed after the test."""
    from webhook_service.engine.client import WebhookEngine

    eng = WebhookEngine(app_config)
    await eng.initialize()
    # Never reach the network; tests that care install their own script
    await eng.sender.close()
    eng.sender._client = httpx.AsyncClient(transport=httpx.MockTransport(Recorder(200)))
    yield eng
    await eng.close()


@pytest.fixture
def transport(engine) -> Callable[..., Awaitable[Recorder]]:
    """Route the engine's outbound HTTP through a scripted :class:`Recorder`.

    Usage::

        recorder = await transport(500, 200)
    """

    async def _install(*statuses: int) -> Recorder:
        recorder = Recorder(*statuses)
        sender = engine.sender
        if sender._client is not None:
            await sender._client.aclose()
        sender._client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
        return recorder

    return _install


@pytest.fixture
def make_endpoint(engine):
    """Create an endpoint for TENANT subscribed to ``order.created`` by default."""

    async def _make(
        tenant_id: str = TENANT,
        *,
        url: str = ENDPOINT_URL,
        events: list[str] | None = None,
        secret: str = "whsec_endpoint_secret",
        **kwargs,
    ):
        return await engine.endpoint_service.create(
            tenant_id, url, events or ["order.created"], secret, **kwargs
        )

    return _make


@pytest.fixture
def test_client(app_config):
    """FastAPI TestClient without lifespan (no engine attached)."""
    from fastapi.testclient import TestClient

    from webhook_service.api.app import create_app

    app = create_app(config=app_config)
    return TestClient(app, raise_server_exceptions=False)
