"""Signed outbound HTTP sender shared by deliveries and endpoint tests."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

from webhook_service.utils.signing import sign

if TYPE_CHECKING:
    from webhook_service.config.settings import DeliveryConfig

# Headers owned by the protocol; endpoint-configured extras cannot override them
PROTOCOL_HEADERS = frozenset(
    {
        "content-type",
        "user-agent",
        "x-webhook-event",
        "x-webhook-id",
        "x-webhook-timestamp",
        "x-webhook-signature",
    }
)


@dataclass
class SendResult:
    """Outcome of one HTTP attempt.

    ``status_code`` is None when the request never produced a response
    (DNS, connect, timeout); ``error`` then carries the transport error.
    """

    status_code: int | None = None
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""
    response_time_ms: int = 0
    error: str = ""

    @property
    def success(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300

    def error_message(self) -> str:
        """Human-readable failure reason ('' on success)."""
        if self.success:
            return ""
        if self.status_code is None:
            return self.error or "request failed"
        return f"HTTP {self.status_code}: {self.body}"


class WebhookSender:
    """Async HTTP client that signs and posts webhook bodies.

    Usage::

        sender = WebhookSender(config.delivery)
        await sender.connect()
        try:
            headers = sender.build_headers(body, secret=..., event=..., message_id=...)
            result = await sender.post(url, body, headers)
        finally:
            await sender.close()
    """

    def __init__(self, config: DeliveryConfig) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        self._client = httpx.AsyncClient(
            timeout=self._config.default_timeout_seconds,
            follow_redirects=False,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def build_headers(
        self,
        body: str,
        *,
        secret: str,
        event: str,
        message_id: str,
        extra: dict[str, str] | None = None,
        timestamp: int | None = None,
    ) -> dict[str, str]:
        """Protocol headers plus *extra*, with the signature over *body*."""
        headers = {
            k: v for k, v in (extra or {}).items() if k.lower() not in PROTOCOL_HEADERS
        }
        headers.update(
            {
                "Content-Type": "application/json",
                "User-Agent": self._config.user_agent,
                "X-Webhook-Event": event,
                "X-Webhook-ID": message_id,
                "X-Webhook-Timestamp": str(timestamp if timestamp is not None else int(time.time())),
                "X-Webhook-Signature": sign(body, secret),
            }
        )
        return headers

    async def post(
        self,
        url: str,
        body: str,
        headers: dict[str, str],
        *,
        timeout: float | None = None,
    ) -> SendResult:
        """POST *body* to *url*.  Transport failures are returned, not raised."""
        client = self._ensure_connected()
        start = time.monotonic()
        try:
            response = await client.post(
                url,
                content=body.encode("utf-8"),
                headers=headers,
                timeout=timeout or self._config.default_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            return SendResult(
                response_time_ms=int((time.monotonic() - start) * 1000),
                error=f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__,
            )
        elapsed = int((time.monotonic() - start) * 1000)
        return SendResult(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.text[: self._config.max_response_body],
            response_time_ms=elapsed,
        )

    def _ensure_connected(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "Webhook sender not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._client
