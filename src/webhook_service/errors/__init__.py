"""Error types for the webhook service."""

from webhook_service.errors.webhook_errors import WebhookError

__all__ = ["WebhookError"]
