"""Cache layer (memory or Redis) used for distributed cron locks."""

from webhook_service.cache.client import CacheClient

__all__ = ["CacheClient"]
