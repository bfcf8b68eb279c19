"""Application settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``WEBHOOKS_``, nested via ``__``)
2. YAML config file (``config_path`` field or ``WEBHOOKS_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class DatabaseEngine(enum.StrEnum):
    """Supported database engines."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class CacheEngine(enum.StrEnum):
    """Supported cache backends."""

    MEMORY = "memory"
    REDIS = "redis"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class ServerConfig(BaseSettings):
    """HTTP server settings."""

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOKS_SERVER__",
        case_sensitive=False,
    )

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8080
    log_level: str = "info"


class DatabaseConfig(BaseSettings):
    """Database settings."""

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOKS_DB__",
        case_sensitive=False,
    )

    engine: DatabaseEngine = Field(
        default=DatabaseEngine.SQLITE,
        description="Database backend: sqlite or postgresql",
    )
    dsn: str = Field(
        default="sqlite+aiosqlite:///./webhooks.db",
        description="Async database connection string",
    )
    max_idle_connections: int = 5
    max_open_connections: int = 10
    debug_sql: bool = False


class CacheConfig(BaseSettings):
    """Cache settings (used for cross-instance cron locks)."""

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOKS_CACHE__",
        case_sensitive=False,
    )

    engine: CacheEngine = Field(
        default=CacheEngine.MEMORY,
        description="Cache backend: memory or redis",
    )
    url: str = "redis://localhost:6379/0"
    max_connections: int = 10
    ttl_seconds: int = 300


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOKS_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = True


class TaskConfig(BaseSettings):
    """Background cron job settings."""

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOKS_TASK__",
        case_sensitive=False,
    )

    enabled: bool = True
    lock_ttl_seconds: int = 120


class DeliveryConfig(BaseSettings):
    """Outbound delivery settings."""

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOKS_DELIVERY__",
        case_sensitive=False,
    )

    workers: int = 16
    queue_size: int = 1000
    default_timeout_seconds: float = 30.0
    user_agent: str = "Webhook-Service/1.0"
    max_response_body: int = 65536
    disable_threshold: int = 10


class RetryConfig(BaseSettings):
    """Retry sweep and delivery retention settings."""

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOKS_RETRY__",
        case_sensitive=False,
    )

    sweep_period_seconds: float = 30.0
    batch_size: int = 100
    stale_pending_seconds: int = 300
    stale_delivering_seconds: int = 600
    retention_days: int = 30
    cleanup_period_seconds: float = 3600.0


class RateLimitConfig(BaseSettings):
    """Per-endpoint hourly request budget."""

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOKS_RATE_LIMIT__",
        case_sensitive=False,
    )

    default_limit: int = 1000
    window_seconds: int = 3600
    cleanup_period_seconds: float = 3600.0


class IncomingConfig(BaseSettings):
    """Inbound provider webhook settings."""

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOKS_INCOMING__",
        case_sensitive=False,
    )

    workers: int = 4
    queue_size: int = 500
    stripe_tolerance_seconds: int = 300
    # Verified callbacks still unprocessed after this long are handed off again
    stale_seconds: int = 300
    recovery_period_seconds: float = 60.0
    recovery_batch_size: int = 100


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Loads settings from environment variables (``WEBHOOKS_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOKS_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    version: str = "0.1.0"
    config_path: str = ""

    server: ServerConfig = Field(default_factory=ServerConfig)
    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    task: TaskConfig = Field(default_factory=TaskConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    incoming: IncomingConfig = Field(default_factory=IncomingConfig)

    # Provider tag -> shared signing secret for inbound webhooks
    providers: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                merged = {**val, **values[key]}
                values[key] = merged
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))

    def provider_secret(self, provider: str) -> str:
        """Return the configured inbound secret for *provider* ('' if none)."""
        return self.providers.get(provider.lower(), "")
