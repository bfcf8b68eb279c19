"""Configuration — pydantic-settings models."""

from webhook_service.config.settings import AppConfig

__all__ = ["AppConfig"]
