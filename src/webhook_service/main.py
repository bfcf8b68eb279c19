"""Application entry point for the webhook service."""

from __future__ import annotations

import logging
import os

import uvicorn

from webhook_service.config.settings import AppConfig

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def main() -> None:
    """Start the webhook service."""
    config = AppConfig()
    level = config.server.log_level.upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)

    reload = os.getenv("WEBHOOKS_RELOAD", "false").lower() in ("1", "true", "yes")
    uvicorn.run(
        "webhook_service.api.app:create_app",
        factory=True,
        host=config.server.host,
        port=config.server.port,
        reload=reload,
        log_level=config.server.log_level.lower(),
    )


if __name__ == "__main__":
    main()
