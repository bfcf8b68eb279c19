"""webhook-service — multi-tenant webhook delivery and ingestion engine."""

__version__ = "0.1.0"
