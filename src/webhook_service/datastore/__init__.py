"""Datastore — async SQLAlchemy engine and sessions."""

from webhook_service.datastore.client import Datastore

__all__ = ["Datastore"]
