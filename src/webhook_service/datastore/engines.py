"""Database engine factories — PostgreSQL, SQLite.

Provides async SQLAlchemy engine creation with support for:
- PostgreSQL (asyncpg driver) with a sized connection pool
- SQLite (aiosqlite driver); file databases run in WAL mode with a busy
  timeout so pool workers can read while another attempt is writing
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

if TYPE_CHECKING:
    from webhook_service.config.settings import DatabaseConfig

SQLITE_BUSY_TIMEOUT_MS = 5000


def _is_sqlite(dsn: str) -> bool:
    return dsn.startswith("sqlite")


def _is_memory(dsn: str) -> bool:
    return ":memory:" in dsn or dsn.rstrip("/").endswith("sqlite+aiosqlite:")


def create_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create an async SQLAlchemy engine from database configuration.

    Args:
        config: Database configuration with DSN, pool settings, etc.

    Returns:
        A configured ``AsyncEngine`` ready for use.
    """
    kwargs: dict[str, Any] = {
        "echo": config.debug_sql,
    }

    if not _is_sqlite(config.dsn):
        kwargs["pool_size"] = config.max_idle_connections
        kwargs["max_overflow"] = config.max_open_connections - config.max_idle_connections
        kwargs["pool_pre_ping"] = True

    engine = create_async_engine(config.dsn, **kwargs)

    if _is_sqlite(config.dsn) and not _is_memory(config.dsn):

        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_pragmas(dbapi_connection: Any, _record: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
            cursor.close()

    return engine
