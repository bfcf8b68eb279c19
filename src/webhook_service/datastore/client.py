"""Datastore — async SQLAlchemy engine, sessions and schema bootstrap.

The engine owns one :class:`Datastore`.  Services open short-lived
sessions through :meth:`Datastore.session`; nothing holds a session
across an outbound HTTP call.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from webhook_service.config.settings import DatabaseEngine
from webhook_service.datastore.engines import create_engine

if TYPE_CHECKING:
    from webhook_service.config.settings import DatabaseConfig

logger = logging.getLogger(__name__)

_ERR_NOT_OPEN = "Datastore is not open. Call open() first."


class Datastore:
    """Engine and session factory for the webhook tables.

    Usage::

        ds = Datastore(db_config)
        await ds.open()
        await ds.migrate()
        async with ds.session() as session:
            ...
        await ds.close()
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self._config = config
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        """Underlying async engine.

        Raises:
            RuntimeError: If the datastore is not open.
        """
        if self._engine is None:
            raise RuntimeError(_ERR_NOT_OPEN)
        return self._engine

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def is_postgres(self) -> bool:
        """PostgreSQL supports ``FOR UPDATE SKIP LOCKED``; SQLite does not."""
        return self._config.engine == DatabaseEngine.POSTGRESQL

    async def open(self) -> None:
        if self._engine is not None:
            return
        self._engine = create_engine(self._config)
        # Rows outlive their session: workers read them after commit
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False)
        logger.debug("Datastore opened (%s)", self._config.engine)

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None
        logger.debug("Datastore closed")

    def session(self) -> AsyncSession:
        """New session; use it as an async context manager.

        Raises:
            RuntimeError: If the datastore is not open.
        """
        if self._sessions is None:
            raise RuntimeError(_ERR_NOT_OPEN)
        return self._sessions()

    async def migrate(self) -> list[str]:
        """Create any webhook table that does not exist yet.

        Existing tables are left untouched; schema changes to them go
        through the Alembic environment under ``alembic/``.

        Returns:
            Names of the tables created by this call.
        """
        # Registers every model on Base.metadata
        from webhook_service.engine.models import Base

        async with self.engine.begin() as conn:
            existing = set(await conn.run_sync(lambda c: inspect(c).get_table_names()))
            await conn.run_sync(Base.metadata.create_all)

        created = sorted(set(Base.metadata.tables) - existing)
        if created:
            logger.info("Created tables: %s", ", ".join(created))
        return created

    async def ping(self) -> bool:
        """Round-trip ``SELECT 1``; False when closed or unreachable."""
        if self._engine is None:
            return False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Datastore ping failed", exc_info=True)
            return False
        return True
