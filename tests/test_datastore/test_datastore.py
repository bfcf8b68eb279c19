"""Tests for the datastore client: lifecycle, schema bootstrap, ping."""

from __future__ import annotations

import pytest
from sqlalchemy import select, text

from webhook_service.config.settings import DatabaseConfig, DatabaseEngine
from webhook_service.datastore.client import Datastore
from webhook_service.engine.models import WebhookEndpoint

TABLES = ["webhook_deliveries", "webhook_endpoints", "webhook_incoming", "webhook_rate_limits"]


def _config(tmp_path) -> DatabaseConfig:
    return DatabaseConfig(
        engine=DatabaseEngine.SQLITE, dsn=f"sqlite+aiosqlite:///{tmp_path / 'ds.db'}"
    )


@pytest.fixture
async def datastore(tmp_path):
    ds = Datastore(_config(tmp_path))
    await ds.open()
    yield ds
    await ds.close()


class TestLifecycle:
    async def test_open_close(self, tmp_path) -> None:
        ds = Datastore(_config(tmp_path))
        assert not ds.is_open
        await ds.open()
        assert ds.is_open
        await ds.close()
        assert not ds.is_open

    async def test_open_and_close_idempotent(self, tmp_path) -> None:
        ds = Datastore(_config(tmp_path))
        await ds.open()
        engine = ds.engine
        await ds.open()
        assert ds.engine is engine
        await ds.close()
        await ds.close()

    def test_engine_before_open_raises(self, tmp_path) -> None:
        with pytest.raises(RuntimeError, match="not open"):
            _ = Datastore(_config(tmp_path)).engine

    def test_session_before_open_raises(self, tmp_path) -> None:
        with pytest.raises(RuntimeError, match="not open"):
            Datastore(_config(tmp_path)).session()

    def test_is_postgres(self, tmp_path) -> None:
        assert not Datastore(_config(tmp_path)).is_postgres
        pg = DatabaseConfig(
            engine=DatabaseEngine.POSTGRESQL, dsn="postgresql+asyncpg://u:p@db/webhooks"
        )
        assert Datastore(pg).is_postgres


class TestMigrate:
    async def test_creates_tables(self, datastore) -> None:
        assert await datastore.migrate() == TABLES
        async with datastore.session() as session:
            result = await session.execute(select(WebhookEndpoint))
            assert result.scalars().all() == []

    async def test_second_run_creates_nothing(self, datastore) -> None:
        await datastore.migrate()
        assert await datastore.migrate() == []

    async def test_only_missing_tables_created(self, datastore) -> None:
        await datastore.migrate()
        async with datastore.engine.begin() as conn:
            await conn.execute(text("DROP TABLE webhook_rate_limits"))
        assert await datastore.migrate() == ["webhook_rate_limits"]


class TestPing:
    async def test_open(self, datastore) -> None:
        assert await datastore.ping()

    async def test_closed(self, tmp_path) -> None:
        assert not await Datastore(_config(tmp_path)).ping()

    async def test_unreachable(self, tmp_path) -> None:
        missing_dir = tmp_path / "missing" / "ds.db"
        ds = Datastore(DatabaseConfig(dsn=f"sqlite+aiosqlite:///{missing_dir}"))
        await ds.open()
        assert not await ds.ping()
        await ds.close()
