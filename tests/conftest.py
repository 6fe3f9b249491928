"""Shared fixtures: every test gets its own SQLite file under tmp_path."""

import logging

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from sheetbase.api import router
from sheetbase.core.config import DatabaseSettings, QuerySettings, Settings
from sheetbase.core.db.database import create_sqlite_engine
from sheetbase.core.setup import create_application, lifespan_factory
from sheetbase.schemas.table import ColumnDefinition, TableSchema
from sheetbase.services.table_store import TableStore


@pytest.fixture
def db_settings(tmp_path):
    return DatabaseSettings(SQLITE_PATH=str(tmp_path / "sheetbase.db"))


@pytest_asyncio.fixture
async def store(db_settings):
    engine = create_sqlite_engine(db_settings)
    table_store = TableStore(
        engine,
        query_settings=QuerySettings(DEFAULT_PAGE_SIZE=20, MAX_PAGE_SIZE=1000),
        logger=logging.getLogger("sheetbase.tests"),
    )
    await table_store.open()
    try:
        yield table_store
    finally:
        await table_store.close()


@pytest.fixture
def people_schema():
    return TableSchema(
        name="people",
        display_name="People",
        description="Contacts",
        fields=[
            ColumnDefinition(name="name", labels=["姓名", "Full Name"], type_hint="text", allow_null=False),
            ColumnDefinition(name="age", labels=["年龄"], type_hint="integer"),
            ColumnDefinition(name="score", labels=["Score"], type_hint="decimal"),
            ColumnDefinition(name="active", labels=["Active"], type_hint="bool"),
        ],
    )


@pytest_asyncio.fixture
async def people(store, people_schema):
    await store.create_schema(people_schema)
    return store


@pytest_asyncio.fixture
async def client(tmp_path):
    settings = Settings(SQLITE_PATH=str(tmp_path / "api.db"), LOG_FILE=None)
    app = create_application(router=router, settings=settings, lifespan=lifespan_factory(settings, configure_logging=False))
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
            yield http_client
