import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import _AsyncGeneratorContextManager, asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI

from ..services.table_store import TableStore
from .config import Settings
from .db.database import create_session_factory, create_sqlite_engine
from .logger import setup_logging

LOGGER = logging.getLogger(__name__)


def lifespan_factory(
    settings: Settings,
    configure_logging: bool = True,
) -> Callable[[FastAPI], _AsyncGeneratorContextManager[Any]]:
    """Factory to create a lifespan that owns the engine and the table store."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        if configure_logging:
            setup_logging(settings)

        settings.ensure_directory()
        engine = create_sqlite_engine(settings)
        session_factory = create_session_factory(engine)
        store = TableStore(engine, session_factory, query_settings=settings, logger=logging.getLogger("sheetbase"))
        await store.open()

        app.state.settings = settings
        app.state.session_factory = session_factory
        app.state.table_store = store
        LOGGER.info("Serving %s from %s", settings.APP_NAME, settings.SQLITE_PATH)

        try:
            yield
        finally:
            await store.close()

    return lifespan


def create_application(
    router: APIRouter,
    settings: Settings,
    lifespan: Callable[[FastAPI], _AsyncGeneratorContextManager[Any]] | None = None,
    **kwargs: Any,
) -> FastAPI:
    """Creates and configures a FastAPI application from the settings groups."""
    kwargs.update(
        {
            "title": settings.APP_NAME,
            "description": settings.APP_DESCRIPTION,
            "version": settings.APP_VERSION,
        }
    )

    if lifespan is None:
        lifespan = lifespan_factory(settings)

    application = FastAPI(lifespan=lifespan, **kwargs)
    application.state.settings = settings
    application.include_router(router)
    return application
