from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.ext.asyncio.session import AsyncSession
from sqlalchemy.orm import DeclarativeBase, MappedAsDataclass
from sqlalchemy.pool import AsyncAdaptedQueuePool

from ..config import DatabaseSettings


class Base(DeclarativeBase, MappedAsDataclass):
    pass


def create_sqlite_engine(db_settings: DatabaseSettings) -> AsyncEngine:
    """Build the process-wide SQLite engine.

    The pool is bounded (no overflow) and every connection waits up to
    ``SQLITE_BUSY_TIMEOUT`` seconds on a locked database before failing.
    """
    engine = create_async_engine(
        db_settings.SQLITE_ASYNC_URL,
        echo=db_settings.SQLITE_ECHO,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=db_settings.SQLITE_POOL_SIZE,
        max_overflow=0,
        pool_timeout=db_settings.SQLITE_POOL_TIMEOUT,
        connect_args={"timeout": db_settings.SQLITE_BUSY_TIMEOUT},
    )
    _install_sqlite_hooks(engine, db_settings)
    return engine


def _install_sqlite_hooks(engine: AsyncEngine, db_settings: DatabaseSettings) -> None:
    busy_timeout_ms = int(db_settings.SQLITE_BUSY_TIMEOUT * 1000)
    journal_mode = db_settings.SQLITE_JOURNAL_MODE

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself so DDL takes part in transactions.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA busy_timeout={busy_timeout_ms}")
        if journal_mode:
            cursor.execute(f"PRAGMA journal_mode={journal_mode}")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
