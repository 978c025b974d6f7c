"""Database engine, connection pool and session factory construction."""

import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from leadstore.config import Settings

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """
    Create the async engine (and with it the connection pool).

    Plain ``postgresql://`` URLs are switched to asyncpg and ``sqlite://``
    URLs to aiosqlite.
    """
    database_url = settings.async_database_url
    kwargs = {
        "echo": settings.DB_ECHO or settings.LOG_LEVEL == "DEBUG",
        "pool_pre_ping": settings.DB_POOL_PRE_PING,
    }

    if database_url.startswith("sqlite") and ":memory:" in database_url:
        # One shared connection, otherwise every checkout sees an empty database
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW
        kwargs["pool_timeout"] = settings.DB_POOL_TIMEOUT

    engine = create_async_engine(database_url, **kwargs)

    if engine.dialect.name == "sqlite":
        _install_sqlite_hooks(engine)

    logger.info(f"Engine created for dialect '{engine.dialect.name}'")
    return engine


def _install_sqlite_hooks(engine: AsyncEngine):
    """
    Make SQLite behave like the server databases.

    Foreign keys are off by default, LIKE ignores case by default, and the
    driver's implicit BEGIN handling breaks SAVEPOINT; emit our own BEGIN.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA case_sensitive_like=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create session factory bound to the engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
