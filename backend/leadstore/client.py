"""
DataAccessContext: the entry point of the data access layer.

    db = DataAccessContext(settings)
    await db.connect()
    lead = await db.lead.create(data={...})
    await db.disconnect()

or ``async with DataAccessContext() as db: ...``. There is no global client;
every context owns its engine and connection pool.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from leadstore import models  # noqa: F401
from leadstore.config import Settings, settings as default_settings
from leadstore.database import Base, create_engine_from_settings, create_session_factory
from leadstore.exceptions import DatabaseConnectionError, UnsupportedOperation
from leadstore.services.base_client import BaseClient
from leadstore.services.errors import translate_db_error
from leadstore.services.transaction import RootScope, TransactionCoordinator

logger = logging.getLogger(__name__)


class DataAccessContext(BaseClient):
    """Owns the engine, the pool and the per-entity delegates."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.dialect_name = make_url(self.settings.async_database_url).get_backend_name()
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._coordinator = TransactionCoordinator(self)
        self._bind_delegates(RootScope(self))

    def __repr__(self):
        state = "connected" if self.is_connected else "disconnected"
        return f"<DataAccessContext(dialect='{self.dialect_name}', {state})>"

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    @property
    def is_connected(self) -> bool:
        return self.session_factory is not None

    def require_session_factory(self) -> async_sessionmaker:
        if self.session_factory is None:
            raise DatabaseConnectionError("DataAccessContext is not connected; call connect() first")
        return self.session_factory

    async def connect(self):
        """Create the engine and pool and check the backend is reachable."""
        if self.is_connected:
            return
        engine = create_engine_from_settings(self.settings)
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            await engine.dispose()
            logger.error(f"Database connection failed: {e}")
            raise DatabaseConnectionError(
                f"Could not connect to the database: {e}",
                details={"dialect": self.dialect_name},
            ) from e

        self.engine = engine
        self.session_factory = create_session_factory(engine)
        logger.info(f"✅ Connected to {self.dialect_name} database")

    async def disconnect(self):
        """Dispose of the pool. Safe to call twice."""
        if self.engine is None:
            return
        await self.engine.dispose()
        self.engine = None
        self.session_factory = None
        logger.info("Database connection closed")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.disconnect()

    # ========================================================================
    # SCHEMA
    # ========================================================================

    async def create_schema(self):
        """Create all tables that do not exist yet."""
        self.require_session_factory()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Created {len(Base.metadata.tables)} tables")

    async def drop_schema(self):
        self.require_session_factory()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("Dropped all tables")

    # ========================================================================
    # TRANSACTIONS
    # ========================================================================

    async def transaction(
        self,
        ops_or_fn,
        max_wait: Optional[float] = None,
        timeout: Optional[float] = None,
        isolation_level: Optional[str] = None,
    ):
        """
        Run several operations atomically.

        Args:
            ops_or_fn: List of ``db.<model>.operation(...)`` descriptors, or an
                async callable receiving a transaction client
            max_wait: Seconds to wait for a connection/transaction
            timeout: Seconds the callable may run (interactive form only)
            isolation_level: ReadUncommitted | ReadCommitted | RepeatableRead | Serializable

        Returns:
            List of results (sequential form) or the callable's return value
        """
        return await self._coordinator.run(
            ops_or_fn,
            max_wait=max_wait,
            timeout=timeout,
            isolation_level=isolation_level,
        )

    # ========================================================================
    # RAW QUERIES
    # ========================================================================

    async def query_raw_unsafe(self, sql: str, *args: Any) -> List[Dict[str, Any]]:
        """
        Run driver-level SQL with positional parameters in the driver's own
        placeholder style (``?`` for SQLite, ``$1`` for asyncpg).
        """
        try:
            async with self._scope.session() as session:
                conn = await session.connection()
                result = await conn.exec_driver_sql(sql, tuple(args) if args else None)
                return [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as e:
            raise translate_db_error(e) from e

    async def execute_raw_unsafe(self, sql: str, *args: Any) -> int:
        try:
            async with self._scope.session() as session:
                conn = await session.connection()
                result = await conn.exec_driver_sql(sql, tuple(args) if args else None)
                return result.rowcount
        except SQLAlchemyError as e:
            raise translate_db_error(e) from e

    async def run_command_raw(self, command: Dict[str, Any]):
        """Document-store command passthrough; SQL backends have no equivalent."""
        raise UnsupportedOperation(
            f"run_command_raw is not supported on '{self.dialect_name}'",
            details={"dialect": self.dialect_name},
        )
