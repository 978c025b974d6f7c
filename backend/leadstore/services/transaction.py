"""
Transaction coordinator.

Two forms:

    await db.transaction([db.contact.operation("create", data=...), ...])
    await db.transaction(fn, max_wait=2, timeout=5, isolation_level="Serializable")

Both run on one session/connection. Inside the transaction every delegate
action runs in its own savepoint and actions are serialized, so an action
that fails or is cancelled never leaves partial writes behind.
"""
import asyncio
import enum
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leadstore.exceptions import (
    OperationTimeoutError,
    UnsupportedOperation,
    ValidationError,
)
from leadstore.query.registry import MODEL_REGISTRY
from leadstore.services.base_client import BaseClient
from leadstore.services.delegate import DELEGATE_ACTIONS, Operation
from leadstore.services.errors import translate_db_error

logger = logging.getLogger(__name__)


class IsolationLevel(str, enum.Enum):
    READ_UNCOMMITTED = "ReadUncommitted"
    READ_COMMITTED = "ReadCommitted"
    REPEATABLE_READ = "RepeatableRead"
    SERIALIZABLE = "Serializable"


ISOLATION_SQL = {
    IsolationLevel.READ_UNCOMMITTED: "READ UNCOMMITTED",
    IsolationLevel.READ_COMMITTED: "READ COMMITTED",
    IsolationLevel.REPEATABLE_READ: "REPEATABLE READ",
    IsolationLevel.SERIALIZABLE: "SERIALIZABLE",
}

SUPPORTED_ISOLATION_LEVELS = {
    "postgresql": frozenset(IsolationLevel),
    "mysql": frozenset(IsolationLevel),
    "sqlite": frozenset({IsolationLevel.READ_UNCOMMITTED, IsolationLevel.SERIALIZABLE}),
}


def resolve_isolation_level(value: Any, dialect_name: str) -> Optional[str]:
    """
    Map an isolation level name onto the driver's value for this dialect.

    Raises:
        ValidationError: Unknown level name
        UnsupportedOperation: Level not available on this backend
    """
    if value is None:
        return None
    try:
        level = IsolationLevel(value)
    except ValueError:
        raise ValidationError(
            f"Unknown isolation level {value!r}. Available: {[level.value for level in IsolationLevel]}",
            field="isolation_level",
        )
    if level not in SUPPORTED_ISOLATION_LEVELS.get(dialect_name, frozenset()):
        raise UnsupportedOperation(
            f"Isolation level '{level.value}' is not supported on '{dialect_name}'",
            field="isolation_level",
            details={"dialect": dialect_name},
        )
    return ISOLATION_SQL[level]


def _check_seconds(name: str, value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValidationError(f"'{name}' must be a positive number of seconds, got {value!r}", field=name)
    return float(value)


# ============================================================================
# SCOPES
# ============================================================================

class RootScope:
    """Each action gets a fresh session and its own transaction."""

    def __init__(self, context):
        self.context = context

    @property
    def dialect_name(self) -> str:
        return self.context.dialect_name

    @asynccontextmanager
    async def session(self):
        factory = self.context.require_session_factory()
        async with factory() as session:
            async with session.begin():
                yield session


class TransactionScope:
    """Actions share one session; each runs in a savepoint, one at a time."""

    def __init__(self, session: AsyncSession, dialect_name: str):
        self._session = session
        self._lock = asyncio.Lock()
        self.dialect_name = dialect_name
        self.closed = False

    @asynccontextmanager
    async def session(self):
        if self.closed:
            raise ValidationError("Transaction client used after its transaction finished")
        async with self._lock:
            async with self._session.begin_nested():
                yield self._session


class TransactionClient(BaseClient):
    """
    Client handed to an interactive transaction callback.

    Exposes every delegate and the parameterized raw methods. Nested
    transactions and driver-level raw SQL are not available here.
    """

    def __init__(self, scope: TransactionScope):
        self._bind_delegates(scope)

    async def transaction(self, *args, **kwargs):
        raise UnsupportedOperation("Nested transactions are not supported inside a transaction")

    async def query_raw_unsafe(self, sql: str, *args):
        raise UnsupportedOperation("query_raw_unsafe is not available inside a transaction")

    async def execute_raw_unsafe(self, sql: str, *args):
        raise UnsupportedOperation("execute_raw_unsafe is not available inside a transaction")


# ============================================================================
# COORDINATOR
# ============================================================================

class TransactionCoordinator:
    """Runs sequential and interactive transactions for a DataAccessContext."""

    def __init__(self, context):
        self.context = context

    async def run(
        self,
        ops_or_fn,
        max_wait: Optional[float] = None,
        timeout: Optional[float] = None,
        isolation_level: Optional[str] = None,
    ):
        settings = self.context.settings
        max_wait = _check_seconds("max_wait", max_wait) or settings.TRANSACTION_MAX_WAIT
        timeout = _check_seconds("timeout", timeout) or settings.TRANSACTION_TIMEOUT
        isolation = resolve_isolation_level(
            isolation_level or settings.DEFAULT_ISOLATION_LEVEL,
            self.context.dialect_name,
        )

        if callable(ops_or_fn):
            return await self.run_interactive(ops_or_fn, max_wait, timeout, isolation)
        if isinstance(ops_or_fn, (list, tuple)):
            return await self.run_sequential(ops_or_fn, max_wait, isolation)
        raise ValidationError(
            f"transaction() expects a list of operations or a callable, got {type(ops_or_fn).__name__}"
        )

    def _check_operations(self, operations: Sequence[Any]) -> List[Operation]:
        for index, op in enumerate(operations):
            if not isinstance(op, Operation):
                raise ValidationError(
                    f"Item {index} is not an operation; build one with db.<model>.operation(...)",
                    details={"index": index},
                )
            if op.model not in MODEL_REGISTRY or op.action not in DELEGATE_ACTIONS:
                raise ValidationError(f"Unknown operation {op!r}", details={"index": index})
        return list(operations)

    async def run_sequential(self, operations: Sequence[Any], max_wait: float, isolation: Optional[str]) -> List[Any]:
        """Run operation descriptors in order; results come back in input order."""
        operations = self._check_operations(operations)

        async def _sequence(tx: TransactionClient):
            results = []
            for op in operations:
                action = getattr(tx.delegate(op.model), op.action)
                results.append(await action(**op.arguments))
            return results

        return await self.run_interactive(_sequence, max_wait, None, isolation)

    async def _begin(self, session: AsyncSession, isolation: Optional[str]):
        options = {"isolation_level": isolation} if isolation else None
        await session.connection(execution_options=options)

    async def run_interactive(
        self,
        fn: Callable[[TransactionClient], Awaitable[Any]],
        max_wait: float,
        timeout: Optional[float],
        isolation: Optional[str],
    ):
        """
        Call ``fn(tx)`` inside one transaction.

        Commits when fn returns, rolls back on any exception (cancellation
        included) and re-raises it.

        Raises:
            OperationTimeoutError: Transaction not started within max_wait, or
                fn did not finish within timeout
        """
        factory = self.context.require_session_factory()
        session = factory()
        try:
            try:
                await asyncio.wait_for(self._begin(session, isolation), timeout=max_wait)
            except asyncio.TimeoutError as e:
                logger.warning(f"Transaction not started within max_wait={max_wait}s")
                raise OperationTimeoutError(
                    f"Could not start a transaction within {max_wait}s",
                    details={"max_wait": max_wait},
                ) from e
            except SQLAlchemyError as e:
                raise translate_db_error(e) from e

            scope = TransactionScope(session, self.context.dialect_name)
            client = TransactionClient(scope)
            loop = asyncio.get_running_loop()
            started = loop.time()
            try:
                if timeout is None:
                    result = await fn(client)
                else:
                    result = await asyncio.wait_for(fn(client), timeout=timeout)
            except asyncio.TimeoutError as e:
                await session.rollback()
                # A TimeoutError raised by fn itself before the deadline is passed through
                if timeout is None or loop.time() - started < timeout:
                    logger.warning(f"Transaction rolled back: {type(e).__name__}: {e}")
                    raise
                logger.warning(f"Transaction rolled back: callback exceeded timeout={timeout}s")
                raise OperationTimeoutError(
                    f"Transaction callback did not finish within {timeout}s",
                    details={"timeout": timeout},
                ) from e
            except BaseException as e:
                await session.rollback()
                logger.warning(f"Transaction rolled back: {type(e).__name__}: {e}")
                raise
            finally:
                scope.closed = True

            try:
                await session.commit()
            except SQLAlchemyError as e:
                raise translate_db_error(e) from e
            logger.info("Transaction committed")
            return result
        finally:
            await session.close()
