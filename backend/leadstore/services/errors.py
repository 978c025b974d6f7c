"""
Translate driver and SQLAlchemy errors into the data access error taxonomy.

Handles the two backends we run on: SQLite (message parsing) and PostgreSQL
via asyncpg (structured attributes on the original driver exception).
"""
import logging
import re
from typing import Optional

from sqlalchemy import exc as sa_exc

from leadstore.exceptions import (
    ConstraintViolation,
    DatabaseConnectionError,
    LeadStoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_SQLITE_COLUMN = re.compile(r"constraint failed: (?P<table>\w+)\.(?P<column>\w+)")
_PG_KEY = re.compile(r"Key \((?P<column>[^)]+)\)=")

# PostgreSQL SQLSTATE codes
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
NOT_NULL_VIOLATION = "23502"
CHECK_VIOLATION = "23514"

# SQLite reports bad statements as OperationalError
_SQLITE_STATEMENT_ERRORS = ("no such table", "no such column", "syntax error")


def _driver_error(error: sa_exc.DBAPIError):
    """The innermost driver exception (asyncpg hides behind an adapter)."""
    orig = error.orig
    cause = getattr(orig, "__cause__", None)
    return cause if cause is not None else orig


def _constraint_kind(error: sa_exc.IntegrityError) -> str:
    driver = _driver_error(error)
    sqlstate = getattr(driver, "sqlstate", None) or getattr(error.orig, "pgcode", None)
    if sqlstate == UNIQUE_VIOLATION:
        return "unique"
    if sqlstate == FOREIGN_KEY_VIOLATION:
        return "foreign_key"
    if sqlstate == NOT_NULL_VIOLATION:
        return "not_null"
    if sqlstate == CHECK_VIOLATION:
        return "check"

    message = str(error.orig)
    if "UNIQUE constraint failed" in message:
        return "unique"
    if "FOREIGN KEY constraint failed" in message:
        return "foreign_key"
    if "NOT NULL constraint failed" in message:
        return "not_null"
    if "CHECK constraint failed" in message:
        return "check"
    return "integrity"


def _constraint_field(error: sa_exc.IntegrityError) -> Optional[str]:
    driver = _driver_error(error)
    column = getattr(driver, "column_name", None)
    if column:
        return column

    detail = getattr(driver, "detail", None) or str(error.orig)
    match = _PG_KEY.search(detail)
    if match:
        return match.group("column").split(",")[0].strip()

    match = _SQLITE_COLUMN.search(str(error.orig))
    if match:
        return match.group("column")
    return None


def integrity_to_violation(error: sa_exc.IntegrityError, model: Optional[str] = None) -> ConstraintViolation:
    kind = _constraint_kind(error)
    field = _constraint_field(error)
    constraint = getattr(_driver_error(error), "constraint_name", None) or kind

    messages = {
        "unique": f"Unique constraint failed on {model}.{field}" if field else "Unique constraint failed",
        "foreign_key": "Foreign key constraint failed",
        "not_null": f"Required field '{field}' is missing" if field else "Required field is missing",
        "check": "Check constraint failed",
        "integrity": "Integrity constraint failed",
    }
    return ConstraintViolation(
        messages[kind],
        model=model,
        field=field,
        constraint=constraint,
        details={"reason": kind},
    )


def translate_db_error(error: Exception, model: Optional[str] = None) -> LeadStoreError:
    """
    Map a database exception onto the error taxonomy.

    Args:
        error: Exception raised by SQLAlchemy or the driver
        model: Model name for error context

    Returns:
        The LeadStoreError to raise in its place
    """
    if isinstance(error, LeadStoreError):
        return error

    if isinstance(error, sa_exc.IntegrityError):
        return integrity_to_violation(error, model)

    if isinstance(error, sa_exc.TimeoutError):
        # QueuePool checkout timeout: every pooled connection is busy
        return DatabaseConnectionError(
            f"Connection pool exhausted: {error}",
            model=model,
            details={"reason": "pool_timeout"},
        )

    if isinstance(error, sa_exc.OperationalError) and any(
        marker in str(error.orig) for marker in _SQLITE_STATEMENT_ERRORS
    ):
        return ValidationError(
            f"Statement rejected by the database: {error.orig}",
            model=model,
        )

    if isinstance(error, (sa_exc.OperationalError, sa_exc.InterfaceError)):
        return DatabaseConnectionError(
            f"Database unavailable: {error.orig}",
            model=model,
            details={"reason": "unavailable"},
        )

    if isinstance(error, sa_exc.DataError):
        return ConstraintViolation(
            f"Value rejected by the database: {error.orig}",
            model=model,
            details={"reason": "data"},
        )

    if isinstance(error, sa_exc.ProgrammingError):
        return ValidationError(
            f"Statement rejected by the database: {error.orig}",
            model=model,
        )

    logger.error(f"Untranslated database error on {model}: {error!r}")
    return LeadStoreError(str(error), model=model)
