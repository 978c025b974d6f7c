"""Async data access layer for the event-booking CRM."""

from leadstore.client import DataAccessContext
from leadstore.config import Settings
from leadstore.exceptions import (
    ConstraintViolation,
    DatabaseConnectionError,
    EnumDomainViolation,
    LeadStoreError,
    NotFoundError,
    OperationTimeoutError,
    UnsupportedOperation,
    ValidationError,
)
from leadstore.models import Role
from leadstore.services.transaction import IsolationLevel

__all__ = [
    "DataAccessContext",
    "Settings",
    "Role",
    "IsolationLevel",
    "LeadStoreError",
    "ValidationError",
    "NotFoundError",
    "ConstraintViolation",
    "EnumDomainViolation",
    "OperationTimeoutError",
    "UnsupportedOperation",
    "DatabaseConnectionError",
]
