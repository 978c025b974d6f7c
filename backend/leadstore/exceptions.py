"""
Error taxonomy for the data access layer.

Every failure carries a stable ``kind`` discriminator plus the model, field
and constraint involved so callers can branch on it without parsing messages.
"""
from typing import Any, Dict, Optional


class LeadStoreError(Exception):
    """Base class for all data access errors."""

    kind = "LeadStoreError"

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        field: Optional[str] = None,
        constraint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.model = model
        self.field = field
        self.constraint = constraint
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "model": self.model,
            "field": self.field,
            "constraint": self.constraint,
            "details": self.details,
        }

    def __repr__(self):
        return f"<{type(self).__name__}(kind='{self.kind}', model={self.model!r}, field={self.field!r})>"


class ValidationError(LeadStoreError):
    """Malformed call shape or write payload."""
    kind = "ValidationError"


class NotFoundError(LeadStoreError):
    """Single-row operation matched nothing."""
    kind = "NotFoundError"


class ConstraintViolation(LeadStoreError):
    """Unique, required-relation, restrict-delete or enum-domain violation."""
    kind = "ConstraintViolation"


class EnumDomainViolation(ConstraintViolation, ValidationError):
    """Enum value outside its declared domain."""
    kind = "ConstraintViolation"


class OperationTimeoutError(LeadStoreError):
    """Transaction exceeded max_wait or timeout."""
    kind = "TimeoutError"


class UnsupportedOperation(LeadStoreError):
    """Isolation level or raw-query form the backend cannot honor."""
    kind = "UnsupportedOperation"


class DatabaseConnectionError(LeadStoreError):
    """Pool exhausted, backend unreachable or context not connected."""
    kind = "ConnectionError"
