"""Typed payroll errors.

Raised inside a component; converted to a failed ``Result`` before crossing
into another component or the HTTP layer.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError


class ErrorKind(str, Enum):
    """Failure categories surfaced to callers."""

    CONFIGURATION = "configuration"
    NOT_FOUND = "not_found"
    CONCURRENCY = "concurrency"
    VALIDATION = "validation"
    INVALID_TRANSITION = "invalid_transition"


class PayrollError(Exception):
    """Base class for all payroll engine errors."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": {k: str(v) for k, v in self.details.items()},
        }


class ConfigurationError(PayrollError):
    """Deduction configuration cannot produce a result (bracket gap/overlap)."""

    kind = ErrorKind.CONFIGURATION


class NotFoundError(PayrollError):
    """A referenced record does not exist."""

    kind = ErrorKind.NOT_FOUND


class ConcurrencyError(PayrollError):
    """Lost update, uniqueness race or lock timeout on a payroll row."""

    kind = ErrorKind.CONCURRENCY


class ValidationError(PayrollError):
    """Malformed input or rule definition."""

    kind = ErrorKind.VALIDATION


UNIQUE_VIOLATION = "23505"


def is_unique_violation(exc: IntegrityError) -> bool:
    """Whether an integrity error comes from a unique or primary key constraint.

    PostgreSQL drivers expose the SQLSTATE; SQLite only reports it in the message.
    """
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code is not None:
        return code == UNIQUE_VIOLATION
    return "UNIQUE constraint failed" in str(orig)


def from_database_error(exc: SQLAlchemyError) -> PayrollError:
    """Map a SQLAlchemy error onto the payroll error taxonomy.

    Lost races are retryable concurrency errors. Any other constraint
    violation, such as a CHECK or foreign key failure, is bad data.
    """
    if isinstance(exc, IntegrityError) and not is_unique_violation(exc):
        return ValidationError(f"Database constraint violated: {exc.orig}", cause=exc)
    if isinstance(exc, (StaleDataError, IntegrityError, OperationalError)):
        return ConcurrencyError(
            f"Concurrent modification detected: {exc.__class__.__name__}",
            cause=exc,
        )
    return PayrollError(f"Database error: {exc}")
