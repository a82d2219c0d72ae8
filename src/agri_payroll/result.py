"""Tagged success/failure result passed between components."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from agri_payroll.errors import ErrorKind, PayrollError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value (success) or a typed ``PayrollError`` (failure)."""

    value: T | None = None
    error: PayrollError | None = None
    message: str | None = None

    @classmethod
    def success(cls, value: T | None = None, message: str | None = None) -> Result[T]:
        """Create a successful result."""
        return cls(value=value, message=message)

    @classmethod
    def failure(cls, error: PayrollError) -> Result[T]:
        """Create a failed result."""
        return cls(error=error, message=error.message)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.error.kind if self.error else None

    def unwrap(self) -> T:
        """Return the value, re-raising the error for failed results."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
