"""Type definitions for the pay calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0")


class RateType(str, Enum):
    """How an assignment's quantity is measured."""

    NORMAL = "normal"
    WORK_DAYS = "work_days"
    RESOURCES = "resources"


class Nationality(str, Enum):
    """Worker nationality, also used as a deduction rule scope."""

    ALL = "all"
    LOCAL = "local"
    FOREIGNER = "foreigner"
    FOREIGNER_NO_PASSPORT = "foreigner_no_passport"

    @classmethod
    def normalize(cls, value: str | None, default: str = "local") -> Nationality:
        """Lower-case and validate a worker nationality, falling back to default."""
        raw = (value or default).strip().lower()
        return cls(raw)


class CalculationKind(str, Enum):
    """Deduction rule calculation kinds."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"
    WAGE_RANGE = "wage_range"


class BracketMethod(str, Enum):
    """How a wage bracket turns gross salary into contributions."""

    FIXED = "fixed"
    PERCENTAGE = "percentage"


class RoundingMethod(str, Enum):
    """Rounding applied to a computed contribution."""

    ROUND = "round"
    CEIL = "ceil"
    FLOOR = "floor"


_ROUNDING_MODES = {
    RoundingMethod.ROUND: ROUND_HALF_UP,
    RoundingMethod.CEIL: ROUND_CEILING,
    RoundingMethod.FLOOR: ROUND_FLOOR,
}


def to_cents(amount: Decimal) -> Decimal:
    """Quantize a monetary amount to cents, half-up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def round_amount(amount: Decimal, precision: int = 2, method: str = "round") -> Decimal:
    """Round a contribution to ``precision`` decimal places.

    ``precision=0`` with ``method="ceil"`` gives whole-ringgit ceiling (EPF).
    The result is always expressed in cents for storage.
    """
    exponent = Decimal(1).scaleb(-precision)
    rounded = amount.quantize(exponent, rounding=_ROUNDING_MODES[RoundingMethod(method)])
    return to_cents(rounded)


@dataclass
class DeductionEntry:
    """One rule's contribution to a worker's monthly deductions."""

    code: str
    name: str
    calculation_kind: CalculationKind
    employee_amount: Decimal
    employer_amount: Decimal
    gross_salary: Decimal
    nationality: str
    effective_from: date
    employee_rate: Decimal | None = None
    employer_rate: Decimal | None = None
    min_wage: Decimal | None = None
    max_wage: Decimal | None = None

    def to_document(self) -> dict[str, Any]:
        """Serialize for the JSON breakdown snapshot (decimals as strings)."""
        doc: dict[str, Any] = {
            "name": self.name,
            "calculation_kind": self.calculation_kind.value,
            "employee_amount": str(self.employee_amount),
            "employer_amount": str(self.employer_amount),
            "gross_salary": str(self.gross_salary),
            "nationality": self.nationality,
            "effective_from": self.effective_from.isoformat(),
        }
        if self.calculation_kind == CalculationKind.WAGE_RANGE:
            doc["min_wage"] = str(self.min_wage)
            doc["max_wage"] = str(self.max_wage) if self.max_wage is not None else None
        else:
            doc["employee_rate"] = str(self.employee_rate)
            doc["employer_rate"] = str(self.employer_rate)
        return doc


@dataclass
class DeductionResult:
    """Breakdown plus totals for one gross salary in one month."""

    gross_salary: Decimal
    nationality: str
    month: str
    entries: list[DeductionEntry] = field(default_factory=list)

    @property
    def employee_total(self) -> Decimal:
        return sum((e.employee_amount for e in self.entries), ZERO)

    @property
    def employer_total(self) -> Decimal:
        return sum((e.employer_amount for e in self.entries), ZERO)

    @property
    def net_salary(self) -> Decimal:
        return self.gross_salary - self.employee_total

    def breakdown_document(self) -> dict[str, Any]:
        """Breakdown keyed by rule code."""
        return {entry.code: entry.to_document() for entry in self.entries}
