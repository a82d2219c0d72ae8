"""Payroll calculators: gross salary and statutory deductions."""

from agri_payroll.calculators.deduction_calculator import DeductionCalculator
from agri_payroll.calculators.gross_salary import GrossSalaryCalculator
from agri_payroll.calculators.months import month_bounds, month_key, parse_month
from agri_payroll.calculators.strategies import (
    DeductionStrategy,
    FixedStrategy,
    PercentageStrategy,
    WageRangeStrategy,
    strategy_for,
)
from agri_payroll.calculators.types import (
    BracketMethod,
    CalculationKind,
    DeductionEntry,
    DeductionResult,
    Nationality,
    RateType,
    RoundingMethod,
    round_amount,
    to_cents,
)

__all__ = [
    "BracketMethod",
    "CalculationKind",
    "DeductionCalculator",
    "DeductionEntry",
    "DeductionResult",
    "DeductionStrategy",
    "FixedStrategy",
    "GrossSalaryCalculator",
    "Nationality",
    "PercentageStrategy",
    "RateType",
    "RoundingMethod",
    "WageRangeStrategy",
    "month_bounds",
    "month_key",
    "parse_month",
    "round_amount",
    "strategy_for",
    "to_cents",
]
