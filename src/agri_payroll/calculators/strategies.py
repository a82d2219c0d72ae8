"""Per-kind deduction strategies and the factory that selects them."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from agri_payroll.calculators.types import (
    ZERO,
    BracketMethod,
    CalculationKind,
    DeductionEntry,
    round_amount,
)
from agri_payroll.errors import ConfigurationError, ValidationError

if TYPE_CHECKING:
    from agri_payroll.models import DeductionRule, WageBracket

HUNDRED = Decimal("100")


class DeductionStrategy:
    """Base strategy: turns a rule plus gross salary into a breakdown entry."""

    kind: CalculationKind

    def __init__(self, rule: DeductionRule):
        self.rule = rule

    def calculate(self, gross: Decimal, nationality: str) -> DeductionEntry:
        raise NotImplementedError

    def _round(self, amount: Decimal) -> Decimal:
        return round_amount(amount, self.rule.rounding_precision, self.rule.rounding_method)

    def _entry(
        self,
        gross: Decimal,
        nationality: str,
        employee: Decimal,
        employer: Decimal,
        **context: Decimal | None,
    ) -> DeductionEntry:
        return DeductionEntry(
            code=self.rule.code,
            name=self.rule.name,
            calculation_kind=self.kind,
            employee_amount=employee,
            employer_amount=employer,
            gross_salary=gross,
            nationality=nationality,
            effective_from=self.rule.effective_from,
            **context,
        )


class PercentageStrategy(DeductionStrategy):
    """employee = gross x employee_rate / 100, same for employer."""

    kind = CalculationKind.PERCENTAGE

    def calculate(self, gross: Decimal, nationality: str) -> DeductionEntry:
        employee_rate = self.rule.employee_contribution or ZERO
        employer_rate = self.rule.employer_contribution or ZERO
        return self._entry(
            gross,
            nationality,
            self._round(gross * employee_rate / HUNDRED),
            self._round(gross * employer_rate / HUNDRED),
            employee_rate=employee_rate,
            employer_rate=employer_rate,
        )


class FixedStrategy(DeductionStrategy):
    """Flat amounts regardless of gross salary."""

    kind = CalculationKind.FIXED

    def calculate(self, gross: Decimal, nationality: str) -> DeductionEntry:
        employee = self.rule.employee_contribution or ZERO
        employer = self.rule.employer_contribution or ZERO
        return self._entry(
            gross,
            nationality,
            self._round(employee),
            self._round(employer),
            employee_rate=employee,
            employer_rate=employer,
        )


class WageRangeStrategy(DeductionStrategy):
    """Looks up the unique wage bracket containing gross salary."""

    kind = CalculationKind.WAGE_RANGE

    def select_bracket(self, gross: Decimal) -> WageBracket:
        """Find the bracket with min <= gross and (max is null or gross <= max).

        Raises:
            ConfigurationError: If no bracket matches (gap) or several do (overlap)
        """
        matches = [b for b in self.rule.brackets if b.contains(gross)]
        if not matches:
            raise ConfigurationError(
                f"No wage bracket for {self.rule.code} covers gross salary {gross}",
                code=self.rule.code,
                gross_salary=gross,
            )
        if len(matches) > 1:
            raise ConfigurationError(
                f"Overlapping wage brackets for {self.rule.code} at gross salary {gross}",
                code=self.rule.code,
                gross_salary=gross,
                matches=len(matches),
            )
        return matches[0]

    def calculate(self, gross: Decimal, nationality: str) -> DeductionEntry:
        bracket = self.select_bracket(gross)
        if bracket.calculation_method == BracketMethod.PERCENTAGE.value:
            employee = self._round(gross * bracket.employee_percentage / HUNDRED)
            employer = self._round(gross * bracket.employer_percentage / HUNDRED)
        else:
            employee = self._round(bracket.employee_amount)
            employer = self._round(bracket.employer_amount)
        return self._entry(
            gross,
            nationality,
            employee,
            employer,
            min_wage=bracket.min_wage,
            max_wage=bracket.max_wage,
        )


_STRATEGIES: dict[CalculationKind, type[DeductionStrategy]] = {
    CalculationKind.PERCENTAGE: PercentageStrategy,
    CalculationKind.FIXED: FixedStrategy,
    CalculationKind.WAGE_RANGE: WageRangeStrategy,
}


def strategy_for(rule: DeductionRule) -> DeductionStrategy:
    """Select the strategy for a rule's calculation kind."""
    try:
        kind = CalculationKind(rule.calculation_kind)
    except ValueError as exc:
        raise ValidationError(
            f"Unknown calculation kind '{rule.calculation_kind}'",
            code=rule.code,
        ) from exc
    return _STRATEGIES[kind](rule)
