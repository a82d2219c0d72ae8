"""Tests for deduction strategies and rounding."""

from datetime import date
from decimal import Decimal

import pytest

from agri_payroll.calculators import (
    FixedStrategy,
    PercentageStrategy,
    WageRangeStrategy,
    round_amount,
    strategy_for,
)
from agri_payroll.errors import ConfigurationError, ValidationError
from agri_payroll.models import DeductionRule, WageBracket


def make_rule(
    kind: str = "percentage",
    employee: str | None = "11",
    employer: str | None = "12",
    precision: int = 2,
    method: str = "round",
    brackets: list[WageBracket] | None = None,
) -> DeductionRule:
    return DeductionRule(
        code="TEST",
        name="Test",
        calculation_kind=kind,
        applies_to_nationality="all",
        employee_contribution=Decimal(employee) if employee is not None else None,
        employer_contribution=Decimal(employer) if employer is not None else None,
        rounding_precision=precision,
        rounding_method=method,
        effective_from=date(2025, 1, 1),
        brackets=brackets or [],
    )


def bracket(
    low: str,
    high: str | None,
    employee: str = "0",
    employer: str = "0",
    method: str = "fixed",
    employee_pct: str = "0",
    employer_pct: str = "0",
) -> WageBracket:
    return WageBracket(
        code="TEST",
        min_wage=Decimal(low),
        max_wage=Decimal(high) if high is not None else None,
        calculation_method=method,
        employee_amount=Decimal(employee),
        employer_amount=Decimal(employer),
        employee_percentage=Decimal(employee_pct),
        employer_percentage=Decimal(employer_pct),
    )


def table() -> list[WageBracket]:
    return [
        bracket("0", "1000.00", "5.00", "10.00"),
        bracket("1000.01", "2000.00", "10.00", "20.00"),
        bracket("2000.01", None, "15.00", "30.00"),
    ]


class TestRoundAmount:
    """Tests for contribution rounding."""

    def test_default_is_half_up_to_cents(self):
        assert round_amount(Decimal("2.345")) == Decimal("2.35")
        assert round_amount(Decimal("2.344")) == Decimal("2.34")

    def test_ceil_to_whole_units(self):
        """EPF style: any fraction rounds up to the next ringgit."""
        assert round_amount(Decimal("135.01"), 0, "ceil") == Decimal("136.00")
        assert round_amount(Decimal("135.00"), 0, "ceil") == Decimal("135.00")

    def test_floor_to_one_decimal(self):
        assert round_amount(Decimal("7.79"), 1, "floor") == Decimal("7.70")

    def test_unknown_method_rejected(self):
        with pytest.raises(ValueError):
            round_amount(Decimal("1"), 2, "bankers")


class TestPercentageStrategy:
    """Tests for percentage rules."""

    def test_rates_applied_to_gross(self):
        entry = PercentageStrategy(make_rule()).calculate(Decimal("1234.56"), "local")

        # 135.8016 and 148.1472 rounded half-up
        assert entry.employee_amount == Decimal("135.80")
        assert entry.employer_amount == Decimal("148.15")
        assert entry.employee_rate == Decimal("11")
        assert entry.employer_rate == Decimal("12")

    def test_ceil_precision_zero(self):
        rule = make_rule(precision=0, method="ceil")

        entry = PercentageStrategy(rule).calculate(Decimal("1234.56"), "local")

        assert entry.employee_amount == Decimal("136.00")
        assert entry.employer_amount == Decimal("149.00")

    def test_floor_precision_zero(self):
        rule = make_rule(precision=0, method="floor")

        entry = PercentageStrategy(rule).calculate(Decimal("1234.56"), "local")

        assert entry.employee_amount == Decimal("135.00")
        assert entry.employer_amount == Decimal("148.00")

    def test_zero_employee_rate(self):
        rule = make_rule(employee="0", employer="1.25")

        entry = PercentageStrategy(rule).calculate(Decimal("3000.00"), "foreigner")

        assert entry.employee_amount == Decimal("0.00")
        assert entry.employer_amount == Decimal("37.50")

    def test_document_carries_rates(self):
        entry = PercentageStrategy(make_rule()).calculate(Decimal("1000.00"), "local")

        doc = entry.to_document()

        assert doc["calculation_kind"] == "percentage"
        assert doc["employee_rate"] == "11"
        assert doc["employee_amount"] == "110.00"
        assert doc["effective_from"] == "2025-01-01"
        assert "min_wage" not in doc


class TestFixedStrategy:
    """Tests for flat amount rules."""

    def test_amount_independent_of_gross(self):
        rule = make_rule(kind="fixed", employee="12.50", employer="25")
        strategy = FixedStrategy(rule)

        low = strategy.calculate(Decimal("100.00"), "local")
        high = strategy.calculate(Decimal("9000.00"), "local")

        assert low.employee_amount == high.employee_amount == Decimal("12.50")
        assert low.employer_amount == high.employer_amount == Decimal("25.00")


class TestWageRangeStrategy:
    """Tests for bracket lookups."""

    @pytest.mark.parametrize(
        "gross,employee,employer",
        [
            ("0.00", "5.00", "10.00"),
            ("1000.00", "5.00", "10.00"),
            ("1000.01", "10.00", "20.00"),
            ("2000.00", "10.00", "20.00"),
            ("2000.01", "15.00", "30.00"),
            ("25000.00", "15.00", "30.00"),
        ],
    )
    def test_bounds_are_inclusive(self, gross, employee, employer):
        strategy = WageRangeStrategy(make_rule(kind="wage_range", brackets=table()))

        entry = strategy.calculate(Decimal(gross), "local")

        assert entry.employee_amount == Decimal(employee)
        assert entry.employer_amount == Decimal(employer)

    def test_gap_is_configuration_error(self):
        rule = make_rule(
            kind="wage_range",
            brackets=[bracket("0", "1000.00", "5", "10"), bracket("1500.00", None, "9", "9")],
        )

        with pytest.raises(ConfigurationError):
            WageRangeStrategy(rule).calculate(Decimal("1200.00"), "local")

    def test_overlap_is_configuration_error(self):
        rule = make_rule(
            kind="wage_range",
            brackets=[bracket("0", "1000.00", "5", "10"), bracket("900.00", None, "9", "9")],
        )

        with pytest.raises(ConfigurationError) as exc_info:
            WageRangeStrategy(rule).calculate(Decimal("950.00"), "local")

        assert exc_info.value.details["matches"] == 2

    def test_percentage_bracket(self):
        rule = make_rule(
            kind="wage_range",
            brackets=[
                bracket("0", None, method="percentage", employee_pct="1.5", employer_pct="2"),
            ],
        )

        entry = WageRangeStrategy(rule).calculate(Decimal("2000.00"), "local")

        assert entry.employee_amount == Decimal("30.00")
        assert entry.employer_amount == Decimal("40.00")

    def test_document_carries_bracket_bounds(self):
        strategy = WageRangeStrategy(make_rule(kind="wage_range", brackets=table()))

        doc = strategy.calculate(Decimal("2500.00"), "local").to_document()

        assert doc["min_wage"] == "2000.01"
        assert doc["max_wage"] is None
        assert "employee_rate" not in doc


class TestStrategyFactory:
    """Tests for strategy selection."""

    def test_selects_by_kind(self):
        assert isinstance(strategy_for(make_rule()), PercentageStrategy)
        assert isinstance(strategy_for(make_rule(kind="fixed")), FixedStrategy)
        assert isinstance(strategy_for(make_rule(kind="wage_range")), WageRangeStrategy)

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            strategy_for(make_rule(kind="progressive"))
