"""Tests for the effective-dated deduction calculator."""

from datetime import date
from decimal import Decimal

import pytest

from agri_payroll.calculators import DeductionCalculator, Nationality
from agri_payroll.errors import ErrorKind


class TestStatutoryDeductions:
    """Percentage rule set against local and foreign workers."""

    async def test_local_worker(self, session, statutory_rules):
        """EPF, SOCSO and SIP apply to local workers."""
        calculator = DeductionCalculator(session)

        result = await calculator.calculate(Decimal("3000.00"), "local", "2025-01")

        assert result.is_success
        deductions = result.value
        # 330 + 15 + 6 and 360 + 52.50 + 6
        assert deductions.employee_total == Decimal("351.00")
        assert deductions.employer_total == Decimal("418.50")
        assert deductions.net_salary == Decimal("2649.00")
        assert set(deductions.breakdown_document()) == {"EPF", "SOCSO_MALAYSIAN", "SIP"}

    async def test_foreign_worker(self, session, statutory_rules):
        """Foreign workers get EPF plus the foreign SOCSO scheme only."""
        calculator = DeductionCalculator(session)

        result = await calculator.calculate(Decimal("3000.00"), "foreigner", "2025-01")

        deductions = result.unwrap()
        assert deductions.employee_total == Decimal("330.00")
        assert deductions.employer_total == Decimal("397.50")
        assert set(deductions.breakdown_document()) == {"EPF", "SOCSO_FOREIGN"}

    async def test_foreigner_without_passport_only_gets_universal_rules(self, session, statutory_rules):
        calculator = DeductionCalculator(session)

        deductions = (
            await calculator.calculate(Decimal("3000.00"), "foreigner_no_passport", "2025-01")
        ).unwrap()

        assert list(deductions.breakdown_document()) == ["EPF"]

    async def test_nationality_is_case_insensitive(self, session, statutory_rules):
        calculator = DeductionCalculator(session)

        upper = (await calculator.calculate(Decimal("3000"), "LOCAL", "2025-01")).unwrap()

        assert upper.nationality == "local"
        assert upper.employee_total == Decimal("351.00")

    async def test_missing_nationality_uses_default(self, session, statutory_rules):
        calculator = DeductionCalculator(session)

        deductions = (await calculator.calculate(Decimal("3000"), None, "2025-01")).unwrap()

        assert deductions.nationality == "local"
        assert deductions.employee_total == Decimal("351.00")

    async def test_unknown_nationality_fails(self, session, statutory_rules):
        calculator = DeductionCalculator(session)

        result = await calculator.calculate(Decimal("3000"), "martian", "2025-01")

        assert result.is_failure
        assert result.error_kind == ErrorKind.VALIDATION

    async def test_all_is_not_a_worker_nationality(self, session, statutory_rules):
        calculator = DeductionCalculator(session)

        result = await calculator.calculate(Decimal("3000"), "all", "2025-01")

        assert result.error_kind == ErrorKind.VALIDATION

    async def test_breakdown_entry_fields(self, session, statutory_rules):
        calculator = DeductionCalculator(session)

        deductions = (await calculator.calculate(Decimal("1000"), "local", "2025-01")).unwrap()
        epf = deductions.breakdown_document()["EPF"]

        rates = {k: Decimal(epf.pop(k)) for k in ("employee_rate", "employer_rate")}
        assert rates == {"employee_rate": Decimal("11"), "employer_rate": Decimal("12")}
        assert epf == {
            "name": "Epf",
            "calculation_kind": "percentage",
            "employee_amount": "110.00",
            "employer_amount": "120.00",
            "gross_salary": "1000.00",
            "nationality": "local",
            "effective_from": "2025-01-01",
        }

    async def test_no_rules_gives_zero_deductions(self, session):
        calculator = DeductionCalculator(session)

        deductions = (await calculator.calculate(Decimal("800"), "local", "2025-01")).unwrap()

        assert deductions.entries == []
        assert deductions.net_salary == Decimal("800.00")


class TestEffectiveWindows:
    """Rules in force are chosen by the month's first day."""

    async def test_rate_change_splits_months(self, session, make_rule):
        await make_rule("EPF", "11", "12", effective_until=date(2025, 3, 1))
        await make_rule("EPF", "9", "12", effective_from=date(2025, 3, 1))
        calculator = DeductionCalculator(session)

        february = (await calculator.calculate(Decimal("3000"), "local", "2025-02")).unwrap()
        march = (await calculator.calculate(Decimal("3000"), "local", "2025-03")).unwrap()

        assert february.employee_total == Decimal("330.00")
        assert march.employee_total == Decimal("270.00")

    async def test_rule_not_yet_in_force(self, session, make_rule):
        await make_rule("EPF", "11", "12")
        calculator = DeductionCalculator(session)

        deductions = (await calculator.calculate(Decimal("3000"), "local", "2024-12")).unwrap()

        assert deductions.entries == []

    async def test_mid_month_start_applies_from_next_month(self, session, make_rule):
        """A rule starting on the 15th does not cover the 1st of that month."""
        await make_rule("SIP", "0.2", "0.2", effective_from=date(2025, 3, 15))
        calculator = DeductionCalculator(session)

        march = (await calculator.calculate(Decimal("1000"), "local", "2025-03")).unwrap()
        april = (await calculator.calculate(Decimal("1000"), "local", "2025-04")).unwrap()

        assert march.entries == []
        assert [e.code for e in april.entries] == ["SIP"]

    async def test_inactive_rules_ignored(self, session, make_rule):
        await make_rule("EPF", "11", "12", is_active=False)
        calculator = DeductionCalculator(session)

        deductions = (await calculator.calculate(Decimal("3000"), "local", "2025-01")).unwrap()

        assert deductions.entries == []

    async def test_invalid_month_fails(self, session, statutory_rules):
        calculator = DeductionCalculator(session)

        result = await calculator.calculate(Decimal("3000"), "local", "2025-13")

        assert result.error_kind == ErrorKind.VALIDATION

    async def test_rules_cached_per_month_and_nationality(self, session, make_rule):
        await make_rule("EPF", "11", "12")
        calculator = DeductionCalculator(session)

        first = await calculator.rules_in_force("2025-01", Nationality.LOCAL)
        await make_rule("SIP", "0.2", "0.2", nationality="local")
        cached = await calculator.rules_in_force("2025-01", Nationality.LOCAL)
        calculator.clear_cache()
        fresh = await calculator.rules_in_force("2025-01", Nationality.LOCAL)

        assert [r.code for r in first] == [r.code for r in cached] == ["EPF"]
        assert [r.code for r in fresh] == ["EPF", "SIP"]


class TestWageRangeRules:
    """Bracket tables resolved through the calculator."""

    @pytest.mark.parametrize(
        "gross,employee,employer",
        [
            # EPF 11%/12% plus the SOCSO bracket amount
            ("1300.00", "153.00", "176.00"),
            ("1000.00", "115.00", "130.00"),
            ("300.00", "35.00", "40.00"),
        ],
    )
    async def test_bracket_amounts(self, session, bracket_rules, gross, employee, employer):
        calculator = DeductionCalculator(session)

        deductions = (await calculator.calculate(Decimal(gross), "local", "2025-01")).unwrap()

        assert deductions.employee_total == Decimal(employee)
        assert deductions.employer_total == Decimal(employer)

    async def test_bracket_bounds_in_breakdown(self, session, bracket_rules):
        calculator = DeductionCalculator(session)

        deductions = (await calculator.calculate(Decimal("1300"), "local", "2025-01")).unwrap()
        socso = deductions.breakdown_document()["SOCSO"]

        assert socso["calculation_kind"] == "wage_range"
        assert Decimal(socso["min_wage"]) == Decimal("1000.01")
        assert Decimal(socso["max_wage"]) == Decimal("2000.00")

    async def test_gap_fails_with_configuration_error(self, session, make_rule):
        await make_rule(
            "SOCSO",
            kind="wage_range",
            brackets=[("0", "1000.00", "5", "10"), ("1500.00", None, "9", "18")],
        )
        calculator = DeductionCalculator(session)

        result = await calculator.calculate(Decimal("1200"), "local", "2025-01")

        assert result.is_failure
        assert result.error_kind == ErrorKind.CONFIGURATION

    async def test_overlap_fails_with_configuration_error(self, session, make_rule):
        await make_rule(
            "SOCSO",
            kind="wage_range",
            brackets=[("0", "1000.00", "5", "10"), ("800.00", None, "9", "18")],
        )
        calculator = DeductionCalculator(session)

        result = await calculator.calculate(Decimal("900"), "local", "2025-01")

        assert result.error_kind == ErrorKind.CONFIGURATION
