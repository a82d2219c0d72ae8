"""Deduction rule administration: versioned rules and bracket tables."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agri_payroll.calculators import (
    BracketMethod,
    CalculationKind,
    Nationality,
    RoundingMethod,
    month_bounds,
    month_key,
    parse_month,
)
from agri_payroll.calculators.deduction_calculator import rules_in_force_statement
from agri_payroll.errors import NotFoundError, PayrollError, ValidationError, from_database_error
from agri_payroll.models import DeductionRule, PayCalculation, WageBracket
from agri_payroll.result import Result
from agri_payroll.services.context import ServiceContext

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")


@dataclass
class BracketSpec:
    """Wage bracket input row (min inclusive, max inclusive or open)."""

    min_wage: Decimal
    max_wage: Decimal | None
    employee_amount: Decimal = ZERO
    employer_amount: Decimal = ZERO
    calculation_method: str = BracketMethod.FIXED.value
    employee_percentage: Decimal = ZERO
    employer_percentage: Decimal = ZERO

    @classmethod
    def from_bracket(cls, bracket: WageBracket) -> BracketSpec:
        return cls(
            min_wage=bracket.min_wage,
            max_wage=bracket.max_wage,
            employee_amount=bracket.employee_amount,
            employer_amount=bracket.employer_amount,
            calculation_method=bracket.calculation_method,
            employee_percentage=bracket.employee_percentage,
            employer_percentage=bracket.employer_percentage,
        )


def validate_partition(brackets: Iterable[BracketSpec]) -> list[BracketSpec]:
    """Check brackets partition [0, inf) at cent resolution.

    The first bracket starts at 0, each next one starts one cent after the
    previous maximum, and only the last is open-ended.

    Returns the brackets sorted by min_wage.

    Raises:
        ValidationError: On an empty table, a gap, an overlap or a bad row
    """
    ordered = sorted(brackets, key=lambda b: b.min_wage)
    if not ordered:
        raise ValidationError("Wage range rules need at least one bracket")

    for spec in ordered:
        if spec.max_wage is not None and spec.max_wage < spec.min_wage:
            raise ValidationError(
                f"Bracket max {spec.max_wage} is below min {spec.min_wage}",
                min_wage=spec.min_wage,
            )
        if spec.calculation_method not in {m.value for m in BracketMethod}:
            raise ValidationError(
                f"Unknown bracket calculation method '{spec.calculation_method}'",
                min_wage=spec.min_wage,
            )
        amounts = (
            spec.employee_amount,
            spec.employer_amount,
            spec.employee_percentage,
            spec.employer_percentage,
        )
        if any(a < ZERO for a in amounts):
            raise ValidationError("Bracket amounts cannot be negative", min_wage=spec.min_wage)

    if ordered[0].min_wage != ZERO:
        raise ValidationError(
            f"First bracket must start at 0, not {ordered[0].min_wage}",
            min_wage=ordered[0].min_wage,
        )

    for previous, current in zip(ordered, ordered[1:]):
        if previous.max_wage is None:
            raise ValidationError(
                "Only the last bracket may be open-ended",
                min_wage=previous.min_wage,
            )
        expected = previous.max_wage + CENT
        if current.min_wage > expected:
            raise ValidationError(
                f"Gap between {previous.max_wage} and {current.min_wage}",
                min_wage=current.min_wage,
            )
        if current.min_wage < expected:
            raise ValidationError(
                f"Bracket starting at {current.min_wage} overlaps the one ending at {previous.max_wage}",
                min_wage=current.min_wage,
            )

    if ordered[-1].max_wage is not None:
        raise ValidationError(
            f"Last bracket must be open-ended, not capped at {ordered[-1].max_wage}",
            max_wage=ordered[-1].max_wage,
        )
    return ordered


class DeductionRuleService:
    """Creates rule versions and changes rates without rewriting history.

    A rate change closes the open row at the new effective date and inserts
    a new row; past months keep recomputing against the rows that covered
    them.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_rule(
        self,
        code: str,
        name: str,
        calculation_kind: str,
        effective_from: date,
        employee_contribution: Decimal | None = None,
        employer_contribution: Decimal | None = None,
        applies_to_nationality: str = Nationality.ALL.value,
        effective_until: date | None = None,
        description: str | None = None,
        rounding_precision: int = 2,
        rounding_method: str = RoundingMethod.ROUND.value,
        brackets: list[BracketSpec] | None = None,
        is_active: bool = True,
        context: ServiceContext | None = None,
    ) -> Result[DeductionRule]:
        """Validate and insert a new rule version."""
        context = context or ServiceContext.system()
        try:
            async with self.session.begin_nested():
                rule = DeductionRule(
                    code=(code or "").strip().upper(),
                    name=name,
                    description=description,
                    calculation_kind=calculation_kind,
                    applies_to_nationality=(applies_to_nationality or "").strip().lower(),
                    employee_contribution=employee_contribution,
                    employer_contribution=employer_contribution,
                    rounding_precision=rounding_precision,
                    rounding_method=rounding_method,
                    effective_from=effective_from,
                    effective_until=effective_until,
                    is_active=is_active,
                )
                self._validate_definition(rule)
                await self._check_window_free(rule)
                if rule.calculation_kind == CalculationKind.WAGE_RANGE:
                    self._set_brackets(rule, validate_partition(brackets or []))
                elif brackets:
                    raise ValidationError(
                        f"Only wage_range rules take brackets, not {rule.calculation_kind}",
                        code=rule.code,
                    )
                else:
                    rule.brackets = []
                self.session.add(rule)
                await self.session.flush()
        except PayrollError as exc:
            logger.warning(
                "Deduction rule rejected: %s",
                exc.message,
                extra={"code": code, "error_kind": exc.kind.value, **context.log_fields()},
            )
            return Result.failure(exc)
        except SQLAlchemyError as exc:
            return Result.failure(from_database_error(exc))

        logger.info(
            "Deduction rule created",
            extra={
                "code": rule.code,
                "effective_from": rule.effective_from.isoformat(),
                **context.log_fields(),
            },
        )
        return Result.success(rule)

    async def update_rate(
        self,
        code: str,
        effective_from: date,
        employee_contribution: Decimal | None = None,
        employer_contribution: Decimal | None = None,
        brackets: list[BracketSpec] | None = None,
        context: ServiceContext | None = None,
    ) -> Result[DeductionRule]:
        """Close the open version of ``code`` and insert a new one from ``effective_from``.

        Contributions default to the current version's values; wage range
        rules copy the current bracket table unless ``brackets`` is given.
        """
        context = context or ServiceContext.system()
        code = (code or "").strip().upper()
        try:
            async with self.session.begin_nested():
                current = await self.open_version(code)
                if effective_from <= current.effective_from:
                    raise ValidationError(
                        f"New rate for {code} must start after {current.effective_from}",
                        code=code,
                        effective_from=effective_from,
                    )

                successor = DeductionRule(
                    code=current.code,
                    name=current.name,
                    description=current.description,
                    calculation_kind=current.calculation_kind,
                    applies_to_nationality=current.applies_to_nationality,
                    employee_contribution=(
                        employee_contribution
                        if employee_contribution is not None
                        else current.employee_contribution
                    ),
                    employer_contribution=(
                        employer_contribution
                        if employer_contribution is not None
                        else current.employer_contribution
                    ),
                    rounding_precision=current.rounding_precision,
                    rounding_method=current.rounding_method,
                    effective_from=effective_from,
                    effective_until=None,
                    is_active=current.is_active,
                )
                self._validate_definition(successor)

                if successor.calculation_kind == CalculationKind.WAGE_RANGE:
                    specs = brackets or [BracketSpec.from_bracket(b) for b in current.brackets]
                    self._set_brackets(successor, validate_partition(specs))
                elif brackets:
                    raise ValidationError(f"{code} is not a wage_range rule", code=code)
                else:
                    successor.brackets = []

                current.effective_until = effective_from
                self.session.add(successor)
                await self.session.flush()
        except PayrollError as exc:
            logger.warning(
                "Rate update rejected: %s",
                exc.message,
                extra={"code": code, "error_kind": exc.kind.value, **context.log_fields()},
            )
            return Result.failure(exc)
        except SQLAlchemyError as exc:
            return Result.failure(from_database_error(exc))

        logger.info(
            "Deduction rate updated",
            extra={
                "code": code,
                "effective_from": effective_from.isoformat(),
                **context.log_fields(),
            },
        )
        return Result.success(successor)

    async def replace_brackets(
        self,
        rule: DeductionRule,
        brackets: list[BracketSpec],
    ) -> Result[DeductionRule]:
        """Swap the bracket table of an open, not yet applied rule version.

        Closed versions and versions already used by a computed month are
        history; their rates change through ``update_rate`` instead.
        """
        try:
            if rule.calculation_kind != CalculationKind.WAGE_RANGE:
                raise ValidationError(f"{rule.code} is not a wage_range rule", code=rule.code)
            if rule.effective_until is not None:
                raise ValidationError(
                    f"{rule.code} version from {rule.effective_from} is closed; "
                    "use update_rate for a new version",
                    code=rule.code,
                    effective_from=rule.effective_from,
                )
            applied = await self.computed_months(rule)
            if applied:
                raise ValidationError(
                    f"{rule.code} version from {rule.effective_from} already applies to "
                    f"computed months {', '.join(applied)}; use update_rate for a new version",
                    code=rule.code,
                    months=applied,
                )
            ordered = validate_partition(brackets)
            async with self.session.begin_nested():
                self._set_brackets(rule, ordered)
                await self.session.flush()
        except PayrollError as exc:
            return Result.failure(exc)
        except SQLAlchemyError as exc:
            return Result.failure(from_database_error(exc))
        return Result.success(rule)

    async def rules_in_force(self, month: str, nationality: str | None = None) -> list[DeductionRule]:
        """Rule versions covering ``month``; all scopes unless a nationality is given."""
        scopes = None
        if nationality is not None:
            try:
                scope = Nationality.normalize(nationality)
            except ValueError as exc:
                raise ValidationError(f"Unknown nationality '{nationality}'") from exc
            scopes = [Nationality.ALL.value, scope.value]
        result = await self.session.execute(rules_in_force_statement(parse_month(month), scopes))
        return list(result.scalars().all())

    async def computed_months(self, rule: DeductionRule) -> list[str]:
        """Months with a pay calculation that fall inside the rule's window."""
        first = month_key(rule.effective_from)
        if rule.effective_from.day != 1:
            first = month_key(month_bounds(first)[1])
        stmt = select(PayCalculation.month).where(PayCalculation.month >= first)
        if rule.effective_until is not None:
            # Month M is covered while its first day is before effective_until
            last = month_key(rule.effective_until)
            if rule.effective_until.day == 1:
                stmt = stmt.where(PayCalculation.month < last)
            else:
                stmt = stmt.where(PayCalculation.month <= last)
        result = await self.session.execute(stmt.order_by(PayCalculation.month))
        return list(result.scalars().all())

    async def open_version(self, code: str) -> DeductionRule:
        result = await self.session.execute(
            select(DeductionRule)
            .where(DeductionRule.code == code, DeductionRule.effective_until.is_(None))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        rule = result.scalar_one_or_none()
        if rule is None:
            raise NotFoundError(f"No open deduction rule for code {code}", code=code)
        return rule

    async def versions(self, code: str) -> list[DeductionRule]:
        result = await self.session.execute(
            select(DeductionRule)
            .where(DeductionRule.code == code.strip().upper())
            .order_by(DeductionRule.effective_from)
        )
        return list(result.scalars().all())

    def _set_brackets(self, rule: DeductionRule, specs: list[BracketSpec]) -> None:
        rule.brackets = [
            WageBracket(
                code=rule.code,
                min_wage=spec.min_wage,
                max_wage=spec.max_wage,
                calculation_method=spec.calculation_method,
                employee_amount=spec.employee_amount,
                employer_amount=spec.employer_amount,
                employee_percentage=spec.employee_percentage,
                employer_percentage=spec.employer_percentage,
            )
            for spec in specs
        ]

    @staticmethod
    def _validate_definition(rule: DeductionRule) -> None:
        """Field-level checks on a rule version (raises ValidationError)."""
        details: dict[str, Any] = {"code": rule.code}
        if not rule.code:
            raise ValidationError("Deduction rule code is required")
        if not rule.name:
            raise ValidationError("Deduction rule name is required", **details)
        if rule.calculation_kind not in {k.value for k in CalculationKind}:
            raise ValidationError(f"Unknown calculation kind '{rule.calculation_kind}'", **details)
        if rule.applies_to_nationality not in {n.value for n in Nationality}:
            raise ValidationError(
                f"Unknown nationality scope '{rule.applies_to_nationality}'", **details
            )
        if rule.rounding_method not in {m.value for m in RoundingMethod}:
            raise ValidationError(f"Unknown rounding method '{rule.rounding_method}'", **details)
        if not 0 <= rule.rounding_precision <= 2:
            raise ValidationError("Rounding precision must be between 0 and 2", **details)
        if rule.effective_until is not None and rule.effective_until <= rule.effective_from:
            raise ValidationError("effective_until must be after effective_from", **details)

        if rule.calculation_kind == CalculationKind.WAGE_RANGE:
            rule.employee_contribution = None
            rule.employer_contribution = None
            return
        for label, value in (
            ("employee_contribution", rule.employee_contribution),
            ("employer_contribution", rule.employer_contribution),
        ):
            if value is None:
                raise ValidationError(f"{label} is required for {rule.calculation_kind}", **details)
            if value < ZERO:
                raise ValidationError(f"{label} cannot be negative", **details)
        if rule.calculation_kind == CalculationKind.PERCENTAGE:
            if rule.employee_contribution > 100 or rule.employer_contribution > 100:
                raise ValidationError("Percentage contributions cannot exceed 100", **details)

    async def _check_window_free(self, rule: DeductionRule) -> None:
        """Reject a window overlapping another version of the same code."""
        stmt = select(DeductionRule).where(
            DeductionRule.code == rule.code,
            (DeductionRule.effective_until.is_(None))
            | (DeductionRule.effective_until > rule.effective_from),
        )
        if rule.effective_until is not None:
            stmt = stmt.where(DeductionRule.effective_from < rule.effective_until)
        result = await self.session.execute(stmt.limit(1))
        clash = result.scalar_one_or_none()
        if clash is not None:
            raise ValidationError(
                f"Effective window overlaps {rule.code} from {clash.effective_from}",
                code=rule.code,
                existing_from=clash.effective_from,
            )
