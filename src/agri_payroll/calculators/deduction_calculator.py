"""Statutory deduction calculation against effective-dated rules."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import Select, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agri_payroll.calculators.months import parse_month
from agri_payroll.calculators.strategies import strategy_for
from agri_payroll.calculators.types import DeductionResult, Nationality, to_cents
from agri_payroll.config import get_settings
from agri_payroll.errors import PayrollError, ValidationError
from agri_payroll.models import DeductionRule
from agri_payroll.result import Result

logger = logging.getLogger(__name__)


def rules_in_force_statement(as_of: date, scopes: list[str] | None = None) -> Select:
    """Active rule versions whose [effective_from, effective_until) contains ``as_of``."""
    stmt = (
        select(DeductionRule)
        .where(
            DeductionRule.is_active.is_(True),
            DeductionRule.effective_from <= as_of,
            or_(
                DeductionRule.effective_until.is_(None),
                DeductionRule.effective_until > as_of,
            ),
        )
        .options(selectinload(DeductionRule.brackets))
        .order_by(DeductionRule.code, DeductionRule.effective_from)
        .execution_options(populate_existing=True)
    )
    if scopes is not None:
        stmt = stmt.where(DeductionRule.applies_to_nationality.in_(scopes))
    return stmt


class DeductionCalculator:
    """Resolves the deduction rules in force for a month and applies them.

    A rule is in force for month M when it is active, its effective window
    contains the first day of M, and its nationality scope is ``all`` or the
    worker's nationality. Only the window matters, so recomputing a past
    month uses the rules of that month even when newer versions exist.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._rule_cache: dict[tuple[str, str], list[DeductionRule]] = {}

    async def calculate(
        self,
        gross_salary: Decimal,
        nationality: str | None,
        month: str,
    ) -> Result[DeductionResult]:
        """Compute the breakdown and totals for one gross salary.

        Returns a failed result with ``ConfigurationError`` when a wage range
        table has a gap or overlap at the given salary.
        """
        try:
            scope = self._normalize_nationality(nationality)
            gross = to_cents(gross_salary)
            rules = await self.rules_in_force(month, scope)

            result = DeductionResult(gross_salary=gross, nationality=scope.value, month=month)
            for rule in rules:
                result.entries.append(strategy_for(rule).calculate(gross, scope.value))
        except PayrollError as exc:
            logger.warning(
                "Deduction calculation failed: %s",
                exc.message,
                extra={"month": month, "error_kind": exc.kind.value},
            )
            return Result.failure(exc)

        logger.debug(
            "Deductions computed",
            extra={
                "month": month,
                "gross_salary": str(gross),
                "employee_total": str(result.employee_total),
                "rules": [e.code for e in result.entries],
            },
        )
        return Result.success(result)

    async def rules_in_force(self, month: str, nationality: Nationality) -> list[DeductionRule]:
        """Active rules covering the first day of ``month`` for a nationality scope."""
        key = (month, nationality.value)
        if key in self._rule_cache:
            return self._rule_cache[key]

        scopes = [Nationality.ALL.value, nationality.value]
        result = await self.session.execute(rules_in_force_statement(parse_month(month), scopes))
        rules = list(result.scalars().all())
        self._rule_cache[key] = rules
        return rules

    def clear_cache(self) -> None:
        self._rule_cache.clear()

    @staticmethod
    def _normalize_nationality(nationality: str | None) -> Nationality:
        try:
            scope = Nationality.normalize(nationality, get_settings().default_nationality)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown nationality '{nationality}'",
                nationality=nationality,
            ) from exc
        if scope == Nationality.ALL:
            raise ValidationError("Worker nationality cannot be 'all'", nationality=nationality)
        return scope
