"""Bulk import of deduction rules and wage brackets from CSV."""

from __future__ import annotations

import csv
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, TextIO

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agri_payroll.errors import ValidationError
from agri_payroll.models import DeductionRule
from agri_payroll.services.context import ServiceContext
from agri_payroll.services.deduction_rule_service import BracketSpec, DeductionRuleService

logger = logging.getLogger(__name__)

RULE_COLUMNS = (
    "code",
    "name",
    "calculation_kind",
    "applies_to_nationality",
    "employee_contribution",
    "employer_contribution",
    "effective_from",
    "effective_until",
    "rounding_precision",
    "rounding_method",
    "description",
)

BRACKET_COLUMNS = (
    "code",
    "effective_from",
    "min_wage",
    "max_wage",
    "employee_amount",
    "employer_amount",
    "calculation_method",
    "employee_percentage",
    "employer_percentage",
)


@dataclass
class RowError:
    row: int
    message: str


@dataclass
class ImportReport:
    """Outcome of an import: how many rows landed and which ones failed."""

    imported: int = 0
    errors: list[RowError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "imported": self.imported,
            "errors": [{"row": e.row, "message": e.message} for e in self.errors],
        }


def _text(row: dict[str, str], column: str) -> str | None:
    value = (row.get(column) or "").strip()
    return value or None


def _decimal(row: dict[str, str], column: str) -> Decimal | None:
    value = _text(row, column)
    if value is None:
        return None
    try:
        return Decimal(value.replace(",", ""))
    except InvalidOperation as exc:
        raise ValidationError(f"{column}: '{value}' is not a number") from exc


def _date(row: dict[str, str], column: str) -> date | None:
    value = _text(row, column)
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{column}: '{value}' is not a YYYY-MM-DD date") from exc


def _required(value: Any, column: str) -> Any:
    if value is None:
        raise ValidationError(f"{column} is required")
    return value


class RuleImporter:
    """Imports rule and bracket tables, one rule version per CSV row.

    Rows are applied independently: a bad row is reported and skipped, the
    rest still import. Wage range rules are created from the rules file
    together with their brackets from the brackets file, matched on
    (code, effective_from).
    """

    def __init__(self, session: AsyncSession, context: ServiceContext | None = None):
        self.session = session
        self.context = context or ServiceContext.system()
        self.rules = DeductionRuleService(session)

    async def import_rules_csv(
        self,
        stream: TextIO,
        brackets_stream: TextIO | None = None,
    ) -> ImportReport:
        report = ImportReport()
        brackets: dict[tuple[str, date], list[BracketSpec]] = {}
        if brackets_stream is not None:
            brackets, bracket_errors = self.read_brackets(brackets_stream)
            report.errors.extend(bracket_errors)

        # Header is row 1
        for row_number, row in enumerate(csv.DictReader(stream), start=2):
            try:
                code = _required(_text(row, "code"), "code").upper()
                effective_from = _required(_date(row, "effective_from"), "effective_from")
                precision = _text(row, "rounding_precision")
                result = await self.rules.create_rule(
                    code=code,
                    name=_required(_text(row, "name"), "name"),
                    calculation_kind=(_text(row, "calculation_kind") or "percentage").lower(),
                    applies_to_nationality=_text(row, "applies_to_nationality") or "all",
                    employee_contribution=_decimal(row, "employee_contribution"),
                    employer_contribution=_decimal(row, "employer_contribution"),
                    effective_from=effective_from,
                    effective_until=_date(row, "effective_until"),
                    rounding_precision=int(precision) if precision else 2,
                    rounding_method=(_text(row, "rounding_method") or "round").lower(),
                    description=_text(row, "description"),
                    brackets=brackets.get((code, effective_from)),
                    context=self.context,
                )
            except ValidationError as exc:
                report.errors.append(RowError(row_number, exc.message))
                continue
            except ValueError as exc:
                report.errors.append(RowError(row_number, str(exc)))
                continue

            if result.is_failure:
                report.errors.append(RowError(row_number, result.message or "rejected"))
            else:
                report.imported += 1

        logger.info(
            "Deduction rules imported",
            extra={"imported": report.imported, "failed": len(report.errors)},
        )
        return report

    async def import_brackets_csv(self, stream: TextIO) -> ImportReport:
        """Replace bracket tables of existing wage range rule versions."""
        report = ImportReport()
        grouped, errors = self.read_brackets(stream)
        report.errors.extend(errors)

        for (code, effective_from), specs in grouped.items():
            rule = await self._find_version(code, effective_from)
            if rule is None:
                report.errors.append(
                    RowError(0, f"No {code} rule version starting {effective_from.isoformat()}")
                )
                continue
            result = await self.rules.replace_brackets(rule, specs)
            if result.is_failure:
                report.errors.append(RowError(0, f"{code}: {result.message}"))
            else:
                report.imported += len(specs)

        logger.info(
            "Wage brackets imported",
            extra={"imported": report.imported, "failed": len(report.errors)},
        )
        return report

    def read_brackets(
        self,
        stream: TextIO,
    ) -> tuple[dict[tuple[str, date], list[BracketSpec]], list[RowError]]:
        grouped: dict[tuple[str, date], list[BracketSpec]] = defaultdict(list)
        errors: list[RowError] = []
        for row_number, row in enumerate(csv.DictReader(stream), start=2):
            try:
                code = _required(_text(row, "code"), "code").upper()
                effective_from = _required(_date(row, "effective_from"), "effective_from")
                spec = BracketSpec(
                    min_wage=_required(_decimal(row, "min_wage"), "min_wage"),
                    max_wage=_decimal(row, "max_wage"),
                    employee_amount=_decimal(row, "employee_amount") or Decimal("0"),
                    employer_amount=_decimal(row, "employer_amount") or Decimal("0"),
                    calculation_method=(_text(row, "calculation_method") or "fixed").lower(),
                    employee_percentage=_decimal(row, "employee_percentage") or Decimal("0"),
                    employer_percentage=_decimal(row, "employer_percentage") or Decimal("0"),
                )
            except ValidationError as exc:
                errors.append(RowError(row_number, exc.message))
                continue
            grouped[(code, effective_from)].append(spec)
        return dict(grouped), errors

    async def _find_version(self, code: str, effective_from: date) -> DeductionRule | None:
        result = await self.session.execute(
            select(DeductionRule).where(
                DeductionRule.code == code,
                DeductionRule.effective_from == effective_from,
            )
        )
        return result.scalar_one_or_none()
