"""Monthly pay calculation aggregate: lookup, accumulation and totals."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from agri_payroll.calculators import DeductionCalculator, to_cents
from agri_payroll.config import get_settings
from agri_payroll.errors import ValidationError
from agri_payroll.models import PayCalculation, PayCalculationDetail
from agri_payroll.result import Result

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class PayCalculationAggregate:
    """Owns the PayCalculation row for a month and its per-worker details.

    Details are the only mutable state; monthly totals are always re-derived
    from them. Rows are read FOR UPDATE so concurrent writers to the same
    (month, worker) serialize; first-time creation races are resolved with a
    savepoint and a re-select.
    """

    def __init__(
        self,
        session: AsyncSession,
        calculator: DeductionCalculator | None = None,
        currency: str | None = None,
    ):
        self.session = session
        self.calculator = calculator or DeductionCalculator(session)
        self.currency = currency or get_settings().currency

    async def find_for_month(self, month: str, lock: bool = False) -> PayCalculation | None:
        stmt = select(PayCalculation).where(PayCalculation.month == month)
        if lock:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def find_or_create_for_month(self, month: str) -> PayCalculation:
        """Idempotent lookup or creation of the month's PayCalculation."""
        pay_calculation = await self.find_for_month(month, lock=True)
        if pay_calculation is not None:
            return pay_calculation

        savepoint = await self.session.begin_nested()
        try:
            pay_calculation = PayCalculation(month=month)
            self.session.add(pay_calculation)
            await self.session.flush()
            await savepoint.commit()
            logger.info("Pay calculation created", extra={"month": month})
            return pay_calculation
        except IntegrityError:
            # Another transaction created the month first
            logger.debug("Pay calculation creation race", extra={"month": month})
            await savepoint.rollback()
            existing = await self.find_for_month(month, lock=True)
            if existing is None:
                raise
            return existing

    async def find_detail(
        self,
        pay_calculation: PayCalculation,
        worker_id: UUID,
        lock: bool = True,
    ) -> PayCalculationDetail | None:
        stmt = select(PayCalculationDetail).where(
            PayCalculationDetail.pay_calculation_id == pay_calculation.pay_calculation_id,
            PayCalculationDetail.worker_id == worker_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def find_or_create_detail(
        self,
        pay_calculation: PayCalculation,
        worker_id: UUID,
    ) -> PayCalculationDetail:
        """Locked lookup or creation of a worker's detail (gross starts at zero)."""
        detail = await self.find_detail(pay_calculation, worker_id)
        if detail is not None:
            return detail

        savepoint = await self.session.begin_nested()
        try:
            detail = PayCalculationDetail(
                pay_calculation_id=pay_calculation.pay_calculation_id,
                worker_id=worker_id,
                gross_salary=ZERO,
                employee_deductions=ZERO,
                employer_deductions=ZERO,
                net_salary=ZERO,
                deduction_breakdown={},
                currency=self.currency,
            )
            self.session.add(detail)
            await self.session.flush()
            await savepoint.commit()
            return detail
        except IntegrityError:
            logger.debug(
                "Pay calculation detail creation race",
                extra={"month": pay_calculation.month, "worker_id": str(worker_id)},
            )
            await savepoint.rollback()
            existing = await self.find_detail(pay_calculation, worker_id)
            if existing is None:
                raise
            return existing

    async def accumulate_gross(
        self,
        detail: PayCalculationDetail,
        delta: Decimal,
        month: str,
        nationality: str | None,
    ) -> Result[PayCalculationDetail]:
        """Add ``delta`` to gross and recompute deductions against the new total."""
        return await self.replace_gross(detail, detail.gross_salary + delta, month, nationality)

    async def replace_gross(
        self,
        detail: PayCalculationDetail,
        gross: Decimal,
        month: str,
        nationality: str | None,
    ) -> Result[PayCalculationDetail]:
        """Set gross to an absolute value and recompute deductions."""
        gross = to_cents(gross)
        if gross < ZERO:
            return Result.failure(
                ValidationError(
                    "Gross salary cannot be negative",
                    worker_id=detail.worker_id,
                    month=month,
                    gross_salary=gross,
                )
            )
        detail.gross_salary = gross
        return await self.recalculate_deductions(detail, month, nationality)

    async def recalculate_deductions(
        self,
        detail: PayCalculationDetail,
        month: str,
        nationality: str | None,
    ) -> Result[PayCalculationDetail]:
        """Re-derive deductions and net from the detail's current gross."""
        outcome = await self.calculator.calculate(detail.gross_salary, nationality, month)
        if outcome.is_failure:
            return Result.failure(outcome.error)

        detail.apply_deductions(outcome.value)
        await self.session.flush()
        return Result.success(detail)

    async def remove_detail(self, detail: PayCalculationDetail) -> None:
        await self.session.delete(detail)
        await self.session.flush()

    async def recalculate_monthly_totals(
        self,
        pay_calculation: PayCalculation,
    ) -> PayCalculation | None:
        """Re-sum totals from details; delete the PayCalculation when none remain.

        Returns the updated PayCalculation, or None if it was deleted.
        """
        result = await self.session.execute(
            select(
                func.count(PayCalculationDetail.pay_calculation_detail_id),
                func.coalesce(func.sum(PayCalculationDetail.gross_salary), 0),
                func.coalesce(func.sum(PayCalculationDetail.employee_deductions), 0),
                func.coalesce(func.sum(PayCalculationDetail.employer_deductions), 0),
                func.coalesce(func.sum(PayCalculationDetail.net_salary), 0),
            ).where(PayCalculationDetail.pay_calculation_id == pay_calculation.pay_calculation_id)
        )
        count, gross, employee, employer, net = result.one()

        if not count:
            logger.info("Pay calculation emptied, deleting", extra={"month": pay_calculation.month})
            await self.session.delete(pay_calculation)
            await self.session.flush()
            return None

        pay_calculation.total_gross_salary = to_cents(Decimal(str(gross)))
        pay_calculation.total_employee_deductions = to_cents(Decimal(str(employee)))
        pay_calculation.total_employer_deductions = to_cents(Decimal(str(employer)))
        pay_calculation.total_net_salary = to_cents(Decimal(str(net)))
        await self.session.flush()
        return pay_calculation
