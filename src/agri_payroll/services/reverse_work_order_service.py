"""Compensating recomputation run before a completed work order is discarded."""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agri_payroll.calculators import (
    DeductionCalculator,
    GrossSalaryCalculator,
    RateType,
    month_bounds,
)
from agri_payroll.config import get_settings
from agri_payroll.database import acquire_month_lock, set_lock_timeout
from agri_payroll.errors import PayrollError, from_database_error
from agri_payroll.models import PayCalculation, WorkOrder, WorkOrderWorker
from agri_payroll.result import Result
from agri_payroll.services.context import ServiceContext
from agri_payroll.services.pay_calculation_aggregate import PayCalculationAggregate
from agri_payroll.services.process_work_order_service import load_assignments, target_month
from agri_payroll.services.state_machine import WorkOrderStatus
from agri_payroll.services.worker_directory import SqlWorkerDirectory, WorkerDirectory

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class ReverseWorkOrderService:
    """Removes a work order's contribution by recomputing, never by subtracting.

    For every worker on the order, gross salary for the month is rebuilt
    from all other active completed orders. Wage-range deductions are not
    linear in gross, so the deduction snapshot is recomputed from scratch
    against the rules of that month. Details that drop to zero are deleted,
    and the PayCalculation goes with its last detail.
    """

    def __init__(
        self,
        session: AsyncSession,
        workers: WorkerDirectory | None = None,
        calculator: DeductionCalculator | None = None,
    ):
        self.session = session
        self.workers = workers or SqlWorkerDirectory(session)
        self.aggregate = PayCalculationAggregate(session, calculator)

    async def reverse(
        self,
        work_order: WorkOrder,
        context: ServiceContext | None = None,
    ) -> Result[PayCalculation | None]:
        context = context or ServiceContext.system()
        log_extra = {"work_order_id": str(work_order.work_order_id), **context.log_fields()}

        if work_order.rate_type == RateType.RESOURCES or work_order.completion_date is None:
            return Result.success(None, message="Work order carries no worker pay")

        try:
            month = target_month(work_order)
            log_extra["month"] = month
            async with self.session.begin_nested():
                await set_lock_timeout(self.session, get_settings().lock_timeout_ms)
                await acquire_month_lock(self.session, month)

                pay_calculation = await self.aggregate.find_for_month(month, lock=True)
                if pay_calculation is None:
                    logger.info("No pay calculation for month, nothing to reverse", extra=log_extra)
                    return Result.success(None, message=f"No pay calculation for {month}")

                pay_calculation = await self._recompute(work_order, pay_calculation, month)
        except PayrollError as exc:
            logger.error(
                "Reversing work order failed: %s",
                exc.message,
                extra={**log_extra, "error_kind": exc.kind.value},
            )
            return Result.failure(exc)
        except SQLAlchemyError as exc:
            error = from_database_error(exc)
            logger.error(
                "Reversing work order failed: %s",
                error.message,
                extra={**log_extra, "error_kind": error.kind.value},
            )
            return Result.failure(error)

        logger.info(
            "Work order reversed",
            extra={**log_extra, "pay_calculation_deleted": pay_calculation is None},
        )
        return Result.success(pay_calculation)

    async def _recompute(
        self,
        work_order: WorkOrder,
        pay_calculation: PayCalculation,
        month: str,
    ) -> PayCalculation | None:
        assignments = await load_assignments(self.session, work_order.work_order_id)
        worker_ids = {a.worker_id for a in assignments}
        if not worker_ids:
            return pay_calculation

        remaining = await self.remaining_gross(worker_ids, month, exclude=work_order.work_order_id)
        nationalities = await self.workers.nationalities(worker_ids)

        for worker_id in sorted(worker_ids, key=str):
            gross = remaining[worker_id]
            detail = await self.aggregate.find_detail(pay_calculation, worker_id)

            if gross == ZERO:
                if detail is not None:
                    await self.aggregate.remove_detail(detail)
                    logger.debug(
                        "Worker detail removed",
                        extra={"month": month, "worker_id": str(worker_id)},
                    )
                continue

            if detail is None:
                detail = await self.aggregate.find_or_create_detail(pay_calculation, worker_id)
            outcome = await self.aggregate.replace_gross(
                detail, gross, month, nationalities[worker_id]
            )
            if outcome.is_failure:
                raise outcome.error

        return await self.aggregate.recalculate_monthly_totals(pay_calculation)

    async def remaining_gross(
        self,
        worker_ids: set[UUID],
        month: str,
        exclude: UUID,
    ) -> dict[UUID, Decimal]:
        """Gross per worker from active completed orders in ``month`` other than ``exclude``."""
        start, end = month_bounds(month)
        result = await self.session.execute(
            select(WorkOrderWorker, WorkOrder.rate_type)
            .join(WorkOrder, WorkOrder.work_order_id == WorkOrderWorker.work_order_id)
            .where(
                WorkOrderWorker.worker_id.in_(worker_ids),
                WorkOrder.work_order_id != exclude,
                WorkOrder.work_order_status == WorkOrderStatus.COMPLETED.value,
                WorkOrder.discarded_at.is_(None),
                WorkOrder.rate_type != RateType.RESOURCES.value,
                WorkOrder.completion_date >= start,
                WorkOrder.completion_date < end,
            )
        )
        totals: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for assignment, rate_type in result.all():
            totals[assignment.worker_id] += GrossSalaryCalculator.calculate(rate_type, assignment)
        return totals
