"""Adds a completed work order's pay to its month."""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agri_payroll.calculators import DeductionCalculator, GrossSalaryCalculator, RateType, month_key
from agri_payroll.config import get_settings
from agri_payroll.database import acquire_month_lock, set_lock_timeout
from agri_payroll.errors import PayrollError, ValidationError, from_database_error
from agri_payroll.models import PayCalculation, WorkOrder, WorkOrderWorker
from agri_payroll.result import Result
from agri_payroll.services.context import ServiceContext
from agri_payroll.services.pay_calculation_aggregate import PayCalculationAggregate
from agri_payroll.services.state_machine import WorkOrderStatus
from agri_payroll.services.worker_directory import SqlWorkerDirectory, WorkerDirectory

logger = logging.getLogger(__name__)


def target_month(work_order: WorkOrder) -> str:
    """Month a work order contributes to: the month of its completion date."""
    if work_order.completion_date is None:
        raise ValidationError(
            "Work order has no completion date",
            work_order_id=work_order.work_order_id,
        )
    return month_key(work_order.completion_date)


async def load_assignments(session: AsyncSession, work_order_id: UUID) -> list[WorkOrderWorker]:
    result = await session.execute(
        select(WorkOrderWorker)
        .where(WorkOrderWorker.work_order_id == work_order_id)
        .order_by(WorkOrderWorker.created_at, WorkOrderWorker.work_order_worker_id)
    )
    return list(result.scalars().all())


class ProcessWorkOrderService:
    """Accumulates every assigned worker's gross salary into the order's month.

    0. Only active completed orders participate; anything else is rejected.
    1. Resources orders and orders without assignments are a no-op.
    2. Find or create the PayCalculation for the completion month.
    3. For each worker, add the order's gross to their detail and recompute
       deductions against the new monthly total.
    4. Re-sum monthly totals.

    All steps run inside one savepoint: on failure nothing is persisted and
    a failed Result is returned.
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

    async def process(
        self,
        work_order: WorkOrder,
        context: ServiceContext | None = None,
    ) -> Result[PayCalculation | None]:
        context = context or ServiceContext.system()
        log_extra = {"work_order_id": str(work_order.work_order_id), **context.log_fields()}

        error = self._not_participating(work_order)
        if error is not None:
            logger.warning(
                "Work order not eligible for payroll: %s",
                error.message,
                extra={**log_extra, "error_kind": error.kind.value},
            )
            return Result.failure(error)

        if work_order.rate_type == RateType.RESOURCES:
            logger.info("Resources work order, nothing to process", extra=log_extra)
            return Result.success(None, message="Resources work order has no worker pay")

        try:
            assignments = await load_assignments(self.session, work_order.work_order_id)
            if not assignments:
                logger.info("Work order has no assignments, nothing to process", extra=log_extra)
                return Result.success(None, message="Work order has no worker assignments")

            month = target_month(work_order)
            log_extra["month"] = month

            async with self.session.begin_nested():
                pay_calculation = await self._apply(work_order, assignments, month)
        except PayrollError as exc:
            logger.warning(
                "Processing work order failed: %s",
                exc.message,
                extra={**log_extra, "error_kind": exc.kind.value},
            )
            return Result.failure(exc)
        except SQLAlchemyError as exc:
            error = from_database_error(exc)
            logger.error(
                "Processing work order failed: %s",
                error.message,
                extra={**log_extra, "error_kind": error.kind.value},
            )
            return Result.failure(error)

        logger.info(
            "Work order processed",
            extra={**log_extra, "workers": len({a.worker_id for a in assignments})},
        )
        return Result.success(pay_calculation)

    @staticmethod
    def _not_participating(work_order: WorkOrder) -> ValidationError | None:
        if work_order.is_discarded:
            return ValidationError(
                "Discarded work orders do not contribute to payroll",
                work_order_id=work_order.work_order_id,
            )
        if work_order.work_order_status != WorkOrderStatus.COMPLETED:
            return ValidationError(
                "Only completed work orders contribute to payroll, "
                f"not {work_order.work_order_status}",
                work_order_id=work_order.work_order_id,
                status=work_order.work_order_status,
            )
        return None

    async def _apply(
        self,
        work_order: WorkOrder,
        assignments: list[WorkOrderWorker],
        month: str,
    ) -> PayCalculation:
        await set_lock_timeout(self.session, get_settings().lock_timeout_ms)
        await acquire_month_lock(self.session, month)

        # One accumulation per worker even if assigned more than once
        deltas: dict[UUID, Decimal] = defaultdict(Decimal)
        for assignment in assignments:
            deltas[assignment.worker_id] += GrossSalaryCalculator.for_order(work_order, assignment)

        nationalities = await self.workers.nationalities(deltas.keys())
        pay_calculation = await self.aggregate.find_or_create_for_month(month)

        for worker_id, delta in deltas.items():
            detail = await self.aggregate.find_or_create_detail(pay_calculation, worker_id)
            outcome = await self.aggregate.accumulate_gross(
                detail, delta, month, nationalities[worker_id]
            )
            if outcome.is_failure:
                raise outcome.error
            logger.debug(
                "Worker gross accumulated",
                extra={"month": month, "worker_id": str(worker_id), "delta": str(delta)},
            )

        await self.aggregate.recalculate_monthly_totals(pay_calculation)
        return pay_calculation
