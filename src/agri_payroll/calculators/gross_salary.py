"""Gross salary for one worker assignment."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from agri_payroll.calculators.types import ZERO, RateType, to_cents
from agri_payroll.errors import ValidationError

if TYPE_CHECKING:
    from agri_payroll.models import WorkOrder, WorkOrderWorker


class GrossSalaryCalculator:
    """Computes a worker's earnings for a single work order.

    - ``work_days`` orders: rate x work_days
    - ``normal`` orders: rate x work_area_size

    Missing rate or quantity counts as zero. ``resources`` orders carry no
    worker pay and are rejected.
    """

    @staticmethod
    def calculate(rate_type: str, assignment: WorkOrderWorker) -> Decimal:
        kind = RateType(rate_type)
        if kind == RateType.RESOURCES:
            raise ValidationError(
                "Resources work orders do not produce worker pay",
                work_order_id=assignment.work_order_id,
            )

        rate = assignment.rate or ZERO
        if kind == RateType.WORK_DAYS:
            quantity = Decimal(assignment.work_days or 0)
        else:
            quantity = assignment.work_area_size or ZERO

        return to_cents(rate * quantity)

    @classmethod
    def for_order(cls, work_order: WorkOrder, assignment: WorkOrderWorker) -> Decimal:
        return cls.calculate(work_order.rate_type, assignment)
