"""SQLAlchemy ORM models for the work-order payroll engine."""

from agri_payroll.models.base import Base, TimestampMixin
from agri_payroll.models.deductions import DeductionRule, WageBracket
from agri_payroll.models.pay_calculation import PayCalculation, PayCalculationDetail
from agri_payroll.models.work_order import (
    Worker,
    WorkOrder,
    WorkOrderHistory,
    WorkOrderWorker,
)

__all__ = [
    "Base",
    "DeductionRule",
    "PayCalculation",
    "PayCalculationDetail",
    "TimestampMixin",
    "WageBracket",
    "WorkOrder",
    "WorkOrderHistory",
    "WorkOrderWorker",
    "Worker",
]
