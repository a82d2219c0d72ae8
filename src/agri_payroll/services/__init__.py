"""Payroll services: processing, reversal, lifecycle and rule administration."""

from agri_payroll.services.context import ServiceContext
from agri_payroll.services.deduction_rule_service import (
    BracketSpec,
    DeductionRuleService,
    validate_partition,
)
from agri_payroll.services.locking_service import TransactionRunner
from agri_payroll.services.pay_calculation_aggregate import PayCalculationAggregate
from agri_payroll.services.process_work_order_service import ProcessWorkOrderService
from agri_payroll.services.reverse_work_order_service import ReverseWorkOrderService
from agri_payroll.services.rule_import import ImportReport, RuleImporter
from agri_payroll.services.state_machine import (
    DiscardState,
    InvalidTransitionError,
    WorkOrderEvent,
    WorkOrderStateMachine,
    WorkOrderStatus,
)
from agri_payroll.services.work_order_lifecycle import WorkOrderLifecycle
from agri_payroll.services.worker_directory import SqlWorkerDirectory, WorkerDirectory

__all__ = [
    "BracketSpec",
    "DeductionRuleService",
    "DiscardState",
    "ImportReport",
    "InvalidTransitionError",
    "PayCalculationAggregate",
    "ProcessWorkOrderService",
    "ReverseWorkOrderService",
    "RuleImporter",
    "ServiceContext",
    "SqlWorkerDirectory",
    "TransactionRunner",
    "WorkOrderEvent",
    "WorkOrderLifecycle",
    "WorkOrderStateMachine",
    "WorkOrderStatus",
    "WorkerDirectory",
    "validate_partition",
]
