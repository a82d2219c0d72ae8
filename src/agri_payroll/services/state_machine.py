"""Work order state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from agri_payroll.calculators.types import RateType
from agri_payroll.errors import ErrorKind, PayrollError

if TYPE_CHECKING:
    from agri_payroll.models import WorkOrder


class WorkOrderStatus(str, Enum):
    """Work order status values."""

    ONGOING = "ongoing"
    PENDING = "pending"
    AMENDMENT_REQUIRED = "amendment_required"
    COMPLETED = "completed"
    REJECTED = "rejected"


class DiscardState(str, Enum):
    """Soft-delete lifecycle, orthogonal to status."""

    ACTIVE = "active"
    DISCARDED = "discarded"


class WorkOrderEvent(str, Enum):
    """Lifecycle events recorded in work order history."""

    MARK_COMPLETE = "mark_complete"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_AMENDMENT = "request_amendment"
    REOPEN = "reopen"
    DISCARD = "discard"
    RESTORE = "restore"


class InvalidTransitionError(PayrollError):
    """Raised when an invalid state transition is attempted."""

    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, from_status=from_status, to_status=to_status)


class WorkOrderStateMachine:
    """State machine for work order status and discard transitions.

    Status transitions:
    - ongoing → pending (mark_complete)
    - pending → completed (approve)
    - pending → rejected (reject)
    - pending → amendment_required (request_amendment)
    - amendment_required → pending (reopen)

    Discard transitions:
    - active → discarded (discard)
    - discarded → active (restore)
    """

    # Define valid transitions: {event: (from_status, to_status)}
    EVENTS: dict[str, tuple[str, str]] = {
        WorkOrderEvent.MARK_COMPLETE: (WorkOrderStatus.ONGOING, WorkOrderStatus.PENDING),
        WorkOrderEvent.APPROVE: (WorkOrderStatus.PENDING, WorkOrderStatus.COMPLETED),
        WorkOrderEvent.REJECT: (WorkOrderStatus.PENDING, WorkOrderStatus.REJECTED),
        WorkOrderEvent.REQUEST_AMENDMENT: (
            WorkOrderStatus.PENDING,
            WorkOrderStatus.AMENDMENT_REQUIRED,
        ),
        WorkOrderEvent.REOPEN: (WorkOrderStatus.AMENDMENT_REQUIRED, WorkOrderStatus.PENDING),
    }

    VALID_TRANSITIONS: dict[str, list[str]] = {
        WorkOrderStatus.ONGOING: [WorkOrderStatus.PENDING],
        WorkOrderStatus.PENDING: [
            WorkOrderStatus.COMPLETED,
            WorkOrderStatus.REJECTED,
            WorkOrderStatus.AMENDMENT_REQUIRED,
        ],
        WorkOrderStatus.AMENDMENT_REQUIRED: [WorkOrderStatus.PENDING],
        WorkOrderStatus.COMPLETED: [],  # Terminal state
        WorkOrderStatus.REJECTED: [],  # Terminal state
    }

    DISCARD_TRANSITIONS: dict[str, tuple[str, str]] = {
        WorkOrderEvent.DISCARD: (DiscardState.ACTIVE, DiscardState.DISCARDED),
        WorkOrderEvent.RESTORE: (DiscardState.DISCARDED, DiscardState.ACTIVE),
    }

    # Guard table: event -> payroll action, applied only when the order carries pay
    PAYROLL_ACTIONS: dict[str, str] = {
        WorkOrderEvent.APPROVE: "process",
        WorkOrderEvent.DISCARD: "reverse",
        WorkOrderEvent.RESTORE: "process",
    }

    DEFAULT_REMARKS: dict[str, str] = {
        WorkOrderEvent.MARK_COMPLETE: "Work order submitted for approval",
        WorkOrderEvent.APPROVE: "Work order approved and completed",
        WorkOrderEvent.REJECT: "Work order rejected by approver",
        WorkOrderEvent.REQUEST_AMENDMENT: "Amendment requested by approver",
        WorkOrderEvent.REOPEN: "Work order resubmitted after amendments",
        WorkOrderEvent.DISCARD: "Work order discarded",
        WorkOrderEvent.RESTORE: "Work order restored",
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def target_for(cls, event: str, work_order: WorkOrder) -> WorkOrderStatus:
        """Resolve and validate the status an event moves an order to."""
        if work_order.is_discarded:
            raise InvalidTransitionError(
                work_order.work_order_status,
                cls.EVENTS[event][1].value,
                reason="work order is discarded",
            )
        from_status, to_status = cls.EVENTS[event]
        if work_order.work_order_status != from_status:
            raise InvalidTransitionError(
                work_order.work_order_status,
                to_status.value,
                reason=f"'{WorkOrderEvent(event).value}' requires status '{from_status.value}'",
            )
        return to_status

    @classmethod
    def discard_state(cls, work_order: WorkOrder) -> DiscardState:
        return DiscardState.DISCARDED if work_order.is_discarded else DiscardState.ACTIVE

    @classmethod
    def validate_discard_transition(cls, event: str, work_order: WorkOrder) -> DiscardState:
        """Validate discard/restore, returning the new discard state."""
        from_state, to_state = cls.DISCARD_TRANSITIONS[event]
        current = cls.discard_state(work_order)
        if current != from_state:
            raise InvalidTransitionError(current.value, to_state.value)
        return to_state

    @classmethod
    def carries_payroll(cls, work_order: WorkOrder) -> bool:
        """Only completed orders with a completion date and worker pay affect payroll."""
        return (
            work_order.work_order_status == WorkOrderStatus.COMPLETED
            and work_order.completion_date is not None
            and work_order.rate_type != RateType.RESOURCES
        )

    @classmethod
    def payroll_action(cls, event: str, work_order: WorkOrder) -> str | None:
        """Return 'process', 'reverse' or None for an event on this order."""
        action = cls.PAYROLL_ACTIONS.get(event)
        if action is None or not cls.carries_payroll(work_order):
            return None
        return action

    @classmethod
    def validate_work_order_for_transition(cls, work_order: WorkOrder, event: str) -> list[str]:
        """Validate preconditions beyond the status graph.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        if event in (WorkOrderEvent.MARK_COMPLETE, WorkOrderEvent.REOPEN):
            if work_order.rate_type != RateType.RESOURCES and not work_order.assignments:
                errors.append("Work order has no worker assignments")
        elif event == WorkOrderEvent.APPROVE:
            if work_order.rate_type == RateType.RESOURCES and work_order.assignments:
                errors.append("Resources work orders cannot carry worker assignments")
        return errors

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])
