"""Work order lifecycle transitions and their payroll side effects."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agri_payroll.errors import NotFoundError, PayrollError, ValidationError, from_database_error
from agri_payroll.models import WorkOrder, WorkOrderHistory
from agri_payroll.result import Result
from agri_payroll.services.context import ServiceContext
from agri_payroll.services.process_work_order_service import ProcessWorkOrderService
from agri_payroll.services.reverse_work_order_service import ReverseWorkOrderService
from agri_payroll.services.state_machine import (
    WorkOrderEvent,
    WorkOrderStateMachine,
    WorkOrderStatus,
)

logger = logging.getLogger(__name__)


class WorkOrderLifecycle:
    """Applies lifecycle events to work orders.

    Payroll is orchestrated explicitly from here, never from save hooks:
    - approve: status change and processing commit or abort together
    - discard: reversal runs first; a failed reversal aborts the discard
    - restore: processing re-runs for the restored order

    Every transition writes a WorkOrderHistory row.
    """

    def __init__(
        self,
        session: AsyncSession,
        processor: ProcessWorkOrderService | None = None,
        reverser: ReverseWorkOrderService | None = None,
    ):
        self.session = session
        self.processor = processor or ProcessWorkOrderService(session)
        self.reverser = reverser or ReverseWorkOrderService(session)

    async def mark_complete(
        self, work_order_id: UUID, context: ServiceContext, remarks: str | None = None
    ) -> Result[WorkOrder]:
        return await self._run(WorkOrderEvent.MARK_COMPLETE, work_order_id, context, remarks)

    async def approve(
        self, work_order_id: UUID, context: ServiceContext, remarks: str | None = None
    ) -> Result[WorkOrder]:
        return await self._run(WorkOrderEvent.APPROVE, work_order_id, context, remarks)

    async def reject(
        self, work_order_id: UUID, context: ServiceContext, remarks: str | None = None
    ) -> Result[WorkOrder]:
        return await self._run(WorkOrderEvent.REJECT, work_order_id, context, remarks)

    async def request_amendment(
        self, work_order_id: UUID, context: ServiceContext, remarks: str | None = None
    ) -> Result[WorkOrder]:
        return await self._run(WorkOrderEvent.REQUEST_AMENDMENT, work_order_id, context, remarks)

    async def reopen(
        self, work_order_id: UUID, context: ServiceContext, remarks: str | None = None
    ) -> Result[WorkOrder]:
        return await self._run(WorkOrderEvent.REOPEN, work_order_id, context, remarks)

    async def discard(
        self, work_order_id: UUID, context: ServiceContext, remarks: str | None = None
    ) -> Result[WorkOrder]:
        return await self._run(WorkOrderEvent.DISCARD, work_order_id, context, remarks)

    async def restore(
        self, work_order_id: UUID, context: ServiceContext, remarks: str | None = None
    ) -> Result[WorkOrder]:
        return await self._run(WorkOrderEvent.RESTORE, work_order_id, context, remarks)

    async def _run(
        self,
        event: WorkOrderEvent,
        work_order_id: UUID,
        context: ServiceContext,
        remarks: str | None,
    ) -> Result[WorkOrder]:
        log_extra = {
            "work_order_id": str(work_order_id),
            "event": event.value,
            **context.log_fields(),
        }
        try:
            async with self.session.begin_nested():
                work_order = await self.get_work_order(work_order_id)
                if event in (WorkOrderEvent.DISCARD, WorkOrderEvent.RESTORE):
                    from_state, to_state = await self._change_discard_state(
                        event, work_order, context
                    )
                else:
                    from_state, to_state = await self._change_status(event, work_order, context)
                self.session.add(
                    WorkOrderHistory(
                        work_order_id=work_order.work_order_id,
                        event_name=event.value,
                        from_state=from_state,
                        to_state=to_state,
                        actor_name=context.actor_name,
                        request_id=context.request_id,
                        remarks=remarks or WorkOrderStateMachine.DEFAULT_REMARKS[event],
                        occurred_at=context.occurred_at,
                    )
                )
                await self.session.flush()
        except PayrollError as exc:
            logger.warning(
                "Work order %s rejected: %s",
                event.value,
                exc.message,
                extra={**log_extra, "error_kind": exc.kind.value},
            )
            return Result.failure(exc)
        except SQLAlchemyError as exc:
            error = from_database_error(exc)
            logger.error(
                "Work order %s failed: %s",
                event.value,
                error.message,
                extra={**log_extra, "error_kind": error.kind.value},
            )
            return Result.failure(error)

        logger.info(
            "Work order %s: %s -> %s",
            event.value,
            from_state,
            to_state,
            extra=log_extra,
        )
        return Result.success(work_order)

    async def get_work_order(self, work_order_id: UUID) -> WorkOrder:
        result = await self.session.execute(
            select(WorkOrder)
            .where(WorkOrder.work_order_id == work_order_id)
            .options(selectinload(WorkOrder.assignments))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        work_order = result.scalar_one_or_none()
        if work_order is None:
            raise NotFoundError(f"Work order {work_order_id} not found", work_order_id=work_order_id)
        return work_order

    async def _change_status(
        self,
        event: WorkOrderEvent,
        work_order: WorkOrder,
        context: ServiceContext,
    ) -> tuple[str, str]:
        to_status = WorkOrderStateMachine.target_for(event, work_order)
        errors = WorkOrderStateMachine.validate_work_order_for_transition(work_order, event)
        if errors:
            raise ValidationError("; ".join(errors), work_order_id=work_order.work_order_id)

        from_status = work_order.work_order_status
        work_order.work_order_status = to_status.value

        if to_status == WorkOrderStatus.COMPLETED:
            # Backdated completion dates are kept; otherwise it is today on the estate clock
            if work_order.completion_date is None:
                work_order.completion_date = context.local_date()
            work_order.approved_by = context.actor_name
            work_order.approved_at = context.occurred_at
        await self.session.flush()

        await self._apply_payroll(event, work_order, context)
        return from_status, to_status.value

    async def _change_discard_state(
        self,
        event: WorkOrderEvent,
        work_order: WorkOrder,
        context: ServiceContext,
    ) -> tuple[str, str]:
        from_state = WorkOrderStateMachine.discard_state(work_order)
        to_state = WorkOrderStateMachine.validate_discard_transition(event, work_order)

        if event == WorkOrderEvent.DISCARD:
            # Reverse while the order still counts as active
            await self._apply_payroll(event, work_order, context)
            work_order.discarded_at = context.occurred_at
            await self.session.flush()
        else:
            work_order.discarded_at = None
            await self.session.flush()
            await self._apply_payroll(event, work_order, context)

        return from_state.value, to_state.value

    async def _apply_payroll(
        self,
        event: WorkOrderEvent,
        work_order: WorkOrder,
        context: ServiceContext,
    ) -> None:
        action = WorkOrderStateMachine.payroll_action(event, work_order)
        if action is None:
            return
        if action == "reverse":
            outcome = await self.reverser.reverse(work_order, context)
        else:
            outcome = await self.processor.process(work_order, context)
        if outcome.is_failure:
            raise outcome.error

