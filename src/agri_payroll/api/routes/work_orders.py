"""Work order lifecycle endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from agri_payroll.api.dependencies import Context, Runner
from agri_payroll.api.schemas import ErrorResponse, TransitionRequest, WorkOrderResponse
from agri_payroll.services.state_machine import WorkOrderEvent
from agri_payroll.services.work_order_lifecycle import WorkOrderLifecycle

router = APIRouter(prefix="/work-orders", tags=["work-orders"])

_ERRORS = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


async def _apply(
    runner: Runner,
    context: Context,
    event: WorkOrderEvent,
    work_order_id: UUID,
    payload: TransitionRequest | None,
) -> WorkOrderResponse:
    remarks = payload.remarks if payload else None

    async def operation(session):
        lifecycle = WorkOrderLifecycle(session)
        return await getattr(lifecycle, event.value)(work_order_id, context, remarks)

    result = await runner.run(operation, name=f"work order {event.value}")
    return WorkOrderResponse.model_validate(result.unwrap())


@router.post("/{work_order_id}/mark-complete", response_model=WorkOrderResponse, responses=_ERRORS)
async def mark_complete(
    runner: Runner,
    context: Context,
    work_order_id: Annotated[UUID, Path()],
    payload: TransitionRequest | None = None,
) -> WorkOrderResponse:
    """Submit an ongoing work order for approval."""
    return await _apply(runner, context, WorkOrderEvent.MARK_COMPLETE, work_order_id, payload)


@router.post("/{work_order_id}/approve", response_model=WorkOrderResponse, responses=_ERRORS)
async def approve(
    runner: Runner,
    context: Context,
    work_order_id: Annotated[UUID, Path()],
    payload: TransitionRequest | None = None,
) -> WorkOrderResponse:
    """Approve a pending work order and add its pay to the completion month."""
    return await _apply(runner, context, WorkOrderEvent.APPROVE, work_order_id, payload)


@router.post("/{work_order_id}/reject", response_model=WorkOrderResponse, responses=_ERRORS)
async def reject(
    runner: Runner,
    context: Context,
    work_order_id: Annotated[UUID, Path()],
    payload: TransitionRequest | None = None,
) -> WorkOrderResponse:
    """Reject a pending work order."""
    return await _apply(runner, context, WorkOrderEvent.REJECT, work_order_id, payload)


@router.post(
    "/{work_order_id}/request-amendment",
    response_model=WorkOrderResponse,
    responses=_ERRORS,
)
async def request_amendment(
    runner: Runner,
    context: Context,
    work_order_id: Annotated[UUID, Path()],
    payload: TransitionRequest | None = None,
) -> WorkOrderResponse:
    """Send a pending work order back for amendment."""
    return await _apply(runner, context, WorkOrderEvent.REQUEST_AMENDMENT, work_order_id, payload)


@router.post("/{work_order_id}/reopen", response_model=WorkOrderResponse, responses=_ERRORS)
async def reopen(
    runner: Runner,
    context: Context,
    work_order_id: Annotated[UUID, Path()],
    payload: TransitionRequest | None = None,
) -> WorkOrderResponse:
    """Resubmit an amended work order."""
    return await _apply(runner, context, WorkOrderEvent.REOPEN, work_order_id, payload)


@router.delete("/{work_order_id}", response_model=WorkOrderResponse, responses=_ERRORS)
async def discard(
    runner: Runner,
    context: Context,
    work_order_id: Annotated[UUID, Path()],
) -> WorkOrderResponse:
    """Soft-delete a work order, reversing its payroll first."""
    return await _apply(runner, context, WorkOrderEvent.DISCARD, work_order_id, None)


@router.post("/{work_order_id}/restore", response_model=WorkOrderResponse, responses=_ERRORS)
async def restore(
    runner: Runner,
    context: Context,
    work_order_id: Annotated[UUID, Path()],
    payload: TransitionRequest | None = None,
) -> WorkOrderResponse:
    """Restore a discarded work order and re-add its payroll."""
    return await _apply(runner, context, WorkOrderEvent.RESTORE, work_order_id, payload)
