"""Pay calculation (monthly payroll) read endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, Query
from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from agri_payroll.api.dependencies import DbSession
from agri_payroll.api.schemas import (
    ErrorResponse,
    PayCalculationListResponse,
    PayCalculationResponse,
    PayCalculationSummary,
)
from agri_payroll.calculators import parse_month
from agri_payroll.errors import NotFoundError
from agri_payroll.models import PayCalculation

router = APIRouter(prefix="/pay-calculations", tags=["pay-calculations"])


@router.get("", response_model=PayCalculationListResponse)
async def list_pay_calculations(
    db: DbSession,
    limit: Annotated[int, Query(ge=1, le=120)] = 24,
) -> PayCalculationListResponse:
    """List monthly pay calculations, newest month first."""
    total = await db.scalar(select(func.count()).select_from(PayCalculation))
    result = await db.execute(
        select(PayCalculation).order_by(PayCalculation.month.desc()).limit(limit)
    )
    return PayCalculationListResponse(
        items=[PayCalculationSummary.model_validate(pc) for pc in result.scalars().all()],
        total=total or 0,
    )


@router.get(
    "/{month}",
    response_model=PayCalculationResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def get_pay_calculation(
    db: DbSession,
    month: Annotated[str, Path(description="Month key, YYYY-MM")],
) -> PayCalculationResponse:
    """Get one month's totals with per-worker details and breakdowns."""
    parse_month(month)
    result = await db.execute(
        select(PayCalculation)
        .where(PayCalculation.month == month)
        .options(selectinload(PayCalculation.details))
    )
    pay_calculation = result.scalar_one_or_none()
    if pay_calculation is None:
        raise NotFoundError(f"No pay calculation for {month}", month=month)
    return PayCalculationResponse.model_validate(pay_calculation)
