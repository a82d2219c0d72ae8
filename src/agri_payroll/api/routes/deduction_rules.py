"""Deduction rule administration endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, Query, status

from agri_payroll.api.dependencies import Context, DbSession
from agri_payroll.api.schemas import (
    DeductionRuleCreate,
    DeductionRuleResponse,
    ErrorResponse,
    RateUpdateRequest,
    WageBracketIn,
)
from agri_payroll.services.deduction_rule_service import BracketSpec, DeductionRuleService

router = APIRouter(prefix="/deduction-rules", tags=["deduction-rules"])


def _specs(brackets: list[WageBracketIn] | None) -> list[BracketSpec] | None:
    if brackets is None:
        return None
    return [BracketSpec(**b.model_dump()) for b in brackets]


@router.get("", response_model=list[DeductionRuleResponse])
async def list_rules_in_force(
    db: DbSession,
    month: Annotated[str, Query(description="Month key, YYYY-MM")],
    nationality: Annotated[str | None, Query()] = None,
) -> list[DeductionRuleResponse]:
    """Rule versions in force for a month, optionally for one nationality."""
    rules = await DeductionRuleService(db).rules_in_force(month, nationality)
    return [DeductionRuleResponse.model_validate(r) for r in rules]


@router.post(
    "",
    response_model=DeductionRuleResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_rule(
    db: DbSession,
    context: Context,
    payload: DeductionRuleCreate,
) -> DeductionRuleResponse:
    """Create a deduction rule version."""
    data = payload.model_dump(exclude={"brackets"})
    result = await DeductionRuleService(db).create_rule(
        **data,
        brackets=_specs(payload.brackets),
        context=context,
    )
    rule = result.unwrap()
    await db.commit()
    return DeductionRuleResponse.model_validate(rule)


@router.post(
    "/{code}/rate",
    response_model=DeductionRuleResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def update_rate(
    db: DbSession,
    context: Context,
    code: Annotated[str, Path()],
    payload: RateUpdateRequest,
) -> DeductionRuleResponse:
    """Close the open version of a rule and start a new one."""
    result = await DeductionRuleService(db).update_rate(
        code,
        effective_from=payload.effective_from,
        employee_contribution=payload.employee_contribution,
        employer_contribution=payload.employer_contribution,
        brackets=_specs(payload.brackets),
        context=context,
    )
    rule = result.unwrap()
    await db.commit()
    return DeductionRuleResponse.model_validate(rule)
