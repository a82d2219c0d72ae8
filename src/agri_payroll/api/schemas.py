"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# Pay calculation schemas
# ============================================================================


class PayCalculationSummary(BaseModel):
    """Monthly totals without per-worker details."""

    model_config = ConfigDict(from_attributes=True)

    pay_calculation_id: UUID
    month: str
    total_gross_salary: Decimal
    total_employee_deductions: Decimal
    total_employer_deductions: Decimal
    total_net_salary: Decimal
    created_at: datetime
    updated_at: datetime


class PayCalculationDetailResponse(BaseModel):
    """One worker's accumulated pay for the month."""

    model_config = ConfigDict(from_attributes=True)

    pay_calculation_detail_id: UUID
    worker_id: UUID
    gross_salary: Decimal
    employee_deductions: Decimal
    employer_deductions: Decimal
    net_salary: Decimal
    currency: str
    deduction_breakdown: dict[str, Any]


class PayCalculationResponse(PayCalculationSummary):
    """Monthly totals with details and their deduction breakdowns."""

    details: list[PayCalculationDetailResponse]


class PayCalculationListResponse(BaseModel):
    items: list[PayCalculationSummary]
    total: int


# ============================================================================
# Work order schemas
# ============================================================================


class TransitionRequest(BaseModel):
    """Optional remarks recorded in the work order history."""

    remarks: str | None = Field(default=None, max_length=1000)


class WorkOrderResponse(BaseModel):
    """Work order state after a lifecycle event."""

    model_config = ConfigDict(from_attributes=True)

    work_order_id: UUID
    rate_type: str
    work_order_status: str
    start_date: date | None = None
    completion_date: date | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    discarded_at: datetime | None = None


# ============================================================================
# Deduction rule schemas
# ============================================================================


class WageBracketIn(BaseModel):
    """Bracket row for a wage range rule."""

    min_wage: Decimal = Field(ge=0)
    max_wage: Decimal | None = None
    employee_amount: Decimal = Decimal("0")
    employer_amount: Decimal = Decimal("0")
    calculation_method: str = "fixed"
    employee_percentage: Decimal = Decimal("0")
    employer_percentage: Decimal = Decimal("0")


class WageBracketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    wage_bracket_id: UUID
    min_wage: Decimal
    max_wage: Decimal | None = None
    calculation_method: str
    employee_amount: Decimal
    employer_amount: Decimal
    employee_percentage: Decimal
    employer_percentage: Decimal


class DeductionRuleCreate(BaseModel):
    """Schema for creating a deduction rule version."""

    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1)
    description: str | None = None
    calculation_kind: str = "percentage"
    applies_to_nationality: str = "all"
    employee_contribution: Decimal | None = None
    employer_contribution: Decimal | None = None
    rounding_precision: int = 2
    rounding_method: str = "round"
    effective_from: date
    effective_until: date | None = None
    brackets: list[WageBracketIn] | None = None


class RateUpdateRequest(BaseModel):
    """Schema for a rate change starting at ``effective_from``."""

    effective_from: date
    employee_contribution: Decimal | None = None
    employer_contribution: Decimal | None = None
    brackets: list[WageBracketIn] | None = None


class DeductionRuleResponse(BaseModel):
    """Schema for deduction rule response."""

    model_config = ConfigDict(from_attributes=True)

    deduction_rule_id: UUID
    code: str
    name: str
    description: str | None = None
    calculation_kind: str
    applies_to_nationality: str
    employee_contribution: Decimal | None = None
    employer_contribution: Decimal | None = None
    rounding_precision: int
    rounding_method: str
    effective_from: date
    effective_until: date | None = None
    is_active: bool
    brackets: list[WageBracketResponse] = []


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
