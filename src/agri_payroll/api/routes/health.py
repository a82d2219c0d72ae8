"""Service health and readiness checks."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from agri_payroll.api.dependencies import DbSession
from agri_payroll.calculators import month_key
from agri_payroll.services.deduction_rule_service import DeductionRuleService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str


class ReadinessResponse(BaseModel):
    """Whether payroll can be processed for the current month."""

    status: str
    month: str
    rules_in_force: int


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """Report API and database health; a failing database degrades the status."""
    try:
        await db.execute(text("SELECT 1"))
        database = "healthy"
    except SQLAlchemyError as exc:
        logger.warning("Database health check failed: %s", exc)
        database = "unhealthy"

    return HealthResponse(
        status="healthy" if database == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=database,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(db: DbSession, response: Response) -> ReadinessResponse:
    """Ready once deduction rules are configured for the current month.

    Approving a work order with no rules in force would store zero
    deductions, so the service reports 503 until rules are seeded.
    """
    month = month_key(datetime.now(timezone.utc).date())
    try:
        rules = await DeductionRuleService(db).rules_in_force(month)
    except SQLAlchemyError as exc:
        logger.warning("Readiness check failed: %s", exc)
        rules = None

    if not rules:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(status="not_ready", month=month, rules_in_force=0)
    return ReadinessResponse(status="ready", month=month, rules_in_force=len(rules))


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
