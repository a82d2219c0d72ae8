"""API routes."""

from agri_payroll.api.routes.deduction_rules import router as deduction_rules_router
from agri_payroll.api.routes.health import router as health_router
from agri_payroll.api.routes.pay_calculations import router as pay_calculations_router
from agri_payroll.api.routes.work_orders import router as work_orders_router

__all__ = [
    "deduction_rules_router",
    "health_router",
    "pay_calculations_router",
    "work_orders_router",
]
