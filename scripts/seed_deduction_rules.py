"""Seed script for the standard Malaysian statutory deductions.

Run with:
    python scripts/seed_deduction_rules.py

Creates EPF, SOCSO and SIP (EIS) rule versions effective 2025-01-01.
Existing codes are left untouched.
"""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agri_payroll.config import configure_logging
from agri_payroll.database import get_session
from agri_payroll.models import DeductionRule
from agri_payroll.services import BracketSpec, DeductionRuleService, ServiceContext

EFFECTIVE_FROM = date(2025, 1, 1)

# SOCSO first category contribution table (excerpt, fixed amounts per bracket)
SOCSO_BRACKETS = [
    BracketSpec(Decimal("0"), Decimal("30.00"), Decimal("0.10"), Decimal("0.40")),
    BracketSpec(Decimal("30.01"), Decimal("50.00"), Decimal("0.20"), Decimal("0.70")),
    BracketSpec(Decimal("50.01"), Decimal("70.00"), Decimal("0.30"), Decimal("1.10")),
    BracketSpec(Decimal("70.01"), Decimal("100.00"), Decimal("0.40"), Decimal("1.50")),
    BracketSpec(Decimal("100.01"), Decimal("140.00"), Decimal("0.60"), Decimal("2.10")),
    BracketSpec(Decimal("140.01"), Decimal("200.00"), Decimal("0.85"), Decimal("2.95")),
    BracketSpec(Decimal("200.01"), Decimal("300.00"), Decimal("1.25"), Decimal("4.35")),
    BracketSpec(Decimal("300.01"), Decimal("400.00"), Decimal("1.75"), Decimal("6.15")),
    BracketSpec(Decimal("400.01"), Decimal("500.00"), Decimal("2.25"), Decimal("7.85")),
    BracketSpec(Decimal("500.01"), Decimal("1000.00"), Decimal("4.75"), Decimal("16.65")),
    BracketSpec(Decimal("1000.01"), Decimal("2000.00"), Decimal("9.75"), Decimal("34.15")),
    BracketSpec(Decimal("2000.01"), Decimal("3000.00"), Decimal("14.75"), Decimal("51.65")),
    BracketSpec(Decimal("3000.01"), Decimal("4000.00"), Decimal("19.75"), Decimal("69.15")),
    BracketSpec(Decimal("4000.01"), Decimal("5000.00"), Decimal("24.75"), Decimal("86.65")),
    BracketSpec(Decimal("5000.01"), None, Decimal("29.75"), Decimal("104.15")),
]

RULES = [
    {
        "code": "EPF",
        "name": "EPF",
        "description": "Employees Provident Fund - retirement savings",
        "calculation_kind": "percentage",
        "applies_to_nationality": "all",
        "employee_contribution": Decimal("11"),
        "employer_contribution": Decimal("12"),
        # Contributions are rounded up to the next ringgit
        "rounding_precision": 0,
        "rounding_method": "ceil",
    },
    {
        "code": "SOCSO",
        "name": "SOCSO",
        "description": "Social Security Organization - social protection",
        "calculation_kind": "wage_range",
        "applies_to_nationality": "local",
        "brackets": SOCSO_BRACKETS,
    },
    {
        "code": "SOCSO_FOREIGN",
        "name": "SOCSO (Foreign Worker)",
        "description": "Employment injury scheme for foreign workers",
        "calculation_kind": "percentage",
        "applies_to_nationality": "foreigner",
        "employee_contribution": Decimal("0"),
        "employer_contribution": Decimal("1.25"),
    },
    {
        "code": "SIP",
        "name": "SIP",
        "description": "Employment Insurance System",
        "calculation_kind": "percentage",
        "applies_to_nationality": "local",
        "employee_contribution": Decimal("0.2"),
        "employer_contribution": Decimal("0.2"),
    },
]


async def seed_rules(session: AsyncSession) -> None:
    """Create each standard rule unless a version of its code exists."""
    service = DeductionRuleService(session)
    context = ServiceContext(actor_name="seed")

    for definition in RULES:
        existing = await session.execute(
            select(DeductionRule.deduction_rule_id)
            .where(DeductionRule.code == definition["code"])
            .limit(1)
        )
        if existing.scalar_one_or_none():
            print(f"{definition['code']} already exists, skipping...")
            continue

        result = await service.create_rule(
            effective_from=EFFECTIVE_FROM,
            context=context,
            **definition,
        )
        result.unwrap()
        print(f"Created {definition['code']} rule")


async def main() -> None:
    """Run all seed functions."""
    configure_logging()
    async with get_session() as session:
        await seed_rules(session)
    print("Seed completed successfully!")


if __name__ == "__main__":
    asyncio.run(main())
