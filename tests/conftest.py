"""Pytest fixtures for payroll engine tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from agri_payroll.models import (
    Base,
    DeductionRule,
    PayCalculation,
    PayCalculationDetail,
    WageBracket,
    Worker,
    WorkOrder,
    WorkOrderWorker,
)

# Use in-memory SQLite for tests (with async support)
# For PostgreSQL locking behaviour, point DATABASE_URL at a test database
TEST_DATABASE_URL = "sqlite+aiosqlite://"

JANUARY = date(2025, 1, 15)


@pytest.fixture
async def engine():
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Let SQLAlchemy own BEGIN so SAVEPOINT works under aiosqlite
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# Factories
# ============================================================================


@pytest.fixture
def make_worker(session: AsyncSession):
    """Factory for directory workers."""

    async def _make(name: str = "Ahmad", nationality: str | None = "local") -> Worker:
        worker = Worker(worker_id=uuid4(), name=name, nationality=nationality, is_active=True)
        session.add(worker)
        await session.flush()
        return worker

    return _make


@pytest.fixture
def make_rule(session: AsyncSession):
    """Factory for deduction rule versions.

    ``brackets`` is a list of (min, max, employee_amount, employer_amount).
    """

    async def _make(
        code: str,
        employee: str | None = None,
        employer: str | None = None,
        kind: str = "percentage",
        nationality: str = "all",
        effective_from: date = date(2025, 1, 1),
        effective_until: date | None = None,
        brackets: list[tuple[str, str | None, str, str]] | None = None,
        rounding_precision: int = 2,
        rounding_method: str = "round",
        is_active: bool = True,
    ) -> DeductionRule:
        rule = DeductionRule(
            deduction_rule_id=uuid4(),
            code=code,
            name=code.replace("_", " ").title(),
            calculation_kind=kind,
            applies_to_nationality=nationality,
            employee_contribution=Decimal(employee) if employee is not None else None,
            employer_contribution=Decimal(employer) if employer is not None else None,
            rounding_precision=rounding_precision,
            rounding_method=rounding_method,
            effective_from=effective_from,
            effective_until=effective_until,
            is_active=is_active,
            brackets=[
                WageBracket(
                    code=code,
                    min_wage=Decimal(low),
                    max_wage=Decimal(high) if high is not None else None,
                    calculation_method="fixed",
                    employee_amount=Decimal(ee),
                    employer_amount=Decimal(er),
                    employee_percentage=Decimal("0"),
                    employer_percentage=Decimal("0"),
                )
                for low, high, ee, er in (brackets or [])
            ],
        )
        session.add(rule)
        await session.flush()
        return rule

    return _make


@pytest.fixture
def make_work_order(session: AsyncSession):
    """Factory for work orders.

    ``assignments`` is a list of (worker, rate, quantity); quantity is work
    days for ``work_days`` orders and area otherwise.
    """

    async def _make(
        assignments: list[tuple[Worker, str, str]] | None = None,
        rate_type: str = "normal",
        status: str = "completed",
        completion_date: date | None = JANUARY,
    ) -> WorkOrder:
        rows = []
        for worker, rate, quantity in assignments or []:
            row = WorkOrderWorker(worker_id=worker.worker_id, rate=Decimal(rate))
            if rate_type == "work_days":
                row.work_days = int(quantity)
            else:
                row.work_area_size = Decimal(quantity)
            rows.append(row)

        work_order = WorkOrder(
            work_order_id=uuid4(),
            rate_type=rate_type,
            work_order_status=status,
            start_date=date(2025, 1, 1),
            completion_date=completion_date,
            assignments=rows,
        )
        session.add(work_order)
        await session.flush()
        return work_order

    return _make


# ============================================================================
# Rule sets
# ============================================================================


@pytest.fixture
async def statutory_rules(make_rule) -> dict[str, DeductionRule]:
    """Malaysian statutory set, all percentage based."""
    return {
        "EPF": await make_rule("EPF", "11", "12"),
        "SOCSO_MALAYSIAN": await make_rule("SOCSO_MALAYSIAN", "0.5", "1.75", nationality="local"),
        "SOCSO_FOREIGN": await make_rule("SOCSO_FOREIGN", "0", "1.25", nationality="foreigner"),
        "SIP": await make_rule("SIP", "0.2", "0.2", nationality="local"),
    }


SOCSO_BRACKETS = [
    ("0", "500.00", "2.00", "4.00"),
    ("500.01", "1000.00", "5.00", "10.00"),
    ("1000.01", "2000.00", "10.00", "20.00"),
    ("2000.01", None, "15.00", "30.00"),
]


@pytest.fixture
async def bracket_rules(make_rule) -> dict[str, DeductionRule]:
    """EPF percentage plus a SOCSO bracket table (non-linear in gross)."""
    return {
        "EPF": await make_rule("EPF", "11", "12"),
        "SOCSO": await make_rule(
            "SOCSO", kind="wage_range", nationality="local", brackets=SOCSO_BRACKETS
        ),
    }


# ============================================================================
# Payroll readers
# ============================================================================


class PayrollReader:
    """Fresh reads of pay calculation rows, bypassing the identity map."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def month(self, month: str) -> PayCalculation | None:
        result = await self.session.execute(
            select(PayCalculation)
            .where(PayCalculation.month == month)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def details(self, month: str) -> list[PayCalculationDetail]:
        result = await self.session.execute(
            select(PayCalculationDetail)
            .join(PayCalculation)
            .where(PayCalculation.month == month)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def detail(self, month: str, worker: Worker) -> PayCalculationDetail | None:
        for detail in await self.details(month):
            if detail.worker_id == worker.worker_id:
                return detail
        return None


@pytest.fixture
def payroll(session: AsyncSession) -> PayrollReader:
    return PayrollReader(session)
