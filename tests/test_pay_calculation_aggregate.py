"""Tests for the monthly pay calculation aggregate."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from agri_payroll.errors import ConcurrencyError, ErrorKind, from_database_error
from agri_payroll.models import PayCalculation, PayCalculationDetail
from agri_payroll.services import PayCalculationAggregate, TransactionRunner


@pytest.fixture
async def local_worker(make_worker):
    return await make_worker("Ahmad", "local")


@pytest.fixture
async def foreign_worker(make_worker):
    return await make_worker("Budi", "foreigner")


class TestMonthLookup:
    """Tests for find_or_create_for_month."""

    async def test_creates_once(self, session):
        aggregate = PayCalculationAggregate(session)

        first = await aggregate.find_or_create_for_month("2025-01")
        second = await aggregate.find_or_create_for_month("2025-01")

        assert first.pay_calculation_id == second.pay_calculation_id
        count = await session.scalar(select(func.count()).select_from(PayCalculation))
        assert count == 1

    async def test_new_month_starts_at_zero(self, session):
        aggregate = PayCalculationAggregate(session)

        pay_calculation = await aggregate.find_or_create_for_month("2025-02")

        assert pay_calculation.total_gross_salary == Decimal("0")
        assert pay_calculation.total_net_salary == Decimal("0")

    async def test_find_missing_month(self, session):
        aggregate = PayCalculationAggregate(session)

        assert await aggregate.find_for_month("2030-01") is None

    async def test_month_is_unique(self, session):
        """A second row for the same month is rejected by the database."""
        session.add(PayCalculation(month="2025-03"))
        await session.flush()

        savepoint = await session.begin_nested()
        session.add(PayCalculation(month="2025-03"))
        with pytest.raises(IntegrityError):
            await session.flush()
        await savepoint.rollback()


class TestDetails:
    """Tests for per-worker details."""

    async def test_detail_created_once_per_worker(self, session, local_worker):
        aggregate = PayCalculationAggregate(session)
        pay_calculation = await aggregate.find_or_create_for_month("2025-01")

        first = await aggregate.find_or_create_detail(pay_calculation, local_worker.worker_id)
        second = await aggregate.find_or_create_detail(pay_calculation, local_worker.worker_id)

        assert first.pay_calculation_detail_id == second.pay_calculation_detail_id
        assert first.gross_salary == Decimal("0")
        assert first.currency == "RM"

    async def test_accumulate_recomputes_from_total(self, session, local_worker, bracket_rules):
        """Deductions follow the accumulated gross, not the sum of per-order deductions."""
        aggregate = PayCalculationAggregate(session)
        pay_calculation = await aggregate.find_or_create_for_month("2025-01")
        detail = await aggregate.find_or_create_detail(pay_calculation, local_worker.worker_id)

        await aggregate.accumulate_gross(detail, Decimal("1000.00"), "2025-01", "local")
        result = await aggregate.accumulate_gross(detail, Decimal("300.00"), "2025-01", "local")

        assert result.is_success
        assert detail.gross_salary == Decimal("1300.00")
        # EPF 143 + SOCSO bracket 10 (not 5 + 2)
        assert detail.employee_deductions == Decimal("153.00")
        assert detail.employer_deductions == Decimal("176.00")
        assert detail.net_salary == detail.gross_salary - detail.employee_deductions
        assert set(detail.deduction_breakdown) == {"EPF", "SOCSO"}

    async def test_replace_gross_rejects_negative(self, session, local_worker, statutory_rules):
        aggregate = PayCalculationAggregate(session)
        pay_calculation = await aggregate.find_or_create_for_month("2025-01")
        detail = await aggregate.find_or_create_detail(pay_calculation, local_worker.worker_id)

        result = await aggregate.replace_gross(detail, Decimal("-1"), "2025-01", "local")

        assert result.error_kind == ErrorKind.VALIDATION
        assert detail.gross_salary == Decimal("0")

    async def test_failed_deductions_keep_previous_snapshot(self, session, local_worker, make_rule):
        await make_rule(
            "SOCSO",
            kind="wage_range",
            brackets=[("0", "1000.00", "5", "10"), ("1500.00", None, "9", "18")],
        )
        aggregate = PayCalculationAggregate(session)
        pay_calculation = await aggregate.find_or_create_for_month("2025-01")
        detail = await aggregate.find_or_create_detail(pay_calculation, local_worker.worker_id)

        result = await aggregate.accumulate_gross(detail, Decimal("1200"), "2025-01", "local")

        assert result.error_kind == ErrorKind.CONFIGURATION
        assert detail.employee_deductions == Decimal("0")

    async def test_version_increments_on_update(self, session, local_worker, statutory_rules):
        aggregate = PayCalculationAggregate(session)
        pay_calculation = await aggregate.find_or_create_for_month("2025-01")
        detail = await aggregate.find_or_create_detail(pay_calculation, local_worker.worker_id)
        initial = detail.version

        await aggregate.accumulate_gross(detail, Decimal("500"), "2025-01", "local")

        assert detail.version == initial + 1


class TestMonthlyTotals:
    """Tests for recalculate_monthly_totals."""

    async def test_totals_sum_details(
        self, session, local_worker, foreign_worker, statutory_rules
    ):
        aggregate = PayCalculationAggregate(session)
        pay_calculation = await aggregate.find_or_create_for_month("2025-01")
        for worker, nationality in ((local_worker, "local"), (foreign_worker, "foreigner")):
            detail = await aggregate.find_or_create_detail(pay_calculation, worker.worker_id)
            await aggregate.accumulate_gross(detail, Decimal("3000"), "2025-01", nationality)

        updated = await aggregate.recalculate_monthly_totals(pay_calculation)

        assert updated is pay_calculation
        assert updated.total_gross_salary == Decimal("6000.00")
        assert updated.total_employee_deductions == Decimal("681.00")
        assert updated.total_employer_deductions == Decimal("816.00")
        assert updated.total_net_salary == Decimal("5319.00")

    async def test_empty_month_is_deleted(self, session, local_worker, statutory_rules):
        aggregate = PayCalculationAggregate(session)
        pay_calculation = await aggregate.find_or_create_for_month("2025-01")
        detail = await aggregate.find_or_create_detail(pay_calculation, local_worker.worker_id)
        await aggregate.remove_detail(detail)

        result = await aggregate.recalculate_monthly_totals(pay_calculation)

        assert result is None
        assert await aggregate.find_for_month("2025-01") is None
        count = await session.scalar(select(func.count()).select_from(PayCalculationDetail))
        assert count == 0


class TestConcurrentWriters:
    """Two sessions holding the same detail: the later writer sees a stale version."""

    @pytest.fixture
    async def committed_detail(self, session, local_worker):
        aggregate = PayCalculationAggregate(session)
        pay_calculation = await aggregate.find_or_create_for_month("2025-01")
        detail = await aggregate.find_or_create_detail(pay_calculation, local_worker.worker_id)
        (await aggregate.accumulate_gross(detail, Decimal("1000"), "2025-01", "local")).unwrap()
        await session.commit()
        return detail.pay_calculation_detail_id

    @staticmethod
    async def add_300(session_factory, detail_id):
        """A competing writer that commits first."""
        async with session_factory() as other:
            detail = await other.get(PayCalculationDetail, detail_id)
            aggregate = PayCalculationAggregate(other)
            (await aggregate.accumulate_gross(detail, Decimal("300"), "2025-01", "local")).unwrap()
            await other.commit()

    async def test_stale_write_raises_concurrency(self, session_factory, committed_detail):
        async with session_factory() as first:
            stale = await first.get(PayCalculationDetail, committed_detail)
            await first.commit()

            await self.add_300(session_factory, committed_detail)

            stale.gross_salary += Decimal("200")
            with pytest.raises(StaleDataError) as exc_info:
                await first.flush()
            await first.rollback()

        error = from_database_error(exc_info.value)
        assert isinstance(error, ConcurrencyError)
        assert error.kind == ErrorKind.CONCURRENCY

    async def test_runner_retries_with_fresh_read(self, session_factory, committed_detail):
        """The losing write is retried against the committed total."""
        first = session_factory()
        stale = await first.get(PayCalculationDetail, committed_detail)
        loaded_version = stale.version
        await first.commit()
        await self.add_300(session_factory, committed_detail)

        sessions = [first]
        attempts = []

        def sessions_in_order():
            return sessions.pop(0) if sessions else session_factory()

        async def add_200(session):
            detail = await session.get(PayCalculationDetail, committed_detail)
            attempts.append(detail.version)
            aggregate = PayCalculationAggregate(session)
            return await aggregate.accumulate_gross(detail, Decimal("200"), "2025-01", "local")

        runner = TransactionRunner(sessions_in_order, attempts=3, base_delay=0)

        result = await runner.run(add_200, name="accumulate")

        assert result.is_success
        assert attempts == [loaded_version, loaded_version + 1]
        async with session_factory() as check:
            detail = await check.get(PayCalculationDetail, committed_detail)
            assert detail.gross_salary == Decimal("1500.00")
            assert detail.net_salary == Decimal("1500.00")
