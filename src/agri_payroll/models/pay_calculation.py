"""Monthly payroll aggregate: pay calculation totals and per-worker details."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agri_payroll.models.base import Base, JSONDocument, TimestampMixin

if TYPE_CHECKING:
    from agri_payroll.calculators.types import DeductionResult
    from agri_payroll.models.work_order import Worker

ZERO = Decimal("0")


class PayCalculation(Base, TimestampMixin):
    """Totals for one calendar month, derived from its details."""

    __tablename__ = "pay_calculations"

    pay_calculation_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    total_gross_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    total_employee_deductions: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    total_employer_deductions: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    total_net_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)

    __table_args__ = (
        UniqueConstraint("month", name="pay_calculations_month_unique"),
    )

    # Relationships
    details: Mapped[list[PayCalculationDetail]] = relationship(
        back_populates="pay_calculation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class PayCalculationDetail(Base, TimestampMixin):
    """One worker's accumulated pay for one month.

    ``net_salary = gross_salary - employee_deductions`` after every mutation;
    the breakdown is a frozen snapshot of the rules in force for the month.
    """

    __tablename__ = "pay_calculation_details"

    pay_calculation_detail_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    pay_calculation_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_calculations.pay_calculation_id", ondelete="CASCADE"),
        nullable=False,
    )
    worker_id: Mapped[UUID] = mapped_column(
        ForeignKey("workers.worker_id"),
        nullable=False,
    )
    gross_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    employee_deductions: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    employer_deductions: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    net_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    deduction_breakdown: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)
    currency: Mapped[str] = mapped_column(String, nullable=False, default="RM")
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "pay_calculation_id",
            "worker_id",
            name="pay_calculation_details_month_worker_unique",
        ),
        CheckConstraint("gross_salary >= 0", name="pcd_gross_non_negative"),
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    pay_calculation: Mapped[PayCalculation] = relationship(back_populates="details")
    worker: Mapped[Worker] = relationship()

    def apply_deductions(self, result: DeductionResult) -> None:
        """Store a deduction result and recompute net salary."""
        self.employee_deductions = result.employee_total
        self.employer_deductions = result.employer_total
        self.deduction_breakdown = result.breakdown_document()
        self.net_salary = self.gross_salary - self.employee_deductions
