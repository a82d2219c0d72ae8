"""Versioned statutory deduction rules and wage bracket tables."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agri_payroll.models.base import Base, TimestampMixin


class DeductionRule(Base, TimestampMixin):
    """One version of a deduction definition, authoritative over [effective_from, effective_until).

    Rate changes close the open row and insert a new one; rows are never
    edited in place once payroll has been computed against them.
    """

    __tablename__ = "deduction_rules"

    deduction_rule_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    calculation_kind: Mapped[str] = mapped_column(String, nullable=False, default="percentage")
    applies_to_nationality: Mapped[str] = mapped_column(String, nullable=False, default="all")
    # Percent for 'percentage', currency amount for 'fixed', unused for 'wage_range'
    employee_contribution: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    employer_contribution: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    rounding_precision: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    rounding_method: Mapped[str] = mapped_column(String, nullable=False, default="round")
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_until: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "calculation_kind IN ('percentage', 'fixed', 'wage_range')",
            name="deduction_rules_kind_check",
        ),
        CheckConstraint(
            "applies_to_nationality IN ('all', 'local', 'foreigner', 'foreigner_no_passport')",
            name="deduction_rules_nationality_check",
        ),
        CheckConstraint(
            "rounding_method IN ('round', 'ceil', 'floor')",
            name="deduction_rules_rounding_method_check",
        ),
        CheckConstraint(
            "effective_until IS NULL OR effective_until > effective_from",
            name="deduction_rules_window_check",
        ),
        Index("ix_deduction_rules_code_window", "code", "effective_from", "effective_until"),
    )

    # Relationships
    brackets: Mapped[list[WageBracket]] = relationship(
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="WageBracket.min_wage",
        lazy="selectin",
    )

    def covers(self, as_of: date) -> bool:
        """Check whether the effective window contains a date."""
        if self.effective_from > as_of:
            return False
        return self.effective_until is None or self.effective_until > as_of


class WageBracket(Base, TimestampMixin):
    """Salary range row of a wage-range deduction rule version."""

    __tablename__ = "wage_brackets"

    wage_bracket_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    deduction_rule_id: Mapped[UUID] = mapped_column(
        ForeignKey("deduction_rules.deduction_rule_id", ondelete="CASCADE"),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String, nullable=False)
    min_wage: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    max_wage: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    calculation_method: Mapped[str] = mapped_column(String, nullable=False, default="fixed")
    employee_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    employer_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    employee_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    employer_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))

    __table_args__ = (
        CheckConstraint(
            "calculation_method IN ('fixed', 'percentage')",
            name="wage_brackets_method_check",
        ),
        CheckConstraint(
            "max_wage IS NULL OR max_wage >= min_wage",
            name="wage_brackets_range_check",
        ),
        CheckConstraint("min_wage >= 0", name="wage_brackets_min_check"),
        Index("ix_wage_brackets_lookup", "deduction_rule_id", "min_wage", "max_wage"),
    )

    # Relationships
    rule: Mapped[DeductionRule] = relationship(back_populates="brackets")

    def contains(self, amount: Decimal) -> bool:
        """Inclusive on both ends; open-ended when max_wage is null."""
        if amount < self.min_wage:
            return False
        return self.max_wage is None or amount <= self.max_wage

    def display_range(self, currency: str = "RM") -> str:
        low = f"{currency} {self.min_wage:,.2f}"
        high = f"{currency} {self.max_wage:,.2f}" if self.max_wage is not None else "and above"
        return f"{low} - {high}"
