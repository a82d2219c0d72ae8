"""Worker directory, work order, assignment and history models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agri_payroll.models.base import Base, TimestampMixin


class Worker(Base, TimestampMixin):
    """Worker directory entry (read-only to the payroll core)."""

    __tablename__ = "workers"

    worker_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    nationality: Mapped[str | None] = mapped_column(String, nullable=True)
    position: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "nationality IS NULL OR nationality IN ('local', 'foreigner', 'foreigner_no_passport')",
            name="workers_nationality_check",
        ),
    )


class WorkOrder(Base, TimestampMixin):
    """A unit of field work whose completion pays the assigned workers."""

    __tablename__ = "work_orders"

    work_order_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    rate_type: Mapped[str] = mapped_column(String, nullable=False, default="normal")
    work_order_status: Mapped[str] = mapped_column(String, nullable=False, default="ongoing")
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    completion_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    discarded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "rate_type IN ('normal', 'work_days', 'resources')",
            name="work_orders_rate_type_check",
        ),
        CheckConstraint(
            "work_order_status IN ('ongoing', 'pending', 'amendment_required', 'completed', 'rejected')",
            name="work_orders_status_check",
        ),
        Index("ix_work_orders_status_completion", "work_order_status", "completion_date"),
    )

    # Relationships
    assignments: Mapped[list[WorkOrderWorker]] = relationship(
        back_populates="work_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def is_discarded(self) -> bool:
        return self.discarded_at is not None


class WorkOrderWorker(Base, TimestampMixin):
    """Assignment of a worker to a work order with rate and quantity."""

    __tablename__ = "work_order_workers"

    work_order_worker_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    work_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("work_orders.work_order_id", ondelete="CASCADE"),
        nullable=False,
    )
    worker_id: Mapped[UUID] = mapped_column(
        ForeignKey("workers.worker_id"),
        nullable=False,
    )
    rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    work_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    work_area_size: Mapped[Decimal | None] = mapped_column(Numeric(10, 3), nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("rate IS NULL OR rate >= 0", name="wow_rate_check"),
        CheckConstraint(
            "work_area_size IS NULL OR work_area_size > 0",
            name="wow_work_area_size_check",
        ),
        Index("ix_work_order_workers_worker", "worker_id"),
    )

    # Relationships
    work_order: Mapped[WorkOrder] = relationship(back_populates="assignments")


class WorkOrderHistory(Base):
    """Audit trail of work order lifecycle transitions."""

    __tablename__ = "work_order_histories"

    work_order_history_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    work_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("work_orders.work_order_id", ondelete="CASCADE"),
        nullable=False,
    )
    event_name: Mapped[str] = mapped_column(String, nullable=False)
    from_state: Mapped[str | None] = mapped_column(String, nullable=True)
    to_state: Mapped[str | None] = mapped_column(String, nullable=True)
    actor_name: Mapped[str | None] = mapped_column(String, nullable=True)
    request_id: Mapped[str | None] = mapped_column(String, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_work_order_histories_work_order", "work_order_id", "occurred_at"),
    )
