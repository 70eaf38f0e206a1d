"""Leave ORM models: LeaveBalance (ledger row) and LeaveRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.common.constants import LeaveDuration, LeaveStatus, LeaveType
from backend.common.exceptions import ConflictError
from backend.database import Base


class LeaveBalance(Base):
    """Allocated / used / available days for one (employee, leave type, year).

    ``available_days`` is stored for querying but is always recomputed as
    ``total_days - used_days`` by the mutators below.
    """

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_type", "year", name="uq_leave_balance"
        ),
        sa.CheckConstraint("used_days >= 0", name="ck_leave_balance_used_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    total_days: Mapped[float] = mapped_column(sa.Float, nullable=False)
    used_days: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0)
    available_days: Mapped[float] = mapped_column(sa.Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped["backend.core_hr.models.Employee"] = relationship(
        back_populates="leave_balances"
    )

    def __init__(self, **kwargs) -> None:
        kwargs.setdefault("used_days", 0.0)
        kwargs.setdefault("available_days", kwargs["total_days"] - kwargs["used_days"])
        super().__init__(**kwargs)

    # ── Ledger operations ───────────────────────────────────────────

    def has_sufficient_balance(self, requested_days: float) -> bool:
        return self.available_days >= requested_days

    def deduct(self, days: float) -> None:
        """Consume ``days``; refuses to drive the balance below zero."""
        if not self.has_sufficient_balance(days):
            raise ConflictError(
                f"Insufficient leave balance. Available: {self.available_days:.1f}, "
                f"Requested: {days:.1f}"
            )
        self.used_days = self.used_days + days
        self.available_days = self.total_days - self.used_days

    def restore(self, days: float) -> None:
        """Give ``days`` back; any excess over ``used_days`` is absorbed."""
        self.used_days = max(0.0, self.used_days - days)
        self.available_days = self.total_days - self.used_days

    def set_used(self, used_days: float) -> None:
        self.used_days = min(max(0.0, used_days), self.total_days)
        self.available_days = self.total_days - self.used_days

    def is_running_low(self, threshold: float = 5.0) -> bool:
        return self.available_days < threshold

    @property
    def utilization_percentage(self) -> float:
        if self.total_days == 0:
            return 0.0
        return self.used_days / self.total_days * 100.0

    def __repr__(self) -> str:
        return (
            f"<LeaveBalance {self.leave_type.value} {self.year} "
            f"{self.total_days}/{self.used_days}/{self.available_days}>"
        )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_request_date_range"),
        sa.Index("ix_leave_requests_employee_dates", "employee_id", "start_date", "end_date"),
        sa.Index("ix_leave_requests_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    duration: Mapped[LeaveDuration] = mapped_column(
        sa.Enum(LeaveDuration, name="leave_duration"), nullable=False
    )
    total_days: Mapped[float] = mapped_column(sa.Float, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    comments: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.pending,
    )
    is_emergency: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    is_backdated: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped["backend.core_hr.models.Employee"] = relationship(
        back_populates="leave_requests", foreign_keys=[employee_id]
    )
    approver: Mapped[Optional["backend.core_hr.models.Employee"]] = relationship(
        foreign_keys=[approved_by]
    )

    @property
    def year(self) -> int:
        """Ledger year the request is charged against."""
        return self.start_date.year

    def add_comment(self, comment: str) -> None:
        self.comments = f"{self.comments}\n{comment}" if self.comments else comment

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.id} {self.leave_type.value} "
            f"{self.start_date}..{self.end_date} {self.status.value}>"
        )
