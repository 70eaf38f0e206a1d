"""Enums and constants for the leave engine — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    vacation = "vacation"
    sick = "sick"
    personal = "personal"
    emergency = "emergency"
    maternity = "maternity"
    paternity = "paternity"
    bereavement = "bereavement"
    compensatory = "compensatory"
    unpaid = "unpaid"

    @property
    def display_name(self) -> str:
        if self is LeaveType.compensatory:
            return "Compensatory Off"
        return f"{self.value.capitalize()} Leave"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    auto_approved = "auto_approved"
    rejected = "rejected"
    cancelled = "cancelled"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def is_approved(self) -> bool:
        return self in (LeaveStatus.approved, LeaveStatus.auto_approved)

    @property
    def is_terminal(self) -> bool:
        return self in (LeaveStatus.rejected, LeaveStatus.cancelled)


class LeaveDuration(str, enum.Enum):
    full_day = "full_day"
    half_day = "half_day"

    @property
    def value_in_days(self) -> float:
        """1.0 for a full day, 0.5 for a half day."""
        return 1.0 if self is LeaveDuration.full_day else 0.5


# Statuses that occupy calendar days for overlap checks
ACTIVE_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.pending,
    LeaveStatus.approved,
    LeaveStatus.auto_approved,
)

# Statuses that count as "on leave" for manager availability
APPROVED_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.approved,
    LeaveStatus.auto_approved,
)


# ── Errors ──────────────────────────────────────────────────────────

class ErrorKind(str, enum.Enum):
    not_found = "not-found"
    conflict = "conflict"
    unauthorized = "unauthorized"
    invalid = "invalid"


# ── Paging ──────────────────────────────────────────────────────────

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
