"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out / *Result      → response bodies (read)
  - *Brief              → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from backend.common.constants import LeaveDuration, LeaveStatus, LeaveType


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class EmployeeBrief(BaseModel):
    """Minimal employee info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    full_name: str
    department: str
    reporting_manager_id: Optional[uuid.UUID] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """One ledger row for (employee, leave type, year)."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    year: int
    total_days: float
    used_days: float
    available_days: float
    utilization_percentage: float


class BalanceTotals(BaseModel):
    total_allocated: float
    total_used: float
    total_available: float
    utilization_percentage: float
    low_balance_count: int


class BalanceSummaryOut(BaseModel):
    """Per-type balances for one year plus totals and low-balance warnings."""

    employee: EmployeeBrief
    year: int
    balances: list[LeaveBalanceOut]
    low_balances: list[LeaveBalanceOut]
    totals: BalanceTotals
    warnings: list[str] = []


class DepartmentBalancesOut(BaseModel):
    department: str
    year: int
    average_utilization_percentage: float
    balances: list[LeaveBalanceOut]


class BalanceStatisticsOut(BaseModel):
    """Organisation-wide ledger figures for one year.

    The counts are of ledger rows, so one employee low on two leave types
    counts twice.
    """

    year: int
    total_employees: int
    low_balance_count: int
    zero_balance_count: int
    high_utilization_count: int
    average_utilization_by_type: dict[LeaveType, float]


class YearEndRenewalOut(BaseModel):
    current_year: int
    new_year: int
    processed: int


class LeaveTypeAllocation(BaseModel):
    leave_type: LeaveType
    total_days: float = Field(..., ge=0)
    used_days: float = Field(0.0, ge=0)

    @model_validator(mode="after")
    def _used_within_total(self) -> "LeaveTypeAllocation":
        if self.used_days > self.total_days:
            raise ValueError("used_days cannot exceed total_days")
        return self


class InitializeBalanceRequest(BaseModel):
    """Body for ``POST /balances/{employee_id}/initialize``.

    Without ``allocations`` the policy defaults are used.
    """

    year: int = Field(..., ge=2000, le=2100)
    allocations: Optional[list[LeaveTypeAllocation]] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Request
# ═════════════════════════════════════════════════════════════════════


class LeaveApplicationCreate(BaseModel):
    """Body for applying or pre-validating a leave request."""

    employee_id: uuid.UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    duration: LeaveDuration = LeaveDuration.full_day
    reason: Optional[str] = Field(None, max_length=500)
    comments: Optional[str] = Field(None, max_length=1000)
    backdated_justification: Optional[str] = Field(None, max_length=1000)
    is_emergency: bool = False


class LeaveRequestOut(BaseModel):
    """Full leave request representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    duration: LeaveDuration
    total_days: float
    reason: Optional[str] = None
    comments: Optional[str] = None
    status: LeaveStatus
    is_emergency: bool
    is_backdated: bool
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None


class LeaveActionResult(BaseModel):
    """A workflow outcome: the request as it now stands, plus warnings."""

    request: LeaveRequestOut
    warnings: list[str] = []


class ValidationOut(BaseModel):
    """Dry-run validation report."""

    valid: bool
    total_days: Optional[float] = None
    errors: list[str] = []
    warnings: list[str] = []


# ═════════════════════════════════════════════════════════════════════
# Approval Actions
# ═════════════════════════════════════════════════════════════════════


class ApproveRequest(BaseModel):
    approver_id: uuid.UUID
    comments: Optional[str] = Field(None, max_length=1000)


class RejectRequest(BaseModel):
    approver_id: uuid.UUID
    reason: str = Field(..., min_length=1, max_length=500)
    comments: Optional[str] = Field(None, max_length=1000)

    @field_validator("reason")
    @classmethod
    def _reason_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Rejection reason is required")
        return v.strip()


class CancelRequest(BaseModel):
    employee_id: uuid.UUID


# ═════════════════════════════════════════════════════════════════════
# Manager views
# ═════════════════════════════════════════════════════════════════════


class AvailabilityOut(BaseModel):
    available: bool
    manager: Optional[EmployeeBrief] = None
    alternates: list[EmployeeBrief] = []
    issues: list[str] = []


class PendingApprovalsOut(BaseModel):
    manager_id: uuid.UUID
    count: int
    requests: list[LeaveRequestOut]


class PendingCountOut(BaseModel):
    """Pending requests of direct reports; delegated requests are not counted."""

    manager_id: uuid.UUID
    count: int


# ═════════════════════════════════════════════════════════════════════
# Audit
# ═════════════════════════════════════════════════════════════════════


class AuditEntryOut(BaseModel):
    """One recorded transition of a leave request."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    action: str
    actor_id: Optional[uuid.UUID] = None
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
