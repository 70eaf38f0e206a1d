"""Leave router — apply, validate, approve/reject/cancel, manager queues, balances.

Actor ids (applicant, approver) travel in the request body; identity is
resolved by the caller's gateway, not here.
"""


import uuid
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.constants import LeaveStatus
from backend.common.exceptions import ValidationException
from backend.common.pagination import PaginatedResponse, PaginationParams
from backend.common.rate_limit import limiter
from backend.common.result import Err
from backend.config import settings
from backend.database import get_db
from backend.leave.balance import LeaveBalanceService
from backend.leave.delegation import ApprovalDelegation
from backend.leave.schemas import (
    ApproveRequest,
    AuditEntryOut,
    AvailabilityOut,
    BalanceStatisticsOut,
    BalanceSummaryOut,
    CancelRequest,
    DepartmentBalancesOut,
    EmployeeBrief,
    InitializeBalanceRequest,
    LeaveActionResult,
    LeaveApplicationCreate,
    LeaveBalanceOut,
    LeaveRequestOut,
    PendingApprovalsOut,
    PendingCountOut,
    RejectRequest,
    ValidationOut,
    YearEndRenewalOut,
)
from backend.leave.service import LeaveService
from backend.leave.validation import LeaveValidator

router = APIRouter(prefix="", tags=["leave"])


def _current_year() -> int:
    return datetime.now(timezone.utc).year


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=LeaveActionResult, status_code=201)
@limiter.limit(settings.RATE_LIMIT_APPLY)
async def apply_leave(
    request: Request,
    body: LeaveApplicationCreate,
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. Short emergency requests come back auto-approved."""
    return await LeaveService.apply_leave(db, body)


# ── POST /validate ──────────────────────────────────────────────────

@router.post("/validate", response_model=ValidationOut)
async def validate_leave(
    body: LeaveApplicationCreate,
    db: AsyncSession = Depends(get_db),
):
    """Dry run of the validation engine; nothing is stored."""
    result = await LeaveValidator.validate(
        db,
        body.employee_id,
        body.leave_type,
        body.start_date,
        body.end_date,
        body.duration,
        body.is_emergency,
    )
    if isinstance(result, Err):
        return ValidationOut(valid=False, errors=result.errors, warnings=result.warnings)
    return ValidationOut(valid=True, total_days=result.value, warnings=result.warnings)


# ── Manager views ───────────────────────────────────────────────────

@router.get("/managers/{manager_id}/pending", response_model=PendingApprovalsOut)
async def pending_for_manager(
    manager_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """Pending requests of direct reports plus those delegated as alternate."""
    return await LeaveService.get_pending_for_manager(db, manager_id)


@router.get("/managers/{manager_id}/pending/count", response_model=PendingCountOut)
async def pending_count_for_manager(
    manager_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """Pending requests of direct reports only."""
    count = await ApprovalDelegation.get_pending_approval_count(db, manager_id)
    return PendingCountOut(manager_id=manager_id, count=count)


@router.get("/managers/{manager_id}/availability", response_model=AvailabilityOut)
async def manager_availability(
    manager_id: uuid.UUID,
    on_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Whether a manager can approve on ``on_date`` (today by default), with alternates."""
    availability = await ApprovalDelegation.check_manager_availability(db, manager_id, on_date)
    return AvailabilityOut(
        available=availability.available,
        manager=(
            EmployeeBrief.model_validate(availability.manager)
            if availability.manager is not None
            else None
        ),
        alternates=[EmployeeBrief.model_validate(e) for e in availability.alternates],
        issues=availability.issues,
    )


# ── GET /employees/{id}/history ─────────────────────────────────────

@router.get(
    "/employees/{employee_id}/history",
    response_model=PaginatedResponse[LeaveRequestOut],
)
async def employee_history(
    employee_id: uuid.UUID,
    params: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    """Paginated leave history, most recent first."""
    return await LeaveService.get_employee_history(db, employee_id, params)


# ── Request reports ─────────────────────────────────────────────────

@router.get("", response_model=PaginatedResponse[LeaveRequestOut])
async def list_leave_requests(
    status: Optional[LeaveStatus] = Query(None),
    params: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    """All requests, newest first, optionally filtered by status."""
    return await LeaveService.list_requests(db, params, status)


@router.get("/overlapping", response_model=list[LeaveRequestOut])
async def overlapping_requests(
    start_date: date = Query(...),
    end_date: date = Query(...),
    department: Optional[str] = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
):
    """Requests of any status touching the date range."""
    return await LeaveService.get_requests_in_range(db, start_date, end_date, department)


@router.get("/emergency", response_model=list[LeaveRequestOut])
async def emergency_requests(db: AsyncSession = Depends(get_db)):
    return await LeaveService.get_emergency_requests(db)


@router.get("/backdated", response_model=list[LeaveRequestOut])
async def backdated_requests(db: AsyncSession = Depends(get_db)):
    return await LeaveService.get_backdated_requests(db)


@router.get("/upcoming", response_model=list[LeaveRequestOut])
async def upcoming_requests(
    days: int = Query(7, ge=0, le=365),
    db: AsyncSession = Depends(get_db),
):
    """Approved leave starting within the next ``days`` days."""
    return await LeaveService.get_upcoming_requests(db, days)


@router.get("/active", response_model=list[LeaveRequestOut])
async def active_requests(db: AsyncSession = Depends(get_db)):
    """Approved leave covering today."""
    return await LeaveService.get_active_requests(db)


# ── Balances ────────────────────────────────────────────────────────

@router.get("/balances/department/{department}", response_model=DepartmentBalancesOut)
async def department_balances(
    department: str,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncSession = Depends(get_db),
):
    """Every ledger row of the department plus its average utilization."""
    return await LeaveBalanceService.get_department_balances(
        db, department, year or _current_year(),
    )


@router.get("/balances/low-balance", response_model=list[LeaveBalanceOut])
async def low_balances(
    threshold: Optional[float] = Query(None, ge=0),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncSession = Depends(get_db),
):
    """Rows with fewer available days than ``threshold`` (policy default)."""
    return await LeaveBalanceService.find_low_balances(
        db, year or _current_year(), threshold,
    )


@router.get("/balances/high-utilization", response_model=list[LeaveBalanceOut])
async def high_utilization(
    threshold: Optional[float] = Query(None, ge=0, le=100),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveBalanceService.find_high_utilization(
        db, year or _current_year(), threshold,
    )


@router.get("/balances/without-balance", response_model=list[EmployeeBrief])
async def employees_without_balance(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncSession = Depends(get_db),
):
    """Active employees with no ledger rows for the year."""
    return await LeaveBalanceService.find_employees_without_balances(
        db, year or _current_year(),
    )


@router.get("/balances/statistics", response_model=BalanceStatisticsOut)
async def balance_statistics(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveBalanceService.get_statistics(db, year or _current_year())


@router.post("/balances/year-end-renewal", response_model=YearEndRenewalOut)
async def year_end_renewal(
    current_year: int = Query(..., ge=2000, le=2100),
    new_year: int = Query(..., ge=2000, le=2100),
    db: AsyncSession = Depends(get_db),
):
    """Create ``new_year`` rows for everyone holding ``current_year`` rows."""
    if new_year <= current_year:
        raise ValidationException(["new_year must be after current_year"])
    processed = await LeaveBalanceService.process_year_end_renewal(db, current_year, new_year)
    return YearEndRenewalOut(current_year=current_year, new_year=new_year, processed=processed)


@router.get("/balances/{employee_id}", response_model=list[LeaveBalanceOut])
async def get_balances(
    employee_id: uuid.UUID,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncSession = Depends(get_db),
):
    """Ledger rows for one employee and year (current year by default)."""
    return await LeaveBalanceService.get_balances(db, employee_id, year or _current_year())


@router.get("/balances/{employee_id}/summary", response_model=BalanceSummaryOut)
async def get_balance_summary(
    employee_id: uuid.UUID,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveBalanceService.get_summary(db, employee_id, year or _current_year())


@router.post(
    "/balances/{employee_id}/initialize",
    response_model=list[LeaveBalanceOut],
    status_code=201,
)
async def initialize_balances(
    employee_id: uuid.UUID,
    body: InitializeBalanceRequest,
    db: AsyncSession = Depends(get_db),
):
    """Create the year's ledger rows; existing rows are returned unchanged."""
    if body.allocations:
        return await LeaveBalanceService.initialize_custom_balances(
            db, employee_id, body.year, body.allocations,
        )
    return await LeaveBalanceService.initialize_balances(db, employee_id, body.year)


@router.post("/balances/{employee_id}/recalculate", response_model=list[LeaveBalanceOut])
async def recalculate_balances(
    employee_id: uuid.UUID,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncSession = Depends(get_db),
):
    """Rebuild used days from approved requests."""
    return await LeaveBalanceService.recalculate(db, employee_id, year or _current_year())


# ── GET /{id} ───────────────────────────────────────────────────────

@router.get("/{request_id}", response_model=LeaveRequestOut)
async def get_leave_request(
    request_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_request(db, request_id)


@router.get("/{request_id}/audit", response_model=list[AuditEntryOut])
async def get_leave_audit_trail(
    request_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """Every recorded transition of the request, oldest first."""
    return await LeaveService.get_audit_trail(db, request_id)


# ── PUT /{id}/approve ───────────────────────────────────────────────

@router.put("/{request_id}/approve", response_model=LeaveActionResult)
async def approve_leave(
    request_id: uuid.UUID,
    body: ApproveRequest,
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending leave request. Deducts from balance."""
    return await LeaveService.approve_leave(
        db, request_id, body.approver_id, body.comments,
    )


# ── PUT /{id}/reject ────────────────────────────────────────────────

@router.put("/{request_id}/reject", response_model=LeaveActionResult)
async def reject_leave(
    request_id: uuid.UUID,
    body: RejectRequest,
    db: AsyncSession = Depends(get_db),
):
    """Reject a pending leave request. Reason is mandatory."""
    return await LeaveService.reject_leave(
        db, request_id, body.approver_id, body.reason, body.comments,
    )


# ── PUT /{id}/cancel ────────────────────────────────────────────────

@router.put("/{request_id}/cancel", response_model=LeaveActionResult)
async def cancel_leave(
    request_id: uuid.UUID,
    body: CancelRequest,
    db: AsyncSession = Depends(get_db),
):
    """Cancel own pending leave request."""
    return await LeaveService.cancel_leave(db, request_id, body.employee_id)


# ── PUT /{id}/regularize ────────────────────────────────────────────

@router.put("/{request_id}/regularize", response_model=LeaveActionResult)
async def regularize_leave(
    request_id: uuid.UUID,
    body: ApproveRequest,
    db: AsyncSession = Depends(get_db),
):
    """Approve a backdated request on HR's behalf."""
    return await LeaveService.regularize_backdated(
        db, request_id, body.approver_id, body.comments,
    )
