"""Approval delegation — who may approve a request, and who should.

A manager counts as unavailable on a day when they hold an approved or
auto-approved leave covering it. Requests from their reports then fall to
alternates: the manager's own manager, then the other managers of the same
department, and only when neither exists, the top-level (manager-less)
employees who act as HR representatives.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.constants import ErrorKind, LeaveStatus
from backend.common.result import Err, Ok, Result
from backend.core_hr.directory import OrganizationDirectory
from backend.core_hr.models import Employee
from backend.leave.models import LeaveRequest
from backend.leave.policy import LeavePolicy
from backend.leave.repository import LeaveRepository

logger = logging.getLogger(__name__)

STALE_REQUEST_DAYS = 30

ALTERNATE_APPROVER_WARNING = (
    "Approving as alternate approver due to primary manager unavailability"
)
HIERARCHY_APPROVER_WARNING = "Approving as higher-level manager in hierarchy"
HR_APPROVER_WARNING = "Approving as HR representative"
NOT_AUTHORIZED_ERROR = (
    "You are not authorized to approve this leave request. "
    "Only the employee's manager or authorized delegates can approve leave requests."
)


@dataclass
class ManagerAvailability:
    available: bool
    manager: Optional[Employee]
    alternates: list[Employee] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)


@dataclass
class AuthorizationResult:
    authorized: bool
    approver: Optional[Employee]
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_result(self) -> Result[Employee]:
        if self.authorized:
            return Ok(self.approver, list(self.warnings))
        kind = ErrorKind.not_found if self.approver is None else ErrorKind.unauthorized
        return Err(kind, list(self.errors), list(self.warnings))


def _today() -> date:
    return datetime.now(timezone.utc).date()


class ApprovalDelegation:
    """Resolves approvers and checks approval authority."""

    @staticmethod
    def can_auto_approve(
        request: LeaveRequest,
        policy: Optional[LeavePolicy] = None,
    ) -> bool:
        policy = policy or LeavePolicy.from_settings()
        return policy.qualifies_for_auto_approval(request.is_emergency, request.total_days)

    @staticmethod
    def validate_request_processable(
        request: Optional[LeaveRequest],
        *,
        now: Optional[datetime] = None,
    ) -> Result[LeaveRequest]:
        """Only pending requests may be approved, rejected or regularized."""
        if request is None:
            return Err(ErrorKind.not_found, ["Leave request not found"])

        warnings: list[str] = []
        now = now or datetime.now(timezone.utc)
        created_at = request.created_at
        if created_at is not None:
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)
            if created_at < now - timedelta(days=STALE_REQUEST_DAYS):
                warnings.append(
                    f"This leave request is older than {STALE_REQUEST_DAYS} days "
                    "and may need special attention"
                )

        if request.status is not LeaveStatus.pending:
            return Err(
                ErrorKind.conflict,
                [
                    "Leave request is not in pending status. "
                    f"Current status: {request.status.display_name}"
                ],
                warnings,
            )
        return Ok(request, warnings)

    # ─────────────────────────────────────────────────────────────────
    # Availability
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def is_on_leave(
        db: AsyncSession,
        employee_id: uuid.UUID,
        on_date: date,
    ) -> bool:
        active = await LeaveRepository.find_active_on(db, on_date)
        return any(req.employee_id == employee_id for req in active)

    @staticmethod
    async def find_alternate_approvers(
        db: AsyncSession,
        manager: Employee,
        *,
        exclude_ids: Iterable[uuid.UUID] = (),
    ) -> list[Employee]:
        """Ordered, de-duplicated stand-ins for ``manager``.

        ``exclude_ids`` (typically the requester) never appear in the result.
        """
        alternates: list[Employee] = []
        seen: set[uuid.UUID] = {manager.id, *exclude_ids}

        if manager.reporting_manager_id is not None:
            upper = await OrganizationDirectory.find_by_id(db, manager.reporting_manager_id)
            if upper is not None and upper.id not in seen:
                alternates.append(upper)
                seen.add(upper.id)

        for peer in await OrganizationDirectory.find_department_managers(db, manager.department):
            if peer.id not in seen:
                alternates.append(peer)
                seen.add(peer.id)

        if not alternates:
            alternates.extend(
                emp
                for emp in await OrganizationDirectory.find_employees_with_no_manager(db)
                if emp.id not in seen
            )
        return alternates

    @staticmethod
    async def check_manager_availability(
        db: AsyncSession,
        manager_id: uuid.UUID,
        on_date: Optional[date] = None,
        *,
        requester_id: Optional[uuid.UUID] = None,
    ) -> ManagerAvailability:
        on_date = on_date or _today()
        manager = await OrganizationDirectory.find_by_id(db, manager_id)
        if manager is None:
            return ManagerAvailability(
                available=False,
                manager=None,
                issues=[f"Manager not found with ID: {manager_id}"],
            )

        if await ApprovalDelegation.is_on_leave(db, manager.id, on_date):
            alternates = await ApprovalDelegation.find_alternate_approvers(
                db,
                manager,
                exclude_ids=(requester_id,) if requester_id is not None else (),
            )
            return ManagerAvailability(
                available=False,
                manager=manager,
                alternates=alternates,
                issues=["Primary manager is on leave during approval period"],
            )

        return ManagerAvailability(available=True, manager=manager)

    # ─────────────────────────────────────────────────────────────────
    # Resolution
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def find_approver(
        db: AsyncSession,
        request: LeaveRequest,
        *,
        today: Optional[date] = None,
    ) -> Optional[Employee]:
        """Direct manager if available, else first alternate, else first HR employee."""
        requester = await db.get(Employee, request.employee_id)
        if requester is not None and requester.reporting_manager_id is not None:
            availability = await ApprovalDelegation.check_manager_availability(
                db, requester.reporting_manager_id, today, requester_id=request.employee_id,
            )
            if availability.available:
                return availability.manager
            if availability.alternates:
                return availability.alternates[0]

        hr_reps = await OrganizationDirectory.find_employees_with_no_manager(db)
        hr_reps = [emp for emp in hr_reps if emp.id != request.employee_id]
        return hr_reps[0] if hr_reps else None

    @staticmethod
    async def validate_authorization(
        db: AsyncSession,
        approver_id: uuid.UUID,
        request: LeaveRequest,
        *,
        today: Optional[date] = None,
        policy: Optional[LeavePolicy] = None,
    ) -> AuthorizationResult:
        """First matching rule decides whether ``approver_id`` may act."""
        policy = policy or LeavePolicy.from_settings()

        approver = await OrganizationDirectory.find_by_id(db, approver_id)
        if approver is None:
            return AuthorizationResult(
                authorized=False,
                approver=None,
                errors=[f"Approver not found with ID: {approver_id}"],
            )

        if approver.id == request.employee_id:
            return AuthorizationResult(
                authorized=False,
                approver=approver,
                errors=["Employees cannot approve their own leave requests"],
            )

        requester = await db.get(Employee, request.employee_id)
        manager_id = requester.reporting_manager_id if requester is not None else None

        if manager_id is not None and manager_id == approver.id:
            return AuthorizationResult(authorized=True, approver=approver)

        if manager_id is not None:
            availability = await ApprovalDelegation.check_manager_availability(
                db, manager_id, today, requester_id=request.employee_id,
            )
            if not availability.available and any(
                alt.id == approver.id for alt in availability.alternates
            ):
                return AuthorizationResult(
                    authorized=True,
                    approver=approver,
                    warnings=[ALTERNATE_APPROVER_WARNING],
                )

        chain = await OrganizationDirectory.find_manager_chain(
            db, request.employee_id, max_depth=policy.manager_chain_max_depth,
        )
        if any(link.id == approver.id for link in chain):
            return AuthorizationResult(
                authorized=True,
                approver=approver,
                warnings=[HIERARCHY_APPROVER_WARNING],
            )

        if approver.reporting_manager_id is None:
            return AuthorizationResult(
                authorized=True,
                approver=approver,
                warnings=[HR_APPROVER_WARNING],
            )

        logger.warning(
            "Employee %s denied approval rights on leave request %s",
            approver.employee_code, request.id,
        )
        return AuthorizationResult(
            authorized=False,
            approver=approver,
            errors=[NOT_AUTHORIZED_ERROR],
        )

    # ─────────────────────────────────────────────────────────────────
    # Manager queues
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_pending_requests_for_manager(
        db: AsyncSession,
        manager_id: uuid.UUID,
        *,
        today: Optional[date] = None,
    ) -> list[LeaveRequest]:
        """Pending requests of direct reports, then those routed here as alternate."""
        report_ids = await OrganizationDirectory.get_direct_reports(db, manager_id)
        requests = await LeaveRepository.find_pending(db, employee_ids=report_ids)
        seen = {req.id for req in requests}

        # Alternates depend on the requester, who is never their own stand-in.
        availability_cache: dict[tuple[uuid.UUID, uuid.UUID], ManagerAvailability] = {}
        for req in await LeaveRepository.find_pending(db):
            if req.id in seen or req.employee.reporting_manager_id is None:
                continue
            primary_id = req.employee.reporting_manager_id
            if primary_id == manager_id:
                continue
            key = (primary_id, req.employee_id)
            if key not in availability_cache:
                availability_cache[key] = await ApprovalDelegation.check_manager_availability(
                    db, primary_id, today, requester_id=req.employee_id,
                )
            availability = availability_cache[key]
            if not availability.available and any(
                alt.id == manager_id for alt in availability.alternates
            ):
                requests.append(req)
                seen.add(req.id)
        return requests

    @staticmethod
    async def get_pending_approval_count(
        db: AsyncSession,
        manager_id: uuid.UUID,
    ) -> int:
        """Pending requests from direct reports only."""
        report_ids = await OrganizationDirectory.get_direct_reports(db, manager_id)
        return len(await LeaveRepository.find_pending(db, employee_ids=report_ids))
