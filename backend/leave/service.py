"""Leave workflow service — apply, approve, reject, cancel, regularize.

Business logic:
  - Apply runs the validation engine, stores a pending request and
    auto-approves short emergencies (balance deducted immediately)
  - Approve / reject require a pending request and an authorized approver
  - Cancel is owner-only and pending-only; it never touches the balance
  - Every transition is flushed together with its audit entry
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.audit import create_audit_entry, get_audit_trail
from backend.common.constants import LeaveStatus
from backend.common.exceptions import (
    ConflictError,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)
from backend.common.pagination import PaginatedResponse, PaginationParams, paginate
from backend.common.result import unwrap
from backend.core_hr.directory import OrganizationDirectory
from backend.core_hr.models import Employee
from backend.leave.delegation import ApprovalDelegation
from backend.leave.models import LeaveRequest
from backend.leave.policy import LeavePolicy
from backend.leave.repository import LeaveRepository
from backend.leave.schemas import (
    AuditEntryOut,
    LeaveActionResult,
    LeaveApplicationCreate,
    LeaveRequestOut,
    PendingApprovalsOut,
)
from backend.leave.validation import LeaveValidator

logger = logging.getLogger(__name__)

REGULARIZATION_PREFIX = "Backdated Leave Regularization: "


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave workflow: the only place request status changes."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _load_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        leave_req = await LeaveRepository.get_request(db, request_id)
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_req

    @staticmethod
    async def _deduct_if_tracked(db: AsyncSession, leave_req: LeaveRequest) -> bool:
        """Charge the (employee, type, start year) ledger row when one exists."""
        balance = await LeaveRepository.find_balance(
            db, leave_req.employee_id, leave_req.leave_type, leave_req.year,
        )
        if balance is None:
            logger.info(
                "No %s balance for employee %s in %d; nothing deducted",
                leave_req.leave_type.value, leave_req.employee_id, leave_req.year,
            )
            return False
        balance.deduct(leave_req.total_days)
        balance.updated_at = datetime.now(timezone.utc)
        return True

    @staticmethod
    async def _build_result(
        db: AsyncSession,
        leave_req: LeaveRequest,
        warnings: list[str],
    ) -> LeaveActionResult:
        await db.refresh(leave_req)
        return LeaveActionResult(
            request=LeaveRequestOut.model_validate(leave_req),
            warnings=warnings,
        )

    # ─────────────────────────────────────────────────────────────────
    # Apply Leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def apply_leave(
        db: AsyncSession,
        data: LeaveApplicationCreate,
        *,
        policy: Optional[LeavePolicy] = None,
        today: Optional[date] = None,
    ) -> LeaveActionResult:
        """Validate and store a request; short emergencies are auto-approved."""
        policy = policy or LeavePolicy.from_settings()
        today = today or datetime.now(timezone.utc).date()

        validation = unwrap(
            await LeaveValidator.validate(
                db,
                data.employee_id,
                data.leave_type,
                data.start_date,
                data.end_date,
                data.duration,
                data.is_emergency,
                policy=policy,
                today=today,
            )
        )
        total_days = validation.value

        leave_req = LeaveRequest(
            employee_id=data.employee_id,
            leave_type=data.leave_type,
            start_date=data.start_date,
            end_date=data.end_date,
            duration=data.duration,
            total_days=total_days,
            reason=data.reason,
            comments=data.comments,
            status=LeaveStatus.pending,
            is_emergency=data.is_emergency,
            is_backdated=data.start_date < today,
        )
        if leave_req.is_backdated and data.backdated_justification:
            leave_req.add_comment(f"Backdated Justification: {data.backdated_justification}")
        await LeaveRepository.save(db, leave_req)

        await create_audit_entry(
            db,
            action="apply",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=data.employee_id,
            new_values={
                "status": LeaveStatus.pending.value,
                "leave_type": data.leave_type.value,
                "start_date": data.start_date.isoformat(),
                "end_date": data.end_date.isoformat(),
                "total_days": total_days,
            },
        )
        logger.info(
            "Leave request %s applied by employee %s (%s, %.1f day(s))",
            leave_req.id, data.employee_id, data.leave_type.value, total_days,
        )

        if ApprovalDelegation.can_auto_approve(leave_req, policy):
            approver = await ApprovalDelegation.find_approver(db, leave_req, today=today)
            leave_req.status = LeaveStatus.auto_approved
            leave_req.approved_by = approver.id if approver is not None else None
            leave_req.approved_at = datetime.now(timezone.utc)
            leave_req.updated_at = leave_req.approved_at
            await LeaveService._deduct_if_tracked(db, leave_req)
            await LeaveRepository.save(db, leave_req)

            await create_audit_entry(
                db,
                action="auto_approve",
                entity_type="leave_request",
                entity_id=leave_req.id,
                actor_id=leave_req.approved_by,
                old_values={"status": LeaveStatus.pending.value},
                new_values={"status": LeaveStatus.auto_approved.value},
            )
            logger.info("Leave request %s auto-approved (emergency)", leave_req.id)

        return await LeaveService._build_result(db, leave_req, list(validation.warnings))

    # ─────────────────────────────────────────────────────────────────
    # Approve Leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        comments: Optional[str] = None,
        *,
        policy: Optional[LeavePolicy] = None,
        today: Optional[date] = None,
    ) -> LeaveActionResult:
        """Approve a pending request and deduct its days from the ledger."""
        leave_req = await LeaveService._load_request(db, request_id)
        processable = unwrap(ApprovalDelegation.validate_request_processable(leave_req))

        authorization = await ApprovalDelegation.validate_authorization(
            db, approver_id, leave_req, today=today, policy=policy,
        )
        approver = unwrap(authorization.to_result()).value

        now = datetime.now(timezone.utc)
        leave_req.status = LeaveStatus.approved
        leave_req.approved_by = approver.id
        leave_req.approved_at = now
        leave_req.updated_at = now
        if comments and comments.strip():
            leave_req.add_comment(f"Approval Comments: {comments.strip()}")

        await LeaveService._deduct_if_tracked(db, leave_req)
        await LeaveRepository.save(db, leave_req)

        await create_audit_entry(
            db,
            action="approve",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=approver.id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.approved.value, "comments": comments},
        )
        logger.info(
            "Leave request %s approved by %s", leave_req.id, approver.employee_code,
        )

        warnings = list(processable.warnings) + list(authorization.warnings)
        return await LeaveService._build_result(db, leave_req, warnings)

    # ─────────────────────────────────────────────────────────────────
    # Reject Leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def reject_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        reason: str,
        comments: Optional[str] = None,
        *,
        policy: Optional[LeavePolicy] = None,
        today: Optional[date] = None,
    ) -> LeaveActionResult:
        """Reject a pending request. The balance is left untouched."""
        leave_req = await LeaveService._load_request(db, request_id)
        processable = unwrap(ApprovalDelegation.validate_request_processable(leave_req))

        if not reason or not reason.strip():
            raise ValidationException(["Rejection reason is required"])

        authorization = await ApprovalDelegation.validate_authorization(
            db, approver_id, leave_req, today=today, policy=policy,
        )
        approver = unwrap(authorization.to_result()).value

        now = datetime.now(timezone.utc)
        leave_req.status = LeaveStatus.rejected
        leave_req.rejection_reason = reason.strip()
        leave_req.approved_by = approver.id
        leave_req.approved_at = now
        leave_req.updated_at = now
        if comments and comments.strip():
            leave_req.add_comment(f"Rejection Comments: {comments.strip()}")
        await LeaveRepository.save(db, leave_req)

        await create_audit_entry(
            db,
            action="reject",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=approver.id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.rejected.value, "reason": reason.strip()},
        )
        logger.info(
            "Leave request %s rejected by %s", leave_req.id, approver.employee_code,
        )

        warnings = list(processable.warnings) + list(authorization.warnings)
        return await LeaveService._build_result(db, leave_req, warnings)

    # ─────────────────────────────────────────────────────────────────
    # Cancel Leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> LeaveActionResult:
        """Withdraw one's own pending request."""
        leave_req = await LeaveService._load_request(db, request_id)

        if leave_req.employee_id != employee_id:
            logger.warning(
                "Employee %s attempted to cancel leave request %s owned by %s",
                employee_id, request_id, leave_req.employee_id,
            )
            raise UnauthorizedException("You can only cancel your own leave requests")

        if leave_req.status is not LeaveStatus.pending:
            raise ConflictError(
                f"Cannot cancel leave request in status: {leave_req.status.display_name}"
            )

        leave_req.status = LeaveStatus.cancelled
        leave_req.updated_at = datetime.now(timezone.utc)
        await LeaveRepository.save(db, leave_req)

        await create_audit_entry(
            db,
            action="cancel",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=employee_id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.cancelled.value},
        )
        logger.info("Leave request %s cancelled by its owner", leave_req.id)

        return await LeaveService._build_result(db, leave_req, [])

    # ─────────────────────────────────────────────────────────────────
    # Regularize backdated leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def regularize_backdated(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        comments: Optional[str] = None,
        *,
        policy: Optional[LeavePolicy] = None,
        today: Optional[date] = None,
    ) -> LeaveActionResult:
        """Approve a request with an HR regularization note."""
        note = REGULARIZATION_PREFIX + (comments if comments else "Approved by HR")
        return await LeaveService.approve_leave(
            db, request_id, approver_id, note, policy=policy, today=today,
        )

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequestOut:
        leave_req = await LeaveService._load_request(db, request_id)
        return LeaveRequestOut.model_validate(leave_req)

    @staticmethod
    async def get_audit_trail(
        db: AsyncSession,
        request_id: uuid.UUID,
    ) -> list[AuditEntryOut]:
        """Recorded transitions of one request, oldest first."""
        await LeaveService._load_request(db, request_id)
        entries = await get_audit_trail(db, "leave_request", request_id)
        return [AuditEntryOut.model_validate(e) for e in entries]

    @staticmethod
    async def get_employee_history(
        db: AsyncSession,
        employee_id: uuid.UUID,
        params: PaginationParams,
    ) -> PaginatedResponse:
        """All of an employee's requests, most recent start date first."""
        if await db.get(Employee, employee_id) is None:
            raise NotFoundException("Employee", str(employee_id))
        return await paginate(
            db,
            LeaveRepository.history_query(employee_id),
            params,
            item_schema=LeaveRequestOut,
        )

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        params: PaginationParams,
        status: Optional[LeaveStatus] = None,
    ) -> PaginatedResponse:
        """Every request (or those in ``status``), newest first."""
        return await paginate(
            db,
            LeaveRepository.status_query(status),
            params,
            item_schema=LeaveRequestOut,
        )

    @staticmethod
    async def get_requests_in_range(
        db: AsyncSession,
        start_date: date,
        end_date: date,
        department: Optional[str] = None,
    ) -> list[LeaveRequestOut]:
        """Requests of any status touching ``[start_date, end_date]``."""
        if end_date < start_date:
            raise ValidationException(["End date must be on or after start date"])
        requests = await LeaveRepository.find_in_range(db, start_date, end_date, department)
        return [LeaveRequestOut.model_validate(r) for r in requests]

    @staticmethod
    async def get_emergency_requests(db: AsyncSession) -> list[LeaveRequestOut]:
        requests = await LeaveRepository.find_flagged(db, emergency=True)
        return [LeaveRequestOut.model_validate(r) for r in requests]

    @staticmethod
    async def get_backdated_requests(db: AsyncSession) -> list[LeaveRequestOut]:
        requests = await LeaveRepository.find_flagged(db, backdated=True)
        return [LeaveRequestOut.model_validate(r) for r in requests]

    @staticmethod
    async def get_upcoming_requests(
        db: AsyncSession,
        days: int = 7,
        *,
        today: Optional[date] = None,
    ) -> list[LeaveRequestOut]:
        """Approved leave starting between today and ``days`` from now."""
        today = today or datetime.now(timezone.utc).date()
        requests = await LeaveRepository.find_upcoming(
            db, today, today + timedelta(days=days),
        )
        return [LeaveRequestOut.model_validate(r) for r in requests]

    @staticmethod
    async def get_active_requests(
        db: AsyncSession,
        *,
        today: Optional[date] = None,
    ) -> list[LeaveRequestOut]:
        """Approved leave covering today: who is out right now."""
        today = today or datetime.now(timezone.utc).date()
        requests = await LeaveRepository.find_active_on(db, today)
        return [LeaveRequestOut.model_validate(r) for r in requests]

    @staticmethod
    async def get_pending_for_manager(
        db: AsyncSession,
        manager_id: uuid.UUID,
        *,
        today: Optional[date] = None,
    ) -> PendingApprovalsOut:
        if await OrganizationDirectory.find_by_id(db, manager_id) is None:
            raise NotFoundException("Manager", str(manager_id))
        requests = await ApprovalDelegation.get_pending_requests_for_manager(
            db, manager_id, today=today,
        )
        return PendingApprovalsOut(
            manager_id=manager_id,
            count=len(requests),
            requests=[LeaveRequestOut.model_validate(r) for r in requests],
        )
