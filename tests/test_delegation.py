"""Approval delegation tests — availability, alternates, authorization, queues."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.constants import ErrorKind, LeaveStatus
from backend.common.result import Err, Ok
from backend.leave.delegation import (
    ALTERNATE_APPROVER_WARNING,
    HIERARCHY_APPROVER_WARNING,
    HR_APPROVER_WARNING,
    NOT_AUTHORIZED_ERROR,
    ApprovalDelegation,
)
from backend.leave.policy import LeavePolicy
from tests.conftest import seed_employee, seed_request

TODAY = date(2024, 3, 6)  # Wednesday


async def _manager_on_leave(db: AsyncSession, org) -> None:
    await seed_request(db, org["manager"], date(2024, 3, 4), date(2024, 3, 8),
                       status=LeaveStatus.approved)


async def _ops_with_absent_head(db: AsyncSession):
    """Operations: a top-level head on leave, a team lead under them, one report.

    The lead is the only other Operations manager, so they would be the
    head's first stand-in.
    """
    head = await seed_employee(db, code="OPS001", department="Operations")
    lead = await seed_employee(db, code="OPS010", department="Operations", manager_id=head.id)
    report = await seed_employee(db, code="OPS011", department="Operations", manager_id=lead.id)
    await seed_request(db, head, date(2024, 3, 4), date(2024, 3, 8),
                       status=LeaveStatus.approved)
    return head, lead, report


# ═════════════════════════════════════════════════════════════════════
# Availability & alternates
# ═════════════════════════════════════════════════════════════════════


class TestManagerAvailability:

    async def test_available_without_leave(self, db: AsyncSession, org):
        availability = await ApprovalDelegation.check_manager_availability(
            db, org["manager"].id, TODAY,
        )
        assert availability.available is True
        assert availability.manager.id == org["manager"].id
        assert availability.alternates == []
        assert availability.issues == []

    async def test_unavailable_on_approved_leave(self, db: AsyncSession, org):
        await _manager_on_leave(db, org)
        availability = await ApprovalDelegation.check_manager_availability(
            db, org["manager"].id, TODAY,
        )
        assert availability.available is False
        assert availability.issues == ["Primary manager is on leave during approval period"]
        assert [a.employee_code for a in availability.alternates] == ["SM001", "DM001"]

    async def test_pending_leave_does_not_count(self, db: AsyncSession, org):
        await seed_request(db, org["manager"], date(2024, 3, 4), date(2024, 3, 8))
        assert await ApprovalDelegation.is_on_leave(db, org["manager"].id, TODAY) is False

    async def test_auto_approved_leave_counts(self, db: AsyncSession, org):
        await seed_request(db, org["manager"], TODAY, TODAY, status=LeaveStatus.auto_approved)
        assert await ApprovalDelegation.is_on_leave(db, org["manager"].id, TODAY) is True

    async def test_leave_outside_date_is_ignored(self, db: AsyncSession, org):
        await _manager_on_leave(db, org)
        availability = await ApprovalDelegation.check_manager_availability(
            db, org["manager"].id, date(2024, 3, 11),
        )
        assert availability.available is True

    async def test_unknown_manager(self, db: AsyncSession):
        missing = uuid.uuid4()
        availability = await ApprovalDelegation.check_manager_availability(db, missing, TODAY)
        assert availability.available is False
        assert availability.manager is None
        assert availability.issues == [f"Manager not found with ID: {missing}"]

    async def test_alternates_fall_back_to_hr(self, db: AsyncSession, org):
        """A top-level manager alone in their department gets the HR pool."""
        solo = await seed_employee(db, code="OPS001", department="Operations")
        await seed_employee(db, code="OPS002", department="Operations", manager_id=solo.id)

        alternates = await ApprovalDelegation.find_alternate_approvers(db, solo)

        assert [a.employee_code for a in alternates] == ["HR001"]

    async def test_alternates_exclude_requester(self, db: AsyncSession, org):
        boss, lead, _ = await _ops_with_absent_head(db)

        without = await ApprovalDelegation.find_alternate_approvers(db, boss)
        excluded = await ApprovalDelegation.find_alternate_approvers(
            db, boss, exclude_ids=[lead.id],
        )

        assert [a.employee_code for a in without] == ["OPS010"]
        assert [a.employee_code for a in excluded] == ["HR001"]

    async def test_alternates_never_include_manager(self, db: AsyncSession, org):
        alternates = await ApprovalDelegation.find_alternate_approvers(db, org["senior"])
        ids = [a.id for a in alternates]
        assert org["senior"].id not in ids
        assert ids[0] == org["hr"].id
        assert len(ids) == len(set(ids))


# ═════════════════════════════════════════════════════════════════════
# Approver resolution
# ═════════════════════════════════════════════════════════════════════


class TestFindApprover:

    async def test_direct_manager_when_available(self, db: AsyncSession, org):
        req = await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12))
        approver = await ApprovalDelegation.find_approver(db, req, today=TODAY)
        assert approver.id == org["manager"].id

    async def test_first_alternate_when_manager_away(self, db: AsyncSession, org):
        await _manager_on_leave(db, org)
        req = await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12))
        approver = await ApprovalDelegation.find_approver(db, req, today=TODAY)
        assert approver.id == org["senior"].id

    async def test_requester_never_resolved_as_own_approver(self, db: AsyncSession, org):
        _, lead, _ = await _ops_with_absent_head(db)
        req = await seed_request(db, lead, date(2024, 3, 11), date(2024, 3, 11))

        approver = await ApprovalDelegation.find_approver(db, req, today=TODAY)

        assert approver.id != lead.id
        assert approver.id == org["hr"].id

    async def test_hr_for_top_level_employee(self, db: AsyncSession, org):
        ceo = await seed_employee(db, code="CEO001", department="Board")
        req = await seed_request(db, ceo, date(2024, 3, 11), date(2024, 3, 12))
        approver = await ApprovalDelegation.find_approver(db, req, today=TODAY)
        assert approver.id == org["hr"].id


# ═════════════════════════════════════════════════════════════════════
# Authorization
# ═════════════════════════════════════════════════════════════════════


class TestValidateAuthorization:

    async def test_direct_manager(self, db: AsyncSession, org):
        req = await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12))
        auth = await ApprovalDelegation.validate_authorization(
            db, org["manager"].id, req, today=TODAY,
        )
        assert auth.authorized is True
        assert auth.warnings == []

    async def test_alternate_while_manager_away(self, db: AsyncSession, org):
        await _manager_on_leave(db, org)
        req = await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12))
        auth = await ApprovalDelegation.validate_authorization(
            db, org["dept_lead"].id, req, today=TODAY,
        )
        assert auth.authorized is True
        assert auth.warnings == [ALTERNATE_APPROVER_WARNING]

    async def test_peer_denied_while_manager_present(self, db: AsyncSession, org):
        req = await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12))
        auth = await ApprovalDelegation.validate_authorization(
            db, org["dept_lead"].id, req, today=TODAY,
        )
        assert auth.authorized is False
        assert auth.errors == [NOT_AUTHORIZED_ERROR]

        result = auth.to_result()
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.unauthorized

    async def test_higher_manager_in_chain(self, db: AsyncSession, org):
        req = await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12))
        auth = await ApprovalDelegation.validate_authorization(
            db, org["hr"].id, req, today=TODAY,
        )
        assert auth.authorized is True
        assert auth.warnings == [HIERARCHY_APPROVER_WARNING]

    async def test_hr_representative_outside_chain(self, db: AsyncSession, org):
        outsider = await seed_employee(db, code="HR002", department="HR")
        req = await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12))
        auth = await ApprovalDelegation.validate_authorization(
            db, outsider.id, req, today=TODAY,
        )
        assert auth.authorized is True
        assert auth.warnings == [HR_APPROVER_WARNING]

    async def test_chain_depth_limits_hierarchy(self, db: AsyncSession, org):
        """With a one-hop chain senior is no longer an ancestor, and has a manager."""
        req = await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12))
        policy = LeavePolicy(manager_chain_max_depth=1)
        auth = await ApprovalDelegation.validate_authorization(
            db, org["senior"].id, req, today=TODAY, policy=policy,
        )
        assert auth.authorized is False

    async def test_self_approval_denied(self, db: AsyncSession, org):
        req = await seed_request(db, org["manager"], date(2024, 3, 11), date(2024, 3, 12))
        auth = await ApprovalDelegation.validate_authorization(
            db, org["manager"].id, req, today=TODAY,
        )
        assert auth.authorized is False
        assert auth.errors == ["Employees cannot approve their own leave requests"]

    async def test_unknown_approver(self, db: AsyncSession, org):
        req = await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12))
        missing = uuid.uuid4()
        auth = await ApprovalDelegation.validate_authorization(db, missing, req, today=TODAY)
        assert auth.authorized is False
        assert auth.approver is None
        assert auth.errors == [f"Approver not found with ID: {missing}"]
        assert auth.to_result().kind is ErrorKind.not_found


# ═════════════════════════════════════════════════════════════════════
# Request state checks
# ═════════════════════════════════════════════════════════════════════


class TestRequestProcessable:

    async def test_pending_is_processable(self, db: AsyncSession, org):
        req = await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12))
        result = ApprovalDelegation.validate_request_processable(req)
        assert isinstance(result, Ok)
        assert result.warnings == []

    async def test_stale_request_warns(self, db: AsyncSession, org):
        created = datetime.now(timezone.utc) - timedelta(days=45)
        req = await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12),
                                 created_at=created)
        result = ApprovalDelegation.validate_request_processable(req)
        assert isinstance(result, Ok)
        assert result.warnings == [
            "This leave request is older than 30 days and may need special attention"
        ]

    async def test_approved_not_processable(self, db: AsyncSession, org):
        req = await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12),
                                 status=LeaveStatus.approved)
        result = ApprovalDelegation.validate_request_processable(req)
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.conflict
        assert result.errors == [
            "Leave request is not in pending status. Current status: Approved"
        ]

    def test_missing_request(self):
        result = ApprovalDelegation.validate_request_processable(None)
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.not_found

    async def test_auto_approve_rule(self, db: AsyncSession, org):
        short = await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12),
                                   is_emergency=True, total_days=2.0)
        long = await seed_request(db, org["alice"], date(2024, 3, 18), date(2024, 3, 20),
                                  is_emergency=True, total_days=3.0)
        planned = await seed_request(db, org["alice"], date(2024, 3, 25), date(2024, 3, 25),
                                     total_days=1.0)
        assert ApprovalDelegation.can_auto_approve(short) is True
        assert ApprovalDelegation.can_auto_approve(long) is False
        assert ApprovalDelegation.can_auto_approve(planned) is False


# ═════════════════════════════════════════════════════════════════════
# Manager queues
# ═════════════════════════════════════════════════════════════════════


class TestPendingQueues:

    async def test_direct_reports_only(self, db: AsyncSession, org):
        alice_req = await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12))
        await seed_request(db, org["bob"], date(2024, 3, 11), date(2024, 3, 12))

        pending = await ApprovalDelegation.get_pending_requests_for_manager(
            db, org["manager"].id, today=TODAY,
        )
        assert [r.id for r in pending] == [alice_req.id]
        assert await ApprovalDelegation.get_pending_approval_count(db, org["manager"].id) == 1

    async def test_alternate_queue_while_manager_away(self, db: AsyncSession, org):
        await _manager_on_leave(db, org)
        alice_req = await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12))
        bob_req = await seed_request(db, org["bob"], date(2024, 3, 11), date(2024, 3, 12))

        pending = await ApprovalDelegation.get_pending_requests_for_manager(
            db, org["dept_lead"].id, today=TODAY,
        )

        assert [r.id for r in pending] == [bob_req.id, alice_req.id]
        assert await ApprovalDelegation.get_pending_approval_count(
            db, org["dept_lead"].id,
        ) == 1

    async def test_own_request_not_in_own_queue(self, db: AsyncSession, org):
        _, lead, report = await _ops_with_absent_head(db)
        own = await seed_request(db, lead, date(2024, 3, 11), date(2024, 3, 11))
        report_req = await seed_request(db, report, date(2024, 3, 12), date(2024, 3, 12))

        pending = await ApprovalDelegation.get_pending_requests_for_manager(
            db, lead.id, today=TODAY,
        )
        hr_pending = await ApprovalDelegation.get_pending_requests_for_manager(
            db, org["hr"].id, today=TODAY,
        )

        assert [r.id for r in pending] == [report_req.id]
        assert own.id in [r.id for r in hr_pending]

    async def test_approved_requests_not_queued(self, db: AsyncSession, org):
        await seed_request(db, org["alice"], date(2024, 3, 11), date(2024, 3, 12),
                           status=LeaveStatus.approved)
        pending = await ApprovalDelegation.get_pending_requests_for_manager(
            db, org["manager"].id, today=TODAY,
        )
        assert pending == []
