"""Leave validation engine — decides whether a candidate request is admissible.

Checks run in a fixed order and accumulate: every failing rule adds an
error, every advisory rule adds a warning. Only a missing employee stops
the run early, since the remaining rules need the employee record.

Error tags:
  - not-found  → employee does not exist
  - conflict   → insufficient balance, overlapping request
  - invalid    → everything else (date range, joining date, no working
                 days, missing ledger row, backdated too far)

``validate`` returns ``Ok(total_days, warnings)`` or ``Err(kind, errors,
warnings)`` where ``kind`` is the tag of the first error raised.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.constants import ErrorKind, LeaveDuration, LeaveType
from backend.common.result import Err, Ok, Result
from backend.core_hr.directory import OrganizationDirectory
from backend.leave.calendar import calculate_working_days, is_weekend_only, ranges_overlap
from backend.leave.models import LeaveBalance, LeaveRequest
from backend.leave.policy import LeavePolicy
from backend.leave.repository import LeaveRepository

logger = logging.getLogger(__name__)


@dataclass
class Findings:
    """Accumulator for one validation run."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    kinds: list[ErrorKind] = field(default_factory=list)

    def error(self, kind: ErrorKind, message: str) -> None:
        self.kinds.append(kind)
        self.errors.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def extend(self, other: "Findings") -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.kinds.extend(other.kinds)

    def to_result(self, total_days: float) -> Result[float]:
        if self.errors:
            return Err(self.kinds[0], list(self.errors), list(self.warnings))
        return Ok(total_days, list(self.warnings))


class LeaveValidator:
    """Admissibility rules for leave applications."""

    # ─────────────────────────────────────────────────────────────────
    # Pure rule helpers (no DB)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def check_date_range(start_date: date, end_date: date) -> Findings:
        findings = Findings()
        if end_date < start_date:
            findings.error(ErrorKind.invalid, "End date must be on or after start date")
        return findings

    @staticmethod
    def check_joining_date(start_date: date, date_of_joining: date) -> Findings:
        findings = Findings()
        if start_date < date_of_joining:
            findings.error(
                ErrorKind.invalid,
                f"Leave cannot be applied before joining date: {date_of_joining.isoformat()}",
            )
        return findings

    @staticmethod
    def check_balance(
        balance: Optional[LeaveBalance],
        leave_type: LeaveType,
        year: int,
        requested_days: float,
        policy: LeavePolicy,
    ) -> Findings:
        findings = Findings()
        if balance is None:
            findings.error(
                ErrorKind.invalid,
                f"Leave balance not found for {leave_type.display_name} in year {year}",
            )
            return findings

        if not balance.has_sufficient_balance(requested_days):
            findings.error(
                ErrorKind.conflict,
                f"Insufficient {leave_type.display_name} balance. "
                f"Available: {balance.available_days:.1f} days, "
                f"Requested: {requested_days:.1f} days",
            )

        remaining = balance.available_days - requested_days
        if 0 <= remaining < policy.low_balance_threshold:
            findings.warn(
                f"Low {leave_type.display_name} balance warning: "
                f"{remaining:.1f} days will remain after this request"
            )
        return findings

    @staticmethod
    def check_overlaps(
        start_date: date,
        end_date: date,
        candidates: Sequence[LeaveRequest],
    ) -> Findings:
        """Flag every active candidate sharing at least one day with the range."""
        findings = Findings()
        overlapping = [
            req for req in candidates
            if ranges_overlap(start_date, end_date, req.start_date, req.end_date)
        ]
        if overlapping:
            described = ", ".join(
                f"{req.id} ({req.start_date.isoformat()} to {req.end_date.isoformat()}, "
                f"Status: {req.status.display_name})"
                for req in overlapping
            )
            findings.error(
                ErrorKind.conflict,
                f"Leave request overlaps with existing requests: {described}",
            )
        return findings

    @staticmethod
    def check_backdated(start_date: date, today: date, policy: LeavePolicy) -> Findings:
        findings = Findings()
        days_past = (today - start_date).days
        if days_past > policy.max_backdated_days:
            findings.error(
                ErrorKind.invalid,
                f"Backdated leave requests are only allowed up to "
                f"{policy.max_backdated_days} days. "
                f"This request is {days_past} days in the past",
            )
        elif days_past > 0:
            findings.warn(
                f"This is a backdated request ({days_past} days ago). "
                "Please provide proper justification"
            )
        return findings

    # ─────────────────────────────────────────────────────────────────
    # Full validation
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def validate(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        start_date: date,
        end_date: date,
        duration: LeaveDuration,
        is_emergency: bool,
        exclude_request_id: Optional[uuid.UUID] = None,
        *,
        policy: Optional[LeavePolicy] = None,
        today: Optional[date] = None,
    ) -> Result[float]:
        """Run every admissibility rule; the Ok value is the days consumed."""
        policy = policy or LeavePolicy.from_settings()
        today = today or datetime.now(timezone.utc).date()
        findings = Findings()

        # 1. Date range
        findings.extend(LeaveValidator.check_date_range(start_date, end_date))

        # 2. Employee
        employee = await OrganizationDirectory.find_by_id(db, employee_id)
        if employee is None:
            findings.error(ErrorKind.not_found, f"Employee not found with ID: {employee_id}")
            logger.warning("Leave validation for unknown employee %s", employee_id)
            return Err(ErrorKind.not_found, findings.errors, findings.warnings)

        # 3. Joining date
        findings.extend(LeaveValidator.check_joining_date(start_date, employee.date_of_joining))

        # 4. Working days
        total_days = calculate_working_days(start_date, end_date, duration)
        if total_days <= 0:
            findings.error(
                ErrorKind.invalid, "Leave request must include at least one working day",
            )

        # 5. Balance (short emergencies skip it)
        if not policy.qualifies_for_auto_approval(is_emergency, total_days):
            year = start_date.year
            balance = await LeaveRepository.find_balance(db, employee_id, leave_type, year)
            findings.extend(
                LeaveValidator.check_balance(balance, leave_type, year, total_days, policy)
            )

        # 6. Overlap
        overlapping = await LeaveRepository.find_overlapping(
            db, employee_id, start_date, end_date, exclude_request_id,
        )
        findings.extend(LeaveValidator.check_overlaps(start_date, end_date, overlapping))

        # 7. Backdated
        if start_date < today:
            findings.extend(LeaveValidator.check_backdated(start_date, today, policy))

        # 8. Weekend-only
        if is_weekend_only(start_date, end_date):
            findings.warn("Leave request covers only weekends - no working days will be deducted")

        if findings.errors:
            logger.warning(
                "Leave validation failed for employee %s: %s",
                employee_id, "; ".join(findings.errors),
            )
        return findings.to_result(total_days)
