"""Leave balance ledger service — initialization, adjustments, reporting, renewal."""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.constants import LeaveType
from backend.common.exceptions import AppException, NotFoundException
from backend.core_hr.directory import OrganizationDirectory
from backend.core_hr.models import Employee
from backend.leave.models import LeaveBalance
from backend.leave.policy import LeavePolicy
from backend.leave.repository import LeaveRepository
from backend.leave.schemas import (
    BalanceStatisticsOut,
    BalanceSummaryOut,
    BalanceTotals,
    DepartmentBalancesOut,
    EmployeeBrief,
    LeaveBalanceOut,
    LeaveTypeAllocation,
)

logger = logging.getLogger(__name__)


class LeaveBalanceService:
    """Async operations on the (employee, leave type, year) ledger."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _require_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        employee = await OrganizationDirectory.find_by_id(db, employee_id)
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def _require_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        year: int,
    ) -> LeaveBalance:
        balance = await LeaveRepository.find_balance(db, employee_id, leave_type, year)
        if balance is None:
            raise NotFoundException(
                "LeaveBalance", f"{employee_id}/{leave_type.value}/{year}",
            )
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Initialization
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def initialize_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        policy: Optional[LeavePolicy] = None,
    ) -> list[LeaveBalance]:
        """Create the policy's default rows for ``year``; existing rows are kept."""
        policy = policy or LeavePolicy.from_settings()
        await LeaveBalanceService._require_employee(db, employee_id)

        balances: list[LeaveBalance] = []
        created = 0
        for leave_type, allocation in policy.allocations().items():
            existing = await LeaveRepository.find_balance(db, employee_id, leave_type, year)
            if existing is not None:
                balances.append(existing)
                continue
            balance = LeaveBalance(
                employee_id=employee_id,
                leave_type=leave_type,
                year=year,
                total_days=allocation,
            )
            db.add(balance)
            balances.append(balance)
            created += 1

        await db.flush()
        logger.info(
            "Initialized %d leave balance(s) for employee %s, year %d",
            created, employee_id, year,
        )
        return balances

    @staticmethod
    async def initialize_custom_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        allocations: Sequence[LeaveTypeAllocation],
    ) -> list[LeaveBalance]:
        """Create rows with explicit totals (and prior usage); existing rows are kept."""
        await LeaveBalanceService._require_employee(db, employee_id)

        balances: list[LeaveBalance] = []
        for item in allocations:
            existing = await LeaveRepository.find_balance(
                db, employee_id, item.leave_type, year,
            )
            if existing is not None:
                balances.append(existing)
                continue
            balance = LeaveBalance(
                employee_id=employee_id,
                leave_type=item.leave_type,
                year=year,
                total_days=item.total_days,
            )
            balance.set_used(item.used_days)
            db.add(balance)
            balances.append(balance)

        await db.flush()
        return balances

    @staticmethod
    async def bulk_initialize(
        db: AsyncSession,
        employee_ids: Sequence[uuid.UUID],
        year: int,
        policy: Optional[LeavePolicy] = None,
    ) -> int:
        """Initialize defaults for many employees; returns how many succeeded."""
        succeeded = 0
        for employee_id in employee_ids:
            try:
                await LeaveBalanceService.initialize_balances(db, employee_id, year, policy)
            except AppException as exc:
                logger.error(
                    "Failed to initialize balances for employee %s: %s",
                    employee_id, exc.detail,
                )
                continue
            succeeded += 1
        return succeeded

    @staticmethod
    async def process_year_end_renewal(
        db: AsyncSession,
        current_year: int,
        new_year: int,
        policy: Optional[LeavePolicy] = None,
    ) -> int:
        """Give everyone holding ``current_year`` balances fresh ``new_year`` rows."""
        employee_ids = await LeaveRepository.find_employees_with_balances(db, current_year)
        processed = 0
        for employee_id in employee_ids:
            try:
                await LeaveBalanceService.initialize_balances(db, employee_id, new_year, policy)
            except AppException as exc:
                logger.error(
                    "Failed to process year-end renewal for employee %s: %s",
                    employee_id, exc.detail,
                )
                continue
            processed += 1
        logger.info(
            "Year-end renewal %d -> %d processed %d of %d employee(s)",
            current_year, new_year, processed, len(employee_ids),
        )
        return processed

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
    ) -> list[LeaveBalance]:
        await LeaveBalanceService._require_employee(db, employee_id)
        return await LeaveRepository.find_balances(db, employee_id, year)

    @staticmethod
    async def get_summary(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        policy: Optional[LeavePolicy] = None,
    ) -> BalanceSummaryOut:
        policy = policy or LeavePolicy.from_settings()
        employee = await LeaveBalanceService._require_employee(db, employee_id)
        balances = await LeaveRepository.find_balances(db, employee_id, year)

        total_allocated = sum(b.total_days for b in balances)
        total_used = sum(b.used_days for b in balances)
        total_available = sum(b.available_days for b in balances)
        low = [b for b in balances if b.is_running_low(policy.low_balance_threshold)]

        warnings: list[str] = []
        if low:
            warnings.append(f"You have {len(low)} leave type(s) with low balance")

        return BalanceSummaryOut(
            employee=EmployeeBrief.model_validate(employee),
            year=year,
            balances=[LeaveBalanceOut.model_validate(b) for b in balances],
            low_balances=[LeaveBalanceOut.model_validate(b) for b in low],
            totals=BalanceTotals(
                total_allocated=total_allocated,
                total_used=total_used,
                total_available=total_available,
                utilization_percentage=(
                    total_used / total_allocated * 100.0 if total_allocated > 0 else 0.0
                ),
                low_balance_count=len(low),
            ),
            warnings=warnings,
        )

    @staticmethod
    async def find_low_balances(
        db: AsyncSession,
        year: int,
        threshold: Optional[float] = None,
    ) -> list[LeaveBalance]:
        if threshold is None:
            threshold = LeavePolicy.from_settings().low_balance_threshold
        return await LeaveRepository.find_low_balances(db, year, threshold)

    @staticmethod
    async def find_high_utilization(
        db: AsyncSession,
        year: int,
        threshold: Optional[float] = None,
    ) -> list[LeaveBalance]:
        """Rows whose used share of the allocation is above ``threshold`` percent."""
        if threshold is None:
            threshold = LeavePolicy.from_settings().high_utilization_threshold
        return await LeaveRepository.find_high_utilization(db, year, threshold)

    @staticmethod
    async def find_employees_without_balances(
        db: AsyncSession,
        year: int,
    ) -> list[Employee]:
        return await LeaveRepository.find_employees_without_balances(db, year)

    # ─────────────────────────────────────────────────────────────────
    # Department & organisation reporting
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def calculate_department_utilization(
        db: AsyncSession,
        department: str,
        year: int,
    ) -> float:
        """Average utilization % over the department's allocated rows; 0.0 if none."""
        average = await LeaveRepository.average_department_utilization(db, department, year)
        return float(average) if average is not None else 0.0

    @staticmethod
    async def get_department_balances(
        db: AsyncSession,
        department: str,
        year: int,
    ) -> DepartmentBalancesOut:
        balances = await LeaveRepository.find_balances_for_year(
            db, year, department=department,
        )
        utilization = await LeaveBalanceService.calculate_department_utilization(
            db, department, year,
        )
        return DepartmentBalancesOut(
            department=department,
            year=year,
            average_utilization_percentage=utilization,
            balances=[LeaveBalanceOut.model_validate(b) for b in balances],
        )

    @staticmethod
    async def get_statistics(
        db: AsyncSession,
        year: int,
        policy: Optional[LeavePolicy] = None,
    ) -> BalanceStatisticsOut:
        policy = policy or LeavePolicy.from_settings()
        balances = await LeaveRepository.find_balances_for_year(db, year)

        by_type: dict[LeaveType, list[float]] = defaultdict(list)
        for balance in balances:
            if balance.total_days > 0:
                by_type[balance.leave_type].append(balance.utilization_percentage)

        return BalanceStatisticsOut(
            year=year,
            total_employees=len({b.employee_id for b in balances}),
            low_balance_count=sum(
                1 for b in balances if b.is_running_low(policy.low_balance_threshold)
            ),
            zero_balance_count=sum(1 for b in balances if b.available_days == 0),
            high_utilization_count=sum(
                1 for b in balances
                if b.total_days > 0
                and b.utilization_percentage > policy.high_utilization_threshold
            ),
            average_utilization_by_type={
                leave_type: (
                    sum(by_type[leave_type]) / len(by_type[leave_type])
                    if by_type[leave_type]
                    else 0.0
                )
                for leave_type in LeaveType
            },
        )

    # ─────────────────────────────────────────────────────────────────
    # Adjustments
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def deduct_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        days: float,
        year: int,
    ) -> LeaveBalance:
        balance = await LeaveBalanceService._require_balance(db, employee_id, leave_type, year)
        balance.deduct(days)
        balance.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return balance

    @staticmethod
    async def restore_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        days: float,
        year: int,
    ) -> LeaveBalance:
        balance = await LeaveBalanceService._require_balance(db, employee_id, leave_type, year)
        balance.restore(days)
        balance.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return balance

    @staticmethod
    async def recalculate(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
    ) -> list[LeaveBalance]:
        """Rebuild ``used_days`` from approved and auto-approved requests of ``year``."""
        await LeaveBalanceService._require_employee(db, employee_id)
        used: dict[LeaveType, float] = defaultdict(float)
        for req in await LeaveRepository.find_approved_in_year(db, employee_id, year):
            used[req.leave_type] += req.total_days

        balances = await LeaveRepository.find_balances(db, employee_id, year)
        now = datetime.now(timezone.utc)
        for balance in balances:
            balance.set_used(used.get(balance.leave_type, 0.0))
            balance.updated_at = now
        await db.flush()
        logger.info("Recalculated %d balance(s) for employee %s, year %d",
                    len(balances), employee_id, year)
        return balances
