"""Leave persistence queries — requests and ledger rows."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional, Sequence, Union

from sqlalchemy import Select, extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    APPROVED_LEAVE_STATUSES,
    LeaveStatus,
    LeaveType,
)
from backend.core_hr.models import Employee
from backend.leave.models import LeaveBalance, LeaveRequest


class LeaveRepository:
    """Async query helpers shared by validation, delegation and the workflow."""

    # ─────────────────────────────────────────────────────────────────
    # Requests
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
    ) -> Optional[LeaveRequest]:
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(
                selectinload(LeaveRequest.employee),
                selectinload(LeaveRequest.approver),
            )
        )
        return result.scalars().first()

    @staticmethod
    async def find_overlapping(
        db: AsyncSession,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveRequest]:
        """Pending / approved / auto-approved requests sharing at least one day."""
        query = (
            select(LeaveRequest)
            .where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
                LeaveRequest.start_date <= end_date,
                LeaveRequest.end_date >= start_date,
            )
            .order_by(LeaveRequest.start_date)
        )
        if exclude_id is not None:
            query = query.where(LeaveRequest.id != exclude_id)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def find_active_on(
        db: AsyncSession,
        on_date: date,
    ) -> list[LeaveRequest]:
        """Approved or auto-approved requests covering ``on_date``."""
        result = await db.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.status.in_(APPROVED_LEAVE_STATUSES),
                LeaveRequest.start_date <= on_date,
                LeaveRequest.end_date >= on_date,
            )
            .order_by(LeaveRequest.start_date)
        )
        return list(result.scalars().all())

    @staticmethod
    async def find_pending(
        db: AsyncSession,
        *,
        employee_ids: Optional[Sequence[uuid.UUID]] = None,
    ) -> list[LeaveRequest]:
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.status == LeaveStatus.pending)
            .options(selectinload(LeaveRequest.employee))
            .order_by(LeaveRequest.created_at.asc(), LeaveRequest.start_date)
        )
        if employee_ids is not None:
            if not employee_ids:
                return []
            query = query.where(LeaveRequest.employee_id.in_(employee_ids))
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def find_approved_in_year(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
    ) -> list[LeaveRequest]:
        result = await db.execute(
            select(LeaveRequest).where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_(APPROVED_LEAVE_STATUSES),
                extract("year", LeaveRequest.start_date) == year,
            )
        )
        return list(result.scalars().all())

    @staticmethod
    def history_query(employee_id: uuid.UUID) -> Select:
        return (
            select(LeaveRequest)
            .where(LeaveRequest.employee_id == employee_id)
            .order_by(LeaveRequest.start_date.desc())
        )

    @staticmethod
    def status_query(status: Optional[LeaveStatus] = None) -> Select:
        """All requests, newest first; narrowed to ``status`` when given."""
        query = select(LeaveRequest).order_by(LeaveRequest.created_at.desc())
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        return query

    @staticmethod
    async def find_in_range(
        db: AsyncSession,
        start_date: date,
        end_date: date,
        department: Optional[str] = None,
    ) -> list[LeaveRequest]:
        """Requests of any status sharing at least one day with the range."""
        query = (
            select(LeaveRequest)
            .where(
                LeaveRequest.start_date <= end_date,
                LeaveRequest.end_date >= start_date,
            )
            .order_by(LeaveRequest.start_date)
        )
        if department is not None:
            query = query.join(Employee, LeaveRequest.employee_id == Employee.id).where(
                Employee.department == department
            )
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def find_flagged(
        db: AsyncSession,
        *,
        emergency: bool = False,
        backdated: bool = False,
    ) -> list[LeaveRequest]:
        query = select(LeaveRequest).order_by(LeaveRequest.created_at.desc())
        if emergency:
            query = query.where(LeaveRequest.is_emergency.is_(True))
        if backdated:
            query = query.where(LeaveRequest.is_backdated.is_(True))
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def find_upcoming(
        db: AsyncSession,
        from_date: date,
        to_date: date,
    ) -> list[LeaveRequest]:
        """Approved or auto-approved requests starting within ``[from_date, to_date]``."""
        result = await db.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.status.in_(APPROVED_LEAVE_STATUSES),
                LeaveRequest.start_date >= from_date,
                LeaveRequest.start_date <= to_date,
            )
            .order_by(LeaveRequest.start_date)
        )
        return list(result.scalars().all())

    # ─────────────────────────────────────────────────────────────────
    # Balances
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def find_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        year: int,
    ) -> Optional[LeaveBalance]:
        result = await db.execute(
            select(LeaveBalance).where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type == leave_type,
                LeaveBalance.year == year,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def find_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
    ) -> list[LeaveBalance]:
        result = await db.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.year == year,
            )
            .order_by(LeaveBalance.leave_type)
        )
        return list(result.scalars().all())

    @staticmethod
    async def find_low_balances(
        db: AsyncSession,
        year: int,
        threshold: float,
    ) -> list[LeaveBalance]:
        result = await db.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.year == year,
                LeaveBalance.available_days < threshold,
            )
            .order_by(LeaveBalance.available_days)
        )
        return list(result.scalars().all())

    @staticmethod
    async def find_employees_with_balances(
        db: AsyncSession,
        year: int,
    ) -> list[uuid.UUID]:
        result = await db.execute(
            select(LeaveBalance.employee_id)
            .where(LeaveBalance.year == year)
            .distinct()
        )
        return [row[0] for row in result.all()]

    @staticmethod
    async def find_balances_for_year(
        db: AsyncSession,
        year: int,
        *,
        department: Optional[str] = None,
    ) -> list[LeaveBalance]:
        query = (
            select(LeaveBalance)
            .join(Employee, LeaveBalance.employee_id == Employee.id)
            .where(LeaveBalance.year == year)
            .order_by(Employee.employee_code, LeaveBalance.leave_type)
        )
        if department is not None:
            query = query.where(Employee.department == department)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def average_department_utilization(
        db: AsyncSession,
        department: str,
        year: int,
    ) -> Optional[float]:
        """Mean per-row utilization %, rows with no allocation left out."""
        result = await db.execute(
            select(func.avg(LeaveBalance.used_days / LeaveBalance.total_days * 100.0))
            .join(Employee, LeaveBalance.employee_id == Employee.id)
            .where(
                Employee.department == department,
                LeaveBalance.year == year,
                LeaveBalance.total_days > 0,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def find_high_utilization(
        db: AsyncSession,
        year: int,
        threshold: float,
    ) -> list[LeaveBalance]:
        result = await db.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.year == year,
                LeaveBalance.total_days > 0,
                LeaveBalance.used_days / LeaveBalance.total_days * 100.0 > threshold,
            )
            .order_by(LeaveBalance.available_days)
        )
        return list(result.scalars().all())

    @staticmethod
    async def find_employees_without_balances(
        db: AsyncSession,
        year: int,
    ) -> list[Employee]:
        """Active employees holding no ledger row at all for ``year``."""
        with_rows = select(LeaveBalance.employee_id).where(LeaveBalance.year == year)
        result = await db.execute(
            select(Employee)
            .where(
                Employee.is_active.is_(True),
                Employee.id.not_in(with_rows),
            )
            .order_by(Employee.employee_code)
        )
        return list(result.scalars().all())

    # ─────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def save(
        db: AsyncSession,
        entity: Union[LeaveRequest, LeaveBalance],
    ) -> None:
        db.add(entity)
        await db.flush()
