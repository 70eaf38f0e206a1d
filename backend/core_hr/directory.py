"""Organization directory — employee lookups and manager-graph queries.

The manager graph is stored as an optional ``reporting_manager_id`` per
employee. Every upward walk is bounded by ``max_depth`` hops and stops on a
repeated id, so a corrupted (cyclic) graph can never loop forever.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from backend.common.exceptions import NotFoundException, ValidationException
from backend.config import settings
from backend.core_hr.models import Employee

logger = logging.getLogger(__name__)


class OrganizationDirectory:
    """Async read-side queries over the employee table."""

    @staticmethod
    async def find_by_id(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> Optional[Employee]:
        """Return the active employee with this id, or None."""
        result = await db.execute(
            select(Employee).where(
                Employee.id == employee_id,
                Employee.is_active.is_(True),
            )
        )
        return result.scalars().first()

    @staticmethod
    async def find_manager_chain(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        max_depth: Optional[int] = None,
    ) -> list[Employee]:
        """Managers above ``employee_id``, nearest first (the employee excluded)."""
        depth_limit = max_depth if max_depth is not None else settings.MANAGER_CHAIN_MAX_DEPTH
        chain: list[Employee] = []
        seen: set[uuid.UUID] = {employee_id}

        current = await db.get(Employee, employee_id)
        while current is not None and len(chain) < depth_limit:
            manager_id = current.reporting_manager_id
            if manager_id is None or manager_id in seen:
                break
            seen.add(manager_id)
            current = await db.get(Employee, manager_id)
            if current is not None:
                chain.append(current)
        return chain

    @staticmethod
    async def count_subordinates(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> int:
        result = await db.execute(
            select(func.count()).select_from(Employee).where(
                Employee.reporting_manager_id == employee_id,
                Employee.is_active.is_(True),
            )
        )
        return result.scalar_one()

    @staticmethod
    async def find_department_managers(
        db: AsyncSession,
        department: str,
    ) -> list[Employee]:
        """Active employees of ``department`` with at least one direct report."""
        report = aliased(Employee)
        has_reports = (
            select(report.id)
            .where(
                report.reporting_manager_id == Employee.id,
                report.is_active.is_(True),
            )
            .exists()
        )
        result = await db.execute(
            select(Employee)
            .where(
                Employee.department == department,
                Employee.is_active.is_(True),
                has_reports,
            )
            .order_by(Employee.employee_code)
        )
        return list(result.scalars().all())

    @staticmethod
    async def find_employees_with_no_manager(db: AsyncSession) -> list[Employee]:
        """Top-level employees, treated as HR representatives."""
        result = await db.execute(
            select(Employee)
            .where(
                Employee.reporting_manager_id.is_(None),
                Employee.is_active.is_(True),
            )
            .order_by(Employee.employee_code)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_direct_reports(
        db: AsyncSession,
        manager_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        result = await db.execute(
            select(Employee.id).where(
                Employee.reporting_manager_id == manager_id,
                Employee.is_active.is_(True),
            )
        )
        return [row[0] for row in result.all()]

    # ─────────────────────────────────────────────────────────────────
    # Manager assignment
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def would_create_cycle(
        db: AsyncSession,
        employee_id: uuid.UUID,
        manager_id: uuid.UUID,
        *,
        max_depth: Optional[int] = None,
    ) -> bool:
        """True if making ``manager_id`` the manager of ``employee_id`` closes a loop.

        A chain that is still climbing after ``max_depth`` hops is treated
        as cyclic.
        """
        if employee_id == manager_id:
            return True
        depth_limit = max_depth if max_depth is not None else settings.MANAGER_CHAIN_MAX_DEPTH

        seen: set[uuid.UUID] = set()
        current_id: Optional[uuid.UUID] = manager_id
        hops = 0
        while current_id is not None:
            if current_id == employee_id or current_id in seen:
                return True
            if hops >= depth_limit:
                return True
            seen.add(current_id)
            current = await db.get(Employee, current_id)
            if current is None:
                return False
            current_id = current.reporting_manager_id
            hops += 1
        return False

    @staticmethod
    async def assign_manager(
        db: AsyncSession,
        employee_id: uuid.UUID,
        manager_id: Optional[uuid.UUID],
    ) -> Employee:
        """Point ``employee_id`` at a new manager (or none), keeping the graph acyclic."""
        employee = await OrganizationDirectory.find_by_id(db, employee_id)
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))

        if manager_id is not None:
            if manager_id == employee_id:
                raise ValidationException(["Employee cannot be their own manager."])
            manager = await OrganizationDirectory.find_by_id(db, manager_id)
            if manager is None:
                raise NotFoundException("Manager", str(manager_id))
            if await OrganizationDirectory.would_create_cycle(db, employee_id, manager_id):
                logger.warning(
                    "Rejected manager assignment %s -> %s: circular reference",
                    manager_id, employee_id,
                )
                raise ValidationException(
                    ["Manager assignment would create a circular reference."]
                )

        employee.reporting_manager_id = manager_id
        employee.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return employee
