"""Core HR service layer — employee registration and manager assignment.

Uses:
  - ``OrganizationDirectory`` for lookups and the cycle guard
  - ``create_audit_entry`` from backend.common.audit
  - ``NotFoundException / ConflictError`` from backend.common.exceptions
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.audit import create_audit_entry
from backend.common.exceptions import ConflictError, NotFoundException
from backend.core_hr.directory import OrganizationDirectory
from backend.core_hr.models import Employee
from backend.core_hr.schemas import EmployeeCreate

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════
# EmployeeService
# ═════════════════════════════════════════════════════════════════════


class EmployeeService:
    """Async write operations on the employee table."""

    # ── Get ─────────────────────────────────────────────────────────

    @staticmethod
    async def get_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        employee = await OrganizationDirectory.find_by_id(db, employee_id)
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    async def create_employee(
        db: AsyncSession,
        data: EmployeeCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Employee:
        """Create a new employee record."""

        clash = await db.execute(
            select(Employee.employee_code, Employee.email).where(
                or_(
                    Employee.employee_code == data.employee_code,
                    Employee.email == data.email,
                )
            )
        )
        existing = clash.first()
        if existing is not None:
            field = "employee_code" if existing.employee_code == data.employee_code else "email"
            raise ConflictError(
                f"An employee with {field}='{getattr(data, field)}' already exists."
            )

        if data.reporting_manager_id is not None:
            if await OrganizationDirectory.find_by_id(db, data.reporting_manager_id) is None:
                raise NotFoundException("Manager", str(data.reporting_manager_id))

        employee = Employee(**data.model_dump())
        db.add(employee)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor_id,
            new_values=data.model_dump(mode="json"),
        )
        logger.info("Registered employee %s (%s)", employee.employee_code, employee.id)

        await db.refresh(employee)
        return employee

    # ── Manager assignment ──────────────────────────────────────────

    @staticmethod
    async def assign_manager(
        db: AsyncSession,
        employee_id: uuid.UUID,
        manager_id: Optional[uuid.UUID],
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Employee:
        """Re-point the reporting line; self-management and cycles are refused."""
        current = await EmployeeService.get_employee(db, employee_id)
        old_manager = current.reporting_manager_id

        employee = await OrganizationDirectory.assign_manager(db, employee_id, manager_id)

        await create_audit_entry(
            db,
            action="assign_manager",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor_id,
            old_values={"reporting_manager_id": str(old_manager) if old_manager else None},
            new_values={"reporting_manager_id": str(manager_id) if manager_id else None},
        )

        await db.refresh(employee)
        return employee

    # ── Direct reports ──────────────────────────────────────────────

    @staticmethod
    async def get_direct_reports(
        db: AsyncSession,
        manager_id: uuid.UUID,
    ) -> Sequence[Employee]:
        """Return active direct reports for a manager."""
        await EmployeeService.get_employee(db, manager_id)
        result = await db.execute(
            select(Employee)
            .where(
                Employee.reporting_manager_id == manager_id,
                Employee.is_active.is_(True),
            )
            .order_by(Employee.first_name, Employee.last_name)
        )
        return result.scalars().all()
