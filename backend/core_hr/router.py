"""Core HR router — the employee directory the leave engine reads from.

Routes:
    /employees                       — Register an employee
    /employees/{id}                  — Get employee
    /employees/{id}/direct-reports   — Manager's direct reports
    /employees/{id}/manager          — Re-assign reporting manager
"""


import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.core_hr.schemas import EmployeeCreate, EmployeeDetail, ManagerAssignment
from backend.core_hr.service import EmployeeService
from backend.database import get_db


employees_router = APIRouter(prefix="", tags=["employees"])


# ── POST /employees: Register employee ─────────────────────────────

@employees_router.post("", response_model=EmployeeDetail, status_code=201)
async def create_employee(
    body: EmployeeCreate,
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.create_employee(db, body)


# ── GET /employees/{id}: Get employee ──────────────────────────────

@employees_router.get("/{employee_id}", response_model=EmployeeDetail)
async def get_employee(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.get_employee(db, employee_id)


# ── GET /employees/{id}/direct-reports ──────────────────────────────

@employees_router.get("/{employee_id}/direct-reports", response_model=list[EmployeeDetail])
async def get_direct_reports(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """Active employees reporting directly to this manager."""
    return await EmployeeService.get_direct_reports(db, employee_id)


# ── PUT /employees/{id}/manager: Re-assign manager ─────────────────

@employees_router.put("/{employee_id}/manager", response_model=EmployeeDetail)
async def assign_manager(
    employee_id: uuid.UUID,
    body: ManagerAssignment,
    db: AsyncSession = Depends(get_db),
):
    """Change the reporting manager. Assignments that would form a cycle get a 422."""
    return await EmployeeService.assign_manager(db, employee_id, body.manager_id)
