"""Employee directory test suite — manager graph queries, cycle guard,
registration and manager assignment through the service layer and the API.
"""

from __future__ import annotations

import uuid
from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.audit import AuditTrail
from backend.common.exceptions import (
    ConflictError,
    NotFoundException,
    ValidationException,
)
from backend.core_hr.directory import OrganizationDirectory
from backend.core_hr.schemas import EmployeeCreate
from backend.core_hr.service import EmployeeService
from tests.conftest import seed_employee


def _create_payload(**overrides) -> dict:
    payload = {
        "employee_code": "NEW001",
        "first_name": "Nina",
        "last_name": "Patel",
        "email": "nina.patel@example.com",
        "department": "Engineering",
        "date_of_joining": "2024-02-01",
    }
    payload.update(overrides)
    return payload


# ═════════════════════════════════════════════════════════════════════
# Directory queries
# ═════════════════════════════════════════════════════════════════════


class TestOrganizationDirectory:

    async def test_find_by_id_ignores_inactive(self, db: AsyncSession, org):
        org["bob"].is_active = False
        await db.flush()
        assert await OrganizationDirectory.find_by_id(db, org["bob"].id) is None
        assert (await OrganizationDirectory.find_by_id(db, org["alice"].id)).id == org["alice"].id

    async def test_manager_chain_nearest_first(self, db: AsyncSession, org):
        chain = await OrganizationDirectory.find_manager_chain(db, org["alice"].id)
        assert [e.employee_code for e in chain] == ["MGR001", "SM001", "HR001"]

    async def test_manager_chain_bounded_by_depth(self, db: AsyncSession, org):
        chain = await OrganizationDirectory.find_manager_chain(db, org["alice"].id, max_depth=2)
        assert [e.employee_code for e in chain] == ["MGR001", "SM001"]

    async def test_manager_chain_stops_on_cycle(self, db: AsyncSession):
        """A corrupted graph (a → b → a) terminates instead of looping."""
        a = await seed_employee(db, code="CYC001")
        b = await seed_employee(db, code="CYC002", manager_id=a.id)
        a.reporting_manager_id = b.id
        await db.flush()

        chain = await OrganizationDirectory.find_manager_chain(db, a.id)

        assert [e.id for e in chain] == [b.id]

    async def test_top_level_employee_has_empty_chain(self, db: AsyncSession, org):
        assert await OrganizationDirectory.find_manager_chain(db, org["hr"].id) == []

    async def test_department_managers(self, db: AsyncSession, org):
        managers = await OrganizationDirectory.find_department_managers(db, "Engineering")
        assert [e.employee_code for e in managers] == ["DM001", "MGR001", "SM001"]

    async def test_employees_with_no_manager(self, db: AsyncSession, org):
        top = await OrganizationDirectory.find_employees_with_no_manager(db)
        assert [e.employee_code for e in top] == ["HR001"]

    async def test_direct_reports_and_count(self, db: AsyncSession, org):
        reports = await OrganizationDirectory.get_direct_reports(db, org["senior"].id)
        assert set(reports) == {org["manager"].id, org["dept_lead"].id}
        assert await OrganizationDirectory.count_subordinates(db, org["senior"].id) == 2
        assert await OrganizationDirectory.count_subordinates(db, org["alice"].id) == 0


# ═════════════════════════════════════════════════════════════════════
# Cycle guard
# ═════════════════════════════════════════════════════════════════════


class TestCycleDetection:

    async def test_self_is_cycle(self, db: AsyncSession, org):
        assert await OrganizationDirectory.would_create_cycle(
            db, org["alice"].id, org["alice"].id,
        ) is True

    async def test_report_as_manager_is_cycle(self, db: AsyncSession, org):
        assert await OrganizationDirectory.would_create_cycle(
            db, org["senior"].id, org["alice"].id,
        ) is True

    async def test_sideways_move_is_not_cycle(self, db: AsyncSession, org):
        assert await OrganizationDirectory.would_create_cycle(
            db, org["bob"].id, org["manager"].id,
        ) is False

    async def test_overlong_chain_treated_as_cycle(self, db: AsyncSession, org):
        assert await OrganizationDirectory.would_create_cycle(
            db, org["bob"].id, org["alice"].id, max_depth=2,
        ) is True


# ═════════════════════════════════════════════════════════════════════
# EmployeeService
# ═════════════════════════════════════════════════════════════════════


class TestEmployeeService:

    async def test_create_employee(self, db: AsyncSession, org):
        data = EmployeeCreate(**_create_payload(reporting_manager_id=str(org["manager"].id)))
        employee = await EmployeeService.create_employee(db, data)

        assert employee.employee_code == "NEW001"
        assert employee.full_name == "Nina Patel"
        assert employee.reporting_manager_id == org["manager"].id
        assert employee.is_active is True

        audit = (await db.execute(
            select(AuditTrail).where(AuditTrail.entity_id == employee.id)
        )).scalars().all()
        assert [a.action for a in audit] == ["create"]

    async def test_duplicate_code_conflict(self, db: AsyncSession, org):
        data = EmployeeCreate(**_create_payload(employee_code="EMP001"))
        with pytest.raises(ConflictError):
            await EmployeeService.create_employee(db, data)

    async def test_duplicate_email_conflict(self, db: AsyncSession, org):
        data = EmployeeCreate(**_create_payload(email=org["alice"].email))
        with pytest.raises(ConflictError) as exc_info:
            await EmployeeService.create_employee(db, data)
        assert "email" in exc_info.value.detail

    async def test_unknown_manager(self, db: AsyncSession):
        data = EmployeeCreate(**_create_payload(reporting_manager_id=str(uuid.uuid4())))
        with pytest.raises(NotFoundException):
            await EmployeeService.create_employee(db, data)

    async def test_assign_manager(self, db: AsyncSession, org):
        employee = await EmployeeService.assign_manager(db, org["bob"].id, org["manager"].id)
        assert employee.reporting_manager_id == org["manager"].id

        reports = await EmployeeService.get_direct_reports(db, org["manager"].id)
        assert [e.employee_code for e in reports] == ["EMP001", "EMP002"]

    async def test_clear_manager(self, db: AsyncSession, org):
        employee = await EmployeeService.assign_manager(db, org["bob"].id, None)
        assert employee.reporting_manager_id is None

    async def test_assign_self_rejected(self, db: AsyncSession, org):
        with pytest.raises(ValidationException):
            await EmployeeService.assign_manager(db, org["bob"].id, org["bob"].id)

    async def test_assign_cycle_rejected(self, db: AsyncSession, org):
        with pytest.raises(ValidationException) as exc_info:
            await EmployeeService.assign_manager(db, org["senior"].id, org["alice"].id)
        assert exc_info.value.errors == [
            "Manager assignment would create a circular reference."
        ]
        await db.refresh(org["senior"])
        assert org["senior"].reporting_manager_id == org["hr"].id

    async def test_assign_unknown_manager(self, db: AsyncSession, org):
        with pytest.raises(NotFoundException):
            await EmployeeService.assign_manager(db, org["bob"].id, uuid.uuid4())


# ═════════════════════════════════════════════════════════════════════
# API
# ═════════════════════════════════════════════════════════════════════


class TestEmployeeAPI:

    async def test_create_and_get(self, client):
        resp = await client.post("/api/v1/employees", json=_create_payload())
        assert resp.status_code == 201
        body = resp.json()
        assert body["full_name"] == "Nina Patel"
        assert body["date_of_joining"] == "2024-02-01"

        resp = await client.get(f"/api/v1/employees/{body['id']}")
        assert resp.status_code == 200
        assert resp.json()["employee_code"] == "NEW001"

    async def test_create_invalid_email(self, client):
        resp = await client.post("/api/v1/employees", json=_create_payload(email="not-an-email"))
        assert resp.status_code == 422
        assert any(e.startswith("email") for e in resp.json()["errors"])

    async def test_create_duplicate(self, client, org):
        resp = await client.post(
            "/api/v1/employees", json=_create_payload(employee_code="EMP001"),
        )
        assert resp.status_code == 409
        assert resp.json()["type"].endswith("/conflict")

    async def test_get_unknown(self, client):
        resp = await client.get(f"/api/v1/employees/{uuid.uuid4()}")
        assert resp.status_code == 404

    async def test_direct_reports(self, client, org):
        resp = await client.get(f"/api/v1/employees/{org['senior'].id}/direct-reports")
        assert resp.status_code == 200
        assert {e["employee_code"] for e in resp.json()} == {"MGR001", "DM001"}

    async def test_assign_manager_cycle_is_422(self, client, org):
        resp = await client.put(
            f"/api/v1/employees/{org['hr'].id}/manager",
            json={"manager_id": str(org["bob"].id)},
        )
        assert resp.status_code == 422
        assert resp.json()["errors"] == [
            "Manager assignment would create a circular reference."
        ]

    async def test_assign_manager(self, client, org):
        resp = await client.put(
            f"/api/v1/employees/{org['bob'].id}/manager",
            json={"manager_id": str(org["manager"].id)},
        )
        assert resp.status_code == 200
        assert resp.json()["reporting_manager_id"] == str(org["manager"].id)

    async def test_joining_date_round_trip(self, client, db, org):
        resp = await client.get(f"/api/v1/employees/{org['alice'].id}")
        assert date.fromisoformat(resp.json()["date_of_joining"]) == date(2023, 1, 1)
