"""Shared test fixtures — async DB, client, org-chart factories.

Reusable across all test modules (directory, balances, delegation, leave).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from backend.common.constants import LeaveDuration, LeaveStatus, LeaveType
from backend.database import Base, get_db
from backend.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
# (e.g. Employee → LeaveBalance, LeaveRequest)
import backend.common.audit  # noqa: F401
import backend.core_hr.models  # noqa: F401
import backend.leave.models  # noqa: F401

from backend.core_hr.models import Employee
from backend.leave.models import LeaveBalance, LeaveRequest

# ── SQLite compat: compile PG-specific types to TEXT/CHAR ───────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() as a SQLite custom function."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from backend.common.rate_limit import limiter
    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    code: Optional[str] = None,
    first_name: str = "Test",
    last_name: str = "User",
    department: str = "Engineering",
    date_of_joining: date = date(2023, 1, 1),
    manager_id: Optional[uuid.UUID] = None,
) -> dict:
    code = code or f"EMP-{uuid.uuid4().hex[:6].upper()}"
    return dict(
        id=uuid.uuid4(),
        employee_code=code,
        first_name=first_name,
        last_name=last_name,
        email=f"{code.lower()}@example.com",
        department=department,
        date_of_joining=date_of_joining,
        reporting_manager_id=manager_id,
        is_active=True,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def seed_employee(db: AsyncSession, **kwargs) -> Employee:
    employee = Employee(**_make_employee(**kwargs))
    db.add(employee)
    await db.flush()
    return employee


async def seed_balance(
    db: AsyncSession,
    employee: Employee,
    leave_type: LeaveType = LeaveType.vacation,
    year: int = 2024,
    total: float = 20.0,
    used: float = 0.0,
) -> LeaveBalance:
    balance = LeaveBalance(
        employee_id=employee.id,
        leave_type=leave_type,
        year=year,
        total_days=total,
        used_days=used,
    )
    db.add(balance)
    await db.flush()
    return balance


async def seed_request(
    db: AsyncSession,
    employee: Employee,
    start: date,
    end: date,
    *,
    leave_type: LeaveType = LeaveType.vacation,
    status: LeaveStatus = LeaveStatus.pending,
    total_days: Optional[float] = None,
    is_emergency: bool = False,
    created_at: Optional[datetime] = None,
) -> LeaveRequest:
    """Insert a request directly, bypassing validation."""
    req = LeaveRequest(
        id=uuid.uuid4(),
        employee_id=employee.id,
        leave_type=leave_type,
        start_date=start,
        end_date=end,
        duration=LeaveDuration.full_day,
        total_days=total_days if total_days is not None else float((end - start).days + 1),
        status=status,
        is_emergency=is_emergency,
        is_backdated=False,
        created_at=created_at or datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )
    db.add(req)
    await db.flush()
    return req


@pytest.fixture
async def org(db) -> dict[str, Employee]:
    """A small org chart.

    hr (no manager, "HR")
    └── senior (Engineering)
        ├── manager (Engineering)
        │   └── alice
        └── dept_lead (Engineering)
            └── bob
    """
    hr = await seed_employee(db, code="HR001", first_name="Hana", department="HR",
                             date_of_joining=date(2018, 1, 1))
    senior = await seed_employee(db, code="SM001", first_name="Sam", manager_id=hr.id,
                                 date_of_joining=date(2019, 1, 1))
    manager = await seed_employee(db, code="MGR001", first_name="Maya", manager_id=senior.id,
                                  date_of_joining=date(2020, 1, 15))
    dept_lead = await seed_employee(db, code="DM001", first_name="Dev", manager_id=senior.id,
                                    date_of_joining=date(2019, 6, 1))
    alice = await seed_employee(db, code="EMP001", first_name="Alice", manager_id=manager.id,
                                date_of_joining=date(2023, 1, 1))
    bob = await seed_employee(db, code="EMP002", first_name="Bob", manager_id=dept_lead.id,
                              date_of_joining=date(2023, 1, 1))
    await db.commit()
    return {
        "hr": hr,
        "senior": senior,
        "manager": manager,
        "dept_lead": dept_lead,
        "alice": alice,
        "bob": bob,
    }


def next_weekday(start: date, weekday: int = 0) -> date:
    """First date on or after ``start`` falling on ``weekday`` (0 = Monday)."""
    return start + timedelta(days=(weekday - start.weekday()) % 7)
