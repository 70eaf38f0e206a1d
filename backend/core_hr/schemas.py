"""Core HR Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update  → request bodies (write)
  - *Response / *Detail → response bodies (read)
"""


import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class EmployeeCreate(BaseModel):
    """Body for registering an employee with the leave engine."""

    employee_code: str = Field(..., min_length=1, max_length=20)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field("", max_length=100)
    email: EmailStr
    department: str = Field(..., min_length=1, max_length=100)
    date_of_joining: date
    reporting_manager_id: Optional[uuid.UUID] = None


class ManagerAssignment(BaseModel):
    """Body for ``PUT /employees/{id}/manager``; ``null`` clears the manager."""

    manager_id: Optional[uuid.UUID] = None


class EmployeeDetail(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    first_name: str
    last_name: str
    full_name: str
    email: str
    department: str
    date_of_joining: date
    reporting_manager_id: Optional[uuid.UUID] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
