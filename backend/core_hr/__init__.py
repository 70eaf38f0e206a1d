"""Core HR module — Employee model and organization directory queries."""

from backend.core_hr.directory import OrganizationDirectory
from backend.core_hr.models import Employee

__all__ = ["Employee", "OrganizationDirectory"]
