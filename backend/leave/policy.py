"""Leave policy — immutable rule values handed to validation and balance setup."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from backend.common.constants import LeaveType
from backend.config import Settings, settings


class LeavePolicy(BaseModel):
    """Tunable thresholds of the leave rules.

    Instances are frozen; build a new one (``model_copy(update=...)``) to
    change a rule for a test or a tenant-specific deployment.
    """

    model_config = ConfigDict(frozen=True)

    emergency_auto_approve_max_days: float = Field(2.0, ge=0)
    max_backdated_days: int = Field(30, ge=0)
    low_balance_threshold: float = Field(5.0, ge=0)
    high_utilization_threshold: float = Field(80.0, ge=0, le=100)
    manager_chain_max_depth: int = Field(10, ge=1)

    @classmethod
    def from_settings(cls, source: Settings = settings) -> "LeavePolicy":
        return cls(
            emergency_auto_approve_max_days=source.EMERGENCY_AUTO_APPROVE_MAX_DAYS,
            max_backdated_days=source.MAX_BACKDATED_DAYS,
            low_balance_threshold=source.LOW_BALANCE_THRESHOLD,
            high_utilization_threshold=source.HIGH_UTILIZATION_THRESHOLD,
            manager_chain_max_depth=source.MANAGER_CHAIN_MAX_DEPTH,
        )

    def default_allocation(self, leave_type: LeaveType) -> float:
        """Yearly days granted for ``leave_type`` when balances are initialized."""
        match leave_type:
            case LeaveType.vacation:
                return 20.0
            case LeaveType.sick:
                return 10.0
            case LeaveType.personal:
                return 5.0
            case LeaveType.maternity:
                return 90.0
            case LeaveType.paternity:
                return 15.0
            case (
                LeaveType.emergency
                | LeaveType.bereavement
                | LeaveType.compensatory
                | LeaveType.unpaid
            ):
                return 0.0
            case _:
                raise ValueError(f"Unhandled leave type: {leave_type!r}")

    def allocations(self) -> dict[LeaveType, float]:
        """Non-zero default allocations, in enumeration order."""
        result: dict[LeaveType, float] = {}
        for leave_type in LeaveType:
            days = self.default_allocation(leave_type)
            if days > 0:
                result[leave_type] = days
        return result

    def qualifies_for_auto_approval(self, is_emergency: bool, total_days: float) -> bool:
        return is_emergency and total_days <= self.emergency_auto_approve_max_days
