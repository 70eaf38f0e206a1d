"""Common module — shared utilities for the leave engine."""

from backend.common.audit import AuditTrail, create_audit_entry, get_audit_trail
from backend.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    APPROVED_LEAVE_STATUSES,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ErrorKind,
    LeaveDuration,
    LeaveStatus,
    LeaveType,
)
from backend.common.exceptions import (
    AppException,
    ConflictError,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
    exception_for,
    register_exception_handlers,
)
from backend.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)
from backend.common.result import Err, Ok, Result, unwrap

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    "get_audit_trail",
    # Constants / Enums
    "ErrorKind",
    "LeaveDuration",
    "LeaveStatus",
    "LeaveType",
    "ACTIVE_LEAVE_STATUSES",
    "APPROVED_LEAVE_STATUSES",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "NotFoundException",
    "UnauthorizedException",
    "ValidationException",
    "exception_for",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
    # Results
    "Err",
    "Ok",
    "Result",
    "unwrap",
]
