"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.common.constants import ErrorKind

BASE_ERROR_URI = "https://leave.example.com/errors"

logger = logging.getLogger(__name__)


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON.

    ``errors`` are the fatal messages that blocked the operation;
    ``warnings`` are any non-blocking notices gathered before it failed.
    """

    def __init__(
        self,
        status_code: int,
        kind: ErrorKind,
        title: str,
        detail: str,
        errors: Optional[Sequence[str]] = None,
        warnings: Optional[Sequence[str]] = None,
    ) -> None:
        self.status_code = status_code
        self.kind = kind
        self.title = title
        self.detail = detail
        self.errors = list(errors) if errors else [detail]
        self.warnings = list(warnings or [])
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            kind=ErrorKind.not_found,
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ConflictError(AppException):
    """409 — state conflict (overlap, insufficient balance, wrong status)."""

    def __init__(
        self,
        detail: str,
        errors: Optional[Sequence[str]] = None,
        warnings: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(
            status_code=409,
            kind=ErrorKind.conflict,
            title="Conflict",
            detail=detail,
            errors=errors,
            warnings=warnings,
        )


class UnauthorizedException(AppException):
    """403 — actor may not perform this transition."""

    def __init__(
        self,
        detail: str = "You are not authorized to perform this action.",
        errors: Optional[Sequence[str]] = None,
        warnings: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(
            status_code=403,
            kind=ErrorKind.unauthorized,
            title="Unauthorized",
            detail=detail,
            errors=errors,
            warnings=warnings,
        )


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(
        self,
        errors: Sequence[str],
        warnings: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(
            status_code=422,
            kind=ErrorKind.invalid,
            title="Validation Error",
            detail="; ".join(errors) or "One or more fields failed validation.",
            errors=errors,
            warnings=warnings,
        )


def exception_for(
    kind: ErrorKind,
    errors: Sequence[str],
    warnings: Optional[Sequence[str]] = None,
) -> AppException:
    """Build the exception matching an error tag."""
    detail = "; ".join(errors)
    if kind is ErrorKind.invalid:
        return ValidationException(errors, warnings)
    if kind is ErrorKind.conflict:
        return ConflictError(detail, errors, warnings)
    if kind is ErrorKind.unauthorized:
        return UnauthorizedException(detail, errors, warnings)
    return AppException(
        status_code=404,
        kind=ErrorKind.not_found,
        title="Not Found",
        detail=detail,
        errors=errors,
        warnings=warnings,
    )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.kind.value}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
        "errors": exc.errors,
    }
    if exc.warnings:
        body["warnings"] = exc.warnings
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    logger.info(
        "%s %s -> %d %s", request.method, request.url.path,
        exc.status_code, exc.kind.value,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: list[str] = []
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.append(f"{name}: {err.get('msg', 'Invalid value')}")

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{BASE_ERROR_URI}/{ErrorKind.invalid.value}",
            "title": "Validation Error",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
