"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to consistent JSON responses.

Policy denials (AccessDenied) are 403s carrying a stable reason code.
Store failures (PyMongoError) are logged with context and returned as an
opaque 503 so clients never mistake them for revoked access.
Everything else bubbles up as an opaque 500 (with Sentry reporting in production).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from shared.logging import get_logger

if TYPE_CHECKING:
    from services.access_validator import DenyReason

log = get_logger(__name__)


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {"error": self.message, "code": self.error_code}
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(AppError):
    status_code = 401
    error_code = "authentication_error"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class ConflictError(AppError):
    status_code = 409
    error_code = "conflict"


class StoreUnavailableError(AppError):
    status_code = 503
    error_code = "store_unavailable"


class DuplicateKeyAssignment(ConflictError):
    """The activation key already has an assignment (in any status)."""

    error_code = "duplicate_key_assignment"


class AccessDenied(ForbiddenError):
    """A policy denial from the access validator or the binding manager.

    The reason code and message are safe to show to the end user verbatim.
    """

    error_code = "access_denied"

    def __init__(
        self,
        reason: "DenyReason",
        *,
        message: Optional[str] = None,
        requires_reactivation: bool = True,
    ) -> None:
        super().__init__(message or reason.message)
        self.reason = reason
        self.requires_reactivation = requires_reactivation

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["reason"] = self.reason.value
        if self.requires_reactivation:
            # Existing session-polling clients read the camelCase key
            payload["requiresReactivation"] = True
        return payload


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(PyMongoError)
    async def store_error_handler(request: Request, exc: PyMongoError) -> JSONResponse:
        log.error(
            "store_unavailable",
            method=request.method,
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        error = StoreUnavailableError("Service temporarily unavailable.")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        log.error(
            "unhandled_exception",
            method=request.method,
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "An internal server error occurred.", "code": "internal_error"},
        )
