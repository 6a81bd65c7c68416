"""
Error handling middleware that turns exceptions into structured JSON responses.
"""

import logging
import traceback
from datetime import datetime, timezone
from uuid import uuid4

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as SQLTimeoutError
from pydantic import ValidationError as PydanticValidationError

from ..utils.exceptions import (
    EventlyError,
    ErrorCode,
    ValidationError,
    NotFoundError,
    AuthorizationError,
    ConcurrencyError,
    ExternalServiceError,
)

logger = logging.getLogger(__name__)


STATUS_BY_ERROR_CODE = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.INSUFFICIENT_CAPACITY: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INSUFFICIENT_SEATS: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_BOOKING_STATE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.EVENT_NOT_BOOKABLE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.EVENT_HAS_BOOKINGS: status.HTTP_409_CONFLICT,
    ErrorCode.SEAT_CONFIGURATION_LOCKED: status.HTTP_409_CONFLICT,
    ErrorCode.PAYMENT_ALREADY_COMPLETED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.PAYMENT_VERIFICATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_QR_CODE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.CONCURRENCY_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.OPTIMISTIC_LOCK_FAILURE: status.HTTP_409_CONFLICT,
    ErrorCode.EXTERNAL_SERVICE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.PAYMENT_SERVICE_ERROR: status.HTTP_502_BAD_GATEWAY,
}


def status_code_for(exc: EventlyError) -> int:
    """Map an error code to its HTTP status."""
    return STATUS_BY_ERROR_CODE.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_response(exc: EventlyError, error_id: str, status_code: int = None, headers: dict = None) -> JSONResponse:
    """Render an ``EventlyError`` in the public error envelope."""
    headers = dict(headers or {})
    if exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)

    return JSONResponse(
        status_code=status_code or status_code_for(exc),
        content={
            "error": exc.to_dict(),
            "error_id": error_id,
            "timestamp": _timestamp()
        },
        headers=headers
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Middleware for error handling and response formatting."""

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            error_id = str(uuid4())
            self._log_error(request, exc, error_id)
            return self._handle_exception(exc, error_id)

    def _handle_exception(self, exc: Exception, error_id: str) -> JSONResponse:
        if isinstance(exc, EventlyError):
            return error_response(exc, error_id)

        if isinstance(exc, PydanticValidationError):
            field_errors = {}
            for error in exc.errors():
                field_path = ".".join(str(loc) for loc in error["loc"])
                field_errors.setdefault(field_path, []).append(error["msg"])
            return error_response(
                ValidationError("Request validation failed", field_errors=field_errors),
                error_id
            )

        if isinstance(exc, IntegrityError):
            return error_response(self._integrity_error(exc), error_id, status.HTTP_409_CONFLICT)

        if isinstance(exc, (OperationalError, SQLTimeoutError)):
            return error_response(
                ExternalServiceError(
                    "database",
                    "Database service temporarily unavailable",
                    details={"error_type": type(exc).__name__}
                ),
                error_id,
                headers={"Retry-After": "30"}
            )

        return self._unexpected_error(exc, error_id)

    def _integrity_error(self, exc: IntegrityError) -> ValidationError:
        error_message = str(getattr(exc, "orig", exc)).lower()

        if "unique" in error_message:
            constraint_type, message = "unique", "A record with this information already exists"
        elif "foreign key" in error_message:
            constraint_type, message = "foreign_key", "Referenced resource does not exist"
        elif "not null" in error_message:
            constraint_type, message = "not_null", "Required field is missing"
        else:
            constraint_type, message = "unknown", "Data integrity constraint violation"

        return ValidationError(message, details={"constraint_type": constraint_type})

    def _unexpected_error(self, exc: Exception, error_id: str) -> JSONResponse:
        evently_error = EventlyError(
            "An unexpected error occurred",
            error_code=ErrorCode.INTERNAL_ERROR,
            details={"error_type": type(exc).__name__} if self.debug else None
        )
        response_data = {
            "error": evently_error.to_dict(),
            "error_id": error_id,
            "timestamp": _timestamp()
        }

        if self.debug:
            response_data["debug"] = {
                "exception": str(exc),
                "traceback": traceback.format_exception(type(exc), exc, exc.__traceback__)
            }

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response_data
        )

    def _log_error(self, request: Request, exc: Exception, error_id: str):
        context = {
            "error_id": error_id,
            "method": request.method,
            "path": request.url.path,
        }
        user = getattr(request.state, "user", None)
        if user is not None:
            context["user_id"] = str(user.id)

        if isinstance(exc, EventlyError):
            context["error_code"] = exc.error_code.value
            context["details"] = exc.details
            if isinstance(exc, (ValidationError, NotFoundError, AuthorizationError)):
                logger.warning(f"Client error [{error_id}]: {exc.message}", extra=context)
            elif isinstance(exc, (ConcurrencyError, ExternalServiceError)):
                logger.error(f"System error [{error_id}]: {exc.message}", extra=context)
            else:
                logger.info(f"Business rule rejected request [{error_id}]: {exc.message}", extra=context)
        else:
            logger.error(
                f"Unexpected error [{error_id}]: {exc}",
                extra={**context, "error_type": type(exc).__name__},
                exc_info=exc
            )
