"""
API Error Handling
==================

Every error leaves the service as one JSON shape:

    {"error_code": "NOT_FOUND", "message": "Test 'run1' not found",
     "details": {"resource": "test", "id": "run1"}}

``details`` is omitted when there is nothing to add.

Error Codes:
- VALIDATION_ERROR: Request body or parameters failed schema validation (422)
- NOT_FOUND: Unknown test or file, or unknown route (404)
- CONFLICT: Duplicate test name, or test already started (409)
- BAD_REQUEST: Unusable filename, bad reference, wrong method (400/405)
- UNAUTHORIZED: Bearer token missing or wrong (401)
- PAYLOAD_TOO_LARGE: Request body over the upload cap (413)
- STORAGE_ERROR: Artifact directory or file could not be written (500)
- UPSTREAM_ERROR: Workflow dispatch failed (500)
- DATABASE_ERROR: Database operation failed (500)
- INTERNAL_ERROR: Anything else with a 5xx status (500)
"""

import logging
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

_logger = logging.getLogger(__name__)


class ErrorCode:
    """Machine-readable ``error_code`` values."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    STORAGE_ERROR = "STORAGE_ERROR"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# =============================================================================
# Exceptions raised by handlers
# =============================================================================


class APIError(Exception):
    """Base class: carries the status code and the body fields."""

    def __init__(
        self,
        error_code: str,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None
    ):
        self.error_code = error_code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class NotFoundError(APIError):
    """
    Unknown test or file.

    Example:
        raise NotFoundError("test", "run1")
        # {"error_code": "NOT_FOUND", "message": "Test 'run1' not found", ...}
    """

    def __init__(self, resource: str, identifier: Any = None, message: str | None = None):
        if message is None:
            if identifier is not None:
                message = f"{resource.title()} '{identifier}' not found"
            else:
                message = f"{resource.title()} not found"

        details = {"resource": resource}
        if identifier is not None:
            details["id"] = identifier

        super().__init__(ErrorCode.NOT_FOUND, message, status.HTTP_404_NOT_FOUND, details)


class ConflictError(APIError):
    """The request clashes with the test's current state (e.g. a second start)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.CONFLICT, message, status.HTTP_409_CONFLICT, details)


class BadRequestError(APIError):
    """
    Request that passed schema validation but cannot be served.

    Example:
        raise BadRequestError("Invalid filename: '..'")
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.BAD_REQUEST, message, status.HTTP_400_BAD_REQUEST, details)


class UnauthorizedError(APIError):
    """Bearer token missing, malformed or wrong. Answered with a Bearer challenge."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(ErrorCode.UNAUTHORIZED, message, status.HTTP_401_UNAUTHORIZED)


class PayloadTooLargeError(APIError):
    """Request body exceeds the configured upload cap."""

    def __init__(self, limit_bytes: int):
        super().__init__(
            ErrorCode.PAYLOAD_TOO_LARGE,
            f"Request body exceeds the {limit_bytes} byte limit",
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            {"limit_bytes": limit_bytes},
        )


class StorageError(APIError):
    """
    Artifact store I/O error.

    Reported as-is; nothing already written is rolled back.
    """

    def __init__(self, message: str = "Failed to store artifact"):
        super().__init__(ErrorCode.STORAGE_ERROR, message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class UpstreamError(APIError):
    """An external service call failed."""

    def __init__(self, message: str, service: str | None = None):
        super().__init__(
            ErrorCode.UPSTREAM_ERROR,
            message,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"service": service} if service else None,
        )


# =============================================================================
# Exception Handlers
# =============================================================================


def create_error_response(
    error_code: str,
    message: str,
    details: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Build the error body; ``details`` only when given."""
    response = {
        "error_code": error_code,
        "message": message
    }
    if details is not None:
        response["details"] = details
    return response


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.error_code, exc.message, exc.details),
        headers=headers,
    )


async def validation_error_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """
    Schema validation failures, reported per field.

    The ``body`` / ``query`` / ``path`` prefix is dropped from each location,
    so ``("body", "name")`` is reported as ``name``.
    """
    errors = []
    for error in exc.errors():
        loc = error.get("loc", [])
        field_parts = [str(p) for p in loc if p not in ("body", "query", "path")]
        errors.append({
            "field": ".".join(field_parts) if field_parts else "unknown",
            "message": error.get("msg", "Validation error"),
            "type": error.get("type", "value_error")
        })

    if len(errors) == 1:
        message = f"Validation error on field '{errors[0]['field']}': {errors[0]['message']}"
    else:
        message = f"Validation failed with {len(errors)} errors"

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=create_error_response(ErrorCode.VALIDATION_ERROR, message, {"errors": errors}),
    )


# Router-level errors (unknown path, wrong method) arrive as HTTPException
_STATUS_TO_CODE = {
    400: ErrorCode.BAD_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.BAD_REQUEST,
    409: ErrorCode.CONFLICT,
    413: ErrorCode.PAYLOAD_TOO_LARGE,
    422: ErrorCode.VALIDATION_ERROR,
}


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException
) -> JSONResponse:
    error_code = _STATUS_TO_CODE.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = str(exc.detail) if exc.detail else "An error occurred"

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(error_code, message),
        headers=getattr(exc, "headers", None),
    )


async def sqlalchemy_error_handler(
    request: Request,
    exc: SQLAlchemyError
) -> JSONResponse:
    """
    Unique violations become 409, foreign key violations 400, anything else
    a 500. The driver's message is logged, never returned.
    """
    if isinstance(exc, IntegrityError):
        error_str = str(exc.orig)

        if "UNIQUE constraint failed" in error_str:
            _logger.warning("Unique constraint violation: %s", error_str)
            # "UNIQUE constraint failed: Test.name" -> "name"
            field = error_str.rsplit(".", 1)[-1].strip() if "." in error_str else None
            return JSONResponse(
                status_code=status.HTTP_409_CONFLICT,
                content=create_error_response(
                    ErrorCode.CONFLICT,
                    "Duplicate value: resource already exists",
                    {"field": field} if field else None,
                ),
            )

        if "FOREIGN KEY constraint failed" in error_str:
            _logger.warning("Foreign key violation: %s", error_str)
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=create_error_response(
                    ErrorCode.BAD_REQUEST,
                    "Invalid reference: referenced resource does not exist",
                ),
            )

    _logger.exception("Database error: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(ErrorCode.DATABASE_ERROR, "A database error occurred"),
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)


__all__ = [
    "ErrorCode",
    "APIError",
    "NotFoundError",
    "ConflictError",
    "BadRequestError",
    "UnauthorizedError",
    "PayloadTooLargeError",
    "StorageError",
    "UpstreamError",
    "api_error_handler",
    "validation_error_handler",
    "http_exception_handler",
    "sqlalchemy_error_handler",
    "create_error_response",
    "register_exception_handlers",
]
