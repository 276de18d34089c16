from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED)


class PermissionDeniedError(AppError):
    """Wrong role, or wrong actor for the resource."""

    def __init__(self, message: str = "Permission denied", details: dict[str, Any] | None = None):
        super().__init__(message, code="PERMISSION_DENIED", status_code=status.HTTP_403_FORBIDDEN, details=details)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None, code: str = "CONFLICT"):
        super().__init__(message, code=code, status_code=status.HTTP_409_CONFLICT, details=details)


class PreconditionFailedError(ConflictError):
    """Record is not in the state the operation requires. Caller must re-fetch."""

    def __init__(
        self,
        message: str = "Precondition failed",
        details: dict[str, Any] | None = None,
        code: str = "PRECONDITION_FAILED",
    ):
        super().__init__(message, details=details, code=code)


class NoCompletionSubmittedError(PreconditionFailedError):
    def __init__(self, message: str = "No completion submitted for this job"):
        super().__init__(message, code="NO_COMPLETION_SUBMITTED")


class DuplicateApplicationError(ConflictError):
    def __init__(self, message: str = "Already applied to this job"):
        super().__init__(message, code="DUPLICATE_APPLICATION")


class BadRequestError(AppError):
    def __init__(self, message: str = "Bad request", details: dict[str, Any] | None = None, code: str = "BAD_REQUEST"):
        super().__init__(message, code=code, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class InsufficientBalanceError(BadRequestError):
    def __init__(self, balance: int, requested: int):
        super().__init__(
            "Insufficient credits",
            details={"balance": balance, "requested": requested},
            code="INSUFFICIENT_BALANCE",
        )


class UnknownViolationTypeError(AppError):
    """Violation type missing from the catalogue. A configuration bug, not user input."""

    def __init__(self, violation_type: str):
        super().__init__(
            f"Unknown violation type: {violation_type}",
            code="UNKNOWN_VIOLATION_TYPE",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body = {
        "error": {
            "message": exc.message,
            "code": exc.code,
            "details": exc.details,
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(status_code=exc.status_code, content=body)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    if exc.status_code >= 500:
        from app.core.logging import get_logger
        get_logger(__name__).error("app_error", code=exc.code, message=exc.message)
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    body = {
        "error": {
            "message": "Validation error",
            "code": "VALIDATION_ERROR",
            "details": {"errors": jsonable_errors(exc)},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=body,
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    from fastapi.encoders import jsonable_encoder
    return jsonable_encoder(exc.errors())


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from app.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    body = {
        "error": {
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
            "details": {},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body,
    )
