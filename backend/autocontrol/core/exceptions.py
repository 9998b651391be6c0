"""Application error taxonomy and its mapping onto the response envelope."""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

logger = logging.getLogger(__name__)

# Same wording for unknown email, wrong password and locked account
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


class AppError(Exception):
    """
    Base class for errors surfaced to API callers.

    Each subclass carries the HTTP status it maps to and a safe default
    message. Field-level detail goes in `errors` as {field, message} dicts.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        errors: Optional[list[dict[str, str]]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self.message = message or self.message
        self.errors = errors or []
        self.headers = headers
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Validation failed"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        """Build a validation error for a single field."""
        return cls(errors=[{"field": field, "message": message}])


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Authentication required"

    def __init__(self, message: Optional[str] = None, **kwargs: Any) -> None:
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class InvalidTokenError(AuthenticationError):
    message = "Invalid or expired token"


class InvalidCredentialsError(AuthenticationError):
    message = INVALID_CREDENTIALS_MESSAGE


class AccountLockedError(AuthenticationError):
    message = INVALID_CREDENTIALS_MESSAGE


class UserNotFoundError(AuthenticationError):
    message = "User no longer exists"


class UserInactiveError(AuthenticationError):
    message = "User account is inactive"


class TenantMismatchError(AuthenticationError):
    message = "Invalid or expired token"


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Insufficient permissions"


ForbiddenError = AuthorizationError


class OrganizationInactiveError(AuthorizationError):
    message = "Organization is inactive or its subscription has expired"


class QuotaExceededError(AuthorizationError):
    message = "Plan limit reached"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Resource not found"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    message = "Conflict with current state of the resource"


class DuplicateResourceError(ConflictError):
    message = "Resource already exists"


class DuplicateSubdomainError(DuplicateResourceError):
    message = "Subdomain is already in use"


class InvalidStateTransitionError(ConflictError):
    message = "Operation not allowed in the current state"


class ResourceInUseError(ConflictError):
    message = "Resource is still referenced by other records"


class RateLimitExceededError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Too many attempts, please try again later"


class StorageUnavailableError(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Service temporarily unavailable, please try again later"


# Driver and pool failures that mean the backing store is unreachable
STORAGE_ERRORS: tuple[type[Exception], ...] = (
    OperationalError,
    InterfaceError,
    PoolTimeoutError,
    ConnectionError,
    TimeoutError,
)


def error_response(
    status_code: int,
    message: str,
    errors: Optional[list[dict[str, str]]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    """Render an error in the shared response envelope."""
    content: dict[str, Any] = {"success": False, "message": message}
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _field_name(loc: tuple[Any, ...]) -> str:
    parts = [str(part) for part in loc if part not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            exc.message,
            extra={"path": request.url.path, "error_type": type(exc).__name__},
        )
    return error_response(exc.status_code, exc.message, exc.errors, exc.headers)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"field": _field_name(tuple(err.get("loc", ()))), "message": err.get("msg", "Invalid value")}
        for err in exc.errors()
    ]
    return error_response(status.HTTP_400_BAD_REQUEST, ValidationError.message, errors)


async def storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Storage backend unavailable",
        exc_info=exc,
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "request_id": getattr(request.state, "request_id", None),
        },
    )
    return error_response(
        StorageUnavailableError.status_code, StorageUnavailableError.message
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error",
        exc_info=exc,
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
        },
    )
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, AppError.message)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning(
        "Unique or foreign key constraint violated",
        extra={"path": request.url.path, "error_type": type(exc.orig).__name__},
    )
    return error_response(DuplicateResourceError.status_code, DuplicateResourceError.message)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the error taxonomy handlers to the application."""
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, integrity_error_handler)  # type: ignore[arg-type]
    for error_type in STORAGE_ERRORS:
        app.add_exception_handler(error_type, storage_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
