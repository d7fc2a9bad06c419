"""Exception handling and custom exceptions."""

from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

logger = structlog.get_logger()


class BaseCustomException(Exception):
    """Base class for custom exceptions."""

    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(BaseCustomException):
    """Exception raised when a resource is not found."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ValidationException(BaseCustomException):
    """Exception raised when validation fails.

    ``field`` names the request attribute that violated the rule so the
    dashboard can highlight it.
    """

    def __init__(self, message: str = "Validation error", field: Optional[str] = None):
        self.field = field
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY)


class AuthenticationException(BaseCustomException):
    """Exception raised when authentication fails."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class AuthorizationException(BaseCustomException):
    """Exception raised when authorization fails."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class ConflictException(BaseCustomException):
    """Exception raised when a state transition is not allowed."""

    def __init__(self, message: str = "Conflict"):
        super().__init__(message, status.HTTP_409_CONFLICT)


def _field_from_loc(loc) -> str:
    """Turn a pydantic error location into a dotted field name without the ``body`` prefix."""
    parts = [str(part) for part in loc if part not in ("body", "query", "path")]
    return ".".join(parts) if parts else "body"


async def custom_exception_handler(request: Request, exc: BaseCustomException) -> JSONResponse:
    """Handle custom exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "Custom exception occurred",
        request_id=request_id,
        exception_type=type(exc).__name__,
        message=exc.message,
        status_code=exc.status_code,
    )

    content = {
        "error": {
            "type": type(exc).__name__,
            "message": exc.message,
            "request_id": request_id,
        }
    }
    if isinstance(exc, ValidationException) and exc.field:
        content["error"]["details"] = [{"field": exc.field, "message": exc.message}]

    headers = None
    if isinstance(exc, AuthenticationException):
        headers = {"WWW-Authenticate": "Bearer"}

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "HTTP exception occurred",
        request_id=request_id,
        status_code=exc.status_code,
        detail=exc.detail,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "type": "HTTPException",
                "message": exc.detail,
                "request_id": request_id,
            }
        },
        headers=getattr(exc, "headers", None),
    )


async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle FastAPI request validation exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")
    details = [
        {"field": _field_from_loc(error.get("loc", ())), "message": error.get("msg", "")}
        for error in exc.errors()
    ]

    logger.error(
        "Request validation failed",
        request_id=request_id,
        errors=details,
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "type": "ValidationError",
                "message": "Validation failed",
                "details": details,
                "request_id": request_id,
            }
        },
    )


async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle Pydantic validation exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "Validation exception occurred",
        request_id=request_id,
        errors=exc.errors(),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "type": "ValidationError",
                "message": "Validation failed",
                "details": [
                    {"field": _field_from_loc(error.get("loc", ())), "message": error.get("msg", "")}
                    for error in exc.errors()
                ],
                "request_id": request_id,
            }
        },
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "Database exception occurred",
        request_id=request_id,
        error=str(exc),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "type": "DatabaseError",
                "message": "Internal server error",
                "request_id": request_id,
            }
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "Unhandled exception occurred",
        request_id=request_id,
        exception_type=type(exc).__name__,
        error=str(exc),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "type": "InternalServerError",
                "message": "Internal server error",
                "request_id": request_id,
            }
        },
    )


def add_exception_handlers(app: FastAPI) -> None:
    """Add exception handlers to the FastAPI app."""
    app.add_exception_handler(BaseCustomException, custom_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
