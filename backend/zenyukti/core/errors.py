"""
Error taxonomy for the account API and the handlers that render it.

Services raise ``AuthError`` subclasses; the handlers registered in
``install_error_handlers`` turn them into ``{"message": ...}`` responses.
Nothing below the controller boundary builds HTTP responses itself.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base class for errors reported to API callers."""

    status_code = status.HTTP_400_BAD_REQUEST
    message = "Request failed"
    headers: dict | None = None

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(AuthError):
    message = "Invalid input"


class DuplicateEmail(AuthError):
    message = "User already exists with this email"


class InvalidCredentials(AuthError):
    # Same text for unknown email and wrong password
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid email or password"
    headers = {"WWW-Authenticate": "Bearer"}


class InvalidToken(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Not authorized, token failed"
    headers = {"WWW-Authenticate": "Bearer"}


class InvalidOrExpiredTicket(AuthError):
    message = "Invalid or expired reset token"


class NotFound(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "User not found"


class UploadRejected(AuthError):
    message = "Invalid file upload"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message},
        headers=exc.headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Flatten pydantic errors into the API's message envelope."""
    errors = []
    for error in exc.errors():
        # Drop the leading "body"/"path" segment so fields read naturally
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "path", "query")]
        errors.append({"field": ".".join(loc), "message": error.get("msg", "Invalid value")})

    message = errors[0]["message"] if errors else ValidationError.message
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"message": message, "errors": errors},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Internal details stay in the log, never in the response
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal server error"},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
