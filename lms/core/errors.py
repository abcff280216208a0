"""Application error types and the handlers that render them.

Services raise these; routers let them propagate.  The handlers installed
by register_exception_handlers() turn every failure into the same
envelope::

    {"status": "error", "message": "..."}

with the HTTP status taken from the error.
"""

from __future__ import annotations

import logging
from typing import cast

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have permission to perform this action"


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class SignatureError(AppError):
    """Webhook payload failed signature verification."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid webhook signature"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class UpstreamError(AppError):
    """The payment gateway failed or returned an unusable response."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Payment provider error"


class PurchasePendingError(AppError):
    """A completion webhook arrived before its checkout row was recorded.

    503 tells the gateway to redeliver later.
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Purchase not recorded yet, retry later"


def error_body(message: str) -> dict[str, str]:
    return {"status": "error", "message": message}


async def _app_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error = cast(AppError, exc)
    level = logging.ERROR if error.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "%s on %s %s: %s",
        type(error).__name__,
        request.method,
        request.url.path,
        error.message,
    )
    return JSONResponse(
        status_code=error.status_code, content=error_body(error.message)
    )


async def _http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    http_error = cast(StarletteHTTPException, exc)
    if (
        http_error.status_code == status.HTTP_404_NOT_FOUND
        and http_error.detail == "Not Found"
    ):
        message = "Route not found"
    else:
        message = str(http_error.detail)
    return JSONResponse(
        status_code=http_error.status_code,
        content=error_body(message),
        headers=getattr(http_error, "headers", None),
    )


async def _validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    errors = cast(RequestValidationError, exc).errors()
    logger.warning("Validation error on %s: %s", request.url.path, errors)
    first = errors[0] if errors else {}
    loc = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg", "invalid"))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        content=error_body(message),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
