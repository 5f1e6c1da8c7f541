"""
Application errors and their HTTP rendering.

Every error the app raises on purpose is an ``AppError``: a stable machine
readable ``code``, an HTTP ``status``, a human ``message`` and optional
``details`` merged into the JSON body. Anything else is an internal error and
is rendered without detail by the top-level boundary in ``install_error_handlers``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError

from coreops.request_id import get_request_id

logger = logging.getLogger(__name__)


class AppError(Exception):
    code = "ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Error"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_body(self, request_id: str | None) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message, "requestId": request_id}
        body.update(self.details)
        return body


class BadRequest(AppError):
    code = "BAD_REQUEST"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class Unauthorized(AppError):
    code = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class Forbidden(AppError):
    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class MonthClosed(Forbidden):
    code = "MONTH_CLOSED"
    default_message = "Month is closed"


class NotFound(AppError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(AppError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class Internal(AppError):
    code = "INTERNAL"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or get_request_id() or None


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("Application error code=%s path=%s method=%s", exc.code, request.url.path, request.method)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body(_request_id(request)))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": [str(part) for part in err.get("loc", ())], "message": err.get("msg", "")} for err in exc.errors()
        ]
        body = {
            "code": "VALIDATION_ERROR",
            "message": "Invalid request",
            "requestId": _request_id(request),
            "errors": errors,
        }
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)

    @app.exception_handler(StaleDataError)
    async def _stale_data(request: Request, exc: StaleDataError) -> JSONResponse:
        logger.info("Optimistic version check failed path=%s", request.url.path)
        err = Conflict("Record was modified by another request")
        return JSONResponse(status_code=err.status_code, content=err.to_body(_request_id(request)))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled error path=%s method=%s request_id=%s",
            request.url.path,
            request.method,
            _request_id(request),
        )
        err = Internal()
        return JSONResponse(status_code=err.status_code, content=err.to_body(_request_id(request)))
