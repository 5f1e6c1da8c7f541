"""
Request id middleware.

Every request gets an id, either the caller's ``X-Request-ID`` or a fresh
uuid4. The id is stored on ``request.state.request_id`` and in a context
variable so that error bodies, log records and audit entries written while
serving the request all carry the same value.
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Usage:
        app.add_middleware(RequestIdMiddleware)
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER, "").strip()[:60]
        if not request_id:
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def get_request_id() -> str:
    """Current request id, or an empty string outside a request."""
    return request_id_var.get()
