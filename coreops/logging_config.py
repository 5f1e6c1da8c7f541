from __future__ import annotations

import logging

from coreops.request_id import get_request_id


class RequestIdFilter(logging.Filter):
    """Stamp every record with the request id of the request being served."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = get_request_id() or "-"
        return True


def configure_app_logging(level: str = "INFO") -> None:
    """
    Minimal logging configuration for this repo.

    Notes:
    - Plain stdlib logging; uvicorn already configures handlers.
    - This sets the level for the `coreops` package and makes `request_id`
      available to any formatter that asks for `%(request_id)s`.
    - Set `APP_LOG_LEVEL=DEBUG` to see every gate decision.
    """

    normalized = level.upper()
    root = logging.getLogger("coreops")
    root.setLevel(normalized)
    # Ensure child loggers under coreops.* inherit this level.
    root.propagate = True

    if not any(isinstance(f, RequestIdFilter) for f in root.filters):
        root.addFilter(RequestIdFilter())
