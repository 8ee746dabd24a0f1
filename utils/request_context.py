"""Propagate the current request ID through the call stack using contextvars."""

import logging
from contextvars import ContextVar

_current_request_id: ContextVar[str | None] = ContextVar("current_request_id", default=None)


def get_request_id() -> str | None:
    """Request ID of the request being handled, or None outside a request."""
    return _current_request_id.get()


def set_request_id(request_id: str) -> None:
    """
    Set current request ID in context.

    Called by RequestIDMiddleware when a request enters.
    """
    _current_request_id.set(request_id)


def clear_request_id() -> None:
    """
    Clear request context.

    Must be called in finally block to prevent context leakage.
    """
    _current_request_id.set(None)


class RequestIDFilter(logging.Filter):
    """Attach the current request ID to every log record as `request_id`."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True
