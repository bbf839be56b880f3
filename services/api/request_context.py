"""Request ID propagation via ContextVar + logging filter.

Usage:
    - ``request_id_middleware`` sets the request_id for each request.
    - The logging filter attaches request_id to every log record.
    - Response header ``x-request-id`` echoes the id; an inbound header is reused.
"""
from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar

REQUEST_ID: ContextVar[str] = ContextVar("request_id", default="")
REQUEST_ID_HEADER = "x-request-id"


def new_request_id() -> str:
    return uuid.uuid4().hex[:16]


class RequestIdFilter(logging.Filter):
    """Inject ``request_id`` into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = REQUEST_ID.get("")  # type: ignore[attr-defined]
        return True


async def request_id_middleware(request, call_next):
    incoming = str(request.headers.get(REQUEST_ID_HEADER) or "").strip()
    token = REQUEST_ID.set(incoming[:64] or new_request_id())
    try:
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = REQUEST_ID.get("")
        return response
    finally:
        REQUEST_ID.reset(token)
