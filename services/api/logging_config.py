"""Logging setup for the photo-check API.

Environment variables:
    LOG_FORMAT                  "json" for JSON lines, "text" for human-readable (default: "text")
    LOG_LEVEL                   root log level name (default: "INFO")
    PHOTO_CHECK_HTTP_LOG_LEVEL  level for the history client's transport loggers (default: "WARNING")

Photo-check modules attach ``record_id`` and ``action`` through ``extra=``;
the JSON formatter copies them next to the request id.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from . import settings as _settings
from .request_context import RequestIdFilter

_EXTRA_FIELDS = ("request_id", "record_id", "action")
_TRANSPORT_LOGGERS = ("urllib3", "requests")
_TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] [%(request_id)s] %(message)s"


def _level(name: str, default: int) -> int:
    value = getattr(logging, str(name or "").strip().upper(), None)
    return value if isinstance(value, int) else default


class _JsonFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        for field in _EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value:
                payload[field] = value
        return json.dumps(payload, ensure_ascii=False)


def configure_logging() -> None:
    root = logging.getLogger()
    root.setLevel(_level(_settings.log_level(), logging.INFO))

    # reloads must not stack handlers
    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    if _settings.log_format() == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)

    transport_level = _level(_settings.photo_check_http_log_level(), logging.WARNING)
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)
