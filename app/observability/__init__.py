from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from flask import Flask, g, has_request_context, request


CORRELATION_HEADER = "X-Correlation-ID"

# Extra attributes copied onto each JSON line when a log call sets them.
PASTE_LOG_FIELDS: tuple[str, ...] = (
    "event",
    "correlation_id",
    "http_method",
    "http_path",
    "paste_id",
    "state_from",
    "state_to",
    "purged",
    "operation",
    "error_type",
    "backend",
)


class _RequestFieldsFilter(logging.Filter):
    """Stamp records logged while serving a request with its method, path and correlation id."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not has_request_context():
            return True
        if getattr(record, "correlation_id", None) is None:
            record.correlation_id = getattr(g, "correlation_id", None)
        record.http_method = request.method
        record.http_path = request.path
        return True


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line.

    The record's creation time is rendered in UTC with millisecond precision,
    matching how paste instants are reported by the API. Only the
    ``PASTE_LOG_FIELDS`` that are set on the record are included.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (field, getattr(record, field))
            for field in PASTE_LOG_FIELDS
            if getattr(record, field, None) is not None
        )
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def get_correlation_id() -> str | None:
    """Correlation id of the request being served, or None outside a request."""
    if not has_request_context():
        return None
    return getattr(g, "correlation_id", None)


def _configure_logging(level: int | str = logging.INFO) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(_RequestFieldsFilter())

    root = logging.getLogger()
    root.setLevel(level)
    # A second create_app() call must not double every line.
    root.handlers = [handler]


def init_observability(app: Flask) -> None:
    """
    Route logging through ``JsonFormatter`` at the app's ``LOG_LEVEL`` and
    tag every request with a correlation id.

    A caller-supplied ``X-Correlation-ID`` header is reused; otherwise a fresh
    UUID is issued. Either way it is echoed back on the response.
    """
    _configure_logging(app.config.get("LOG_LEVEL", logging.INFO))

    @app.before_request
    def _assign_correlation_id() -> None:  # type: ignore[unused-variable]
        g.correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid4())

    @app.after_request
    def _echo_correlation_id(response):  # type: ignore[unused-variable]
        correlation_id = get_correlation_id()
        if correlation_id:
            response.headers[CORRELATION_HEADER] = correlation_id
        return response
