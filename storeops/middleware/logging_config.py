"""
Logging setup for the store operations API.

Every record emitted while a request is being served is stamped with the
request id (set by the timing middleware) and the caller's user id (set by
the JWT middleware), so service-layer lines can be tied back to a request
without passing either value around.

Output format:
    LOG_FORMAT=json      one JSON object per line (default outside DEBUG/TESTING)
    LOG_FORMAT=text      compact single-line text (default in DEBUG/TESTING)

Levels:
    LOG_LEVEL            level for the ``storeops`` package and the app logger
    LIB_LOG_LEVEL        level for chatty dependencies (default WARNING)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

APP_LOGGER = "storeops"

# Dependencies that log every query, request or glyph lookup at INFO/DEBUG
LIBRARY_LOGGERS = (
    "sqlalchemy.engine",
    "werkzeug",
    "urllib3",
    "httpx",
    "httpcore",
    "hpack",
    "fontTools",
    "fpdf",
    "flask_limiter",
)

# Structured extras passed via ``extra=`` by the middleware and services
_EXTRA_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "permission",
    "store_id",
    "year_month",
)


class RequestContextFilter(logging.Filter):
    """Copy ``g.request_id`` and ``g.user_id`` onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = getattr(g, "request_id", None)
            if getattr(record, "user_id", None) is None:
                record.user_id = getattr(g, "user_id", None)
        else:
            record.request_id = getattr(record, "request_id", None)
            record.user_id = getattr(record, "user_id", None)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.request_id:
            entry["request_id"] = record.request_id
        if record.user_id:
            entry["user_id"] = record.user_id
        for field in _EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger [request_id user] message (12ms)``"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        context = ""
        if record.request_id:
            context = f" [{record.request_id}"
            if record.user_id:
                context += f" {str(record.user_id)[:8]}"
            context += "]"
        duration = getattr(record, "duration_ms", None)
        suffix = f" ({duration:.0f}ms)" if duration is not None else ""
        line = f"{ts} {record.levelname:<7} {record.name}{context} {record.getMessage()}{suffix}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_level(name, default):
    return getattr(logging, (name or default).upper(), getattr(logging, default))


def configure_logging(app):
    """Install a single stderr handler on the root logger for ``app``."""
    verbose = app.config.get("DEBUG", False) or app.config.get("TESTING", False)

    fmt = os.getenv("LOG_FORMAT") or ("text" if verbose else "json")
    level = _resolve_level(os.getenv("LOG_LEVEL"), "DEBUG" if verbose else "INFO")
    lib_level = _resolve_level(os.getenv("LIB_LOG_LEVEL"), "WARNING")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())
    handler.addFilter(RequestContextFilter())

    # create_app() runs once per test module; replace rather than stack handlers
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger(APP_LOGGER).setLevel(level)
    app.logger.setLevel(level)
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(lib_level)

    if not app.config.get("TESTING", False):
        app.logger.info("Logging configured (format=%s level=%s)",
                        fmt, logging.getLevelName(level))
