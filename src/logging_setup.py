"""Structured logging configuration.

Provides a JSON formatter plus request/trace id context variables. The FastAPI
app calls `configure_logging()` at startup; the narrate route sets the ids so
that every record emitted while a pipeline runs carries them.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict

SERVICE_NAME = "doc-narrator"

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)

_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        data: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname,
            "logger": record.name,
            "service": SERVICE_NAME,
            "msg": record.getMessage(),
        }
        for key, var in (("request_id", request_id_var), ("trace_id", trace_id_var)):
            value = var.get()
            if value:
                data.setdefault(key, value)
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            data[key] = value
        return json.dumps(data, ensure_ascii=False, default=str)


def configure_logging(level: int = logging.INFO, force: bool = False) -> None:
    root = logging.getLogger()
    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)
    elif any(isinstance(h.formatter, JsonFormatter) for h in root.handlers):
        root.setLevel(level)
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.setLevel(level)
    root.addHandler(handler)


def parse_log_level(raw: str | None, default: int = logging.INFO) -> int:
    """Map a LOG_LEVEL value such as "debug" or "WARNING" onto a logging level."""
    if not raw:
        return default
    value = logging.getLevelName(raw.strip().upper())
    return value if isinstance(value, int) else default


def set_request_id(rid: str | None) -> None:
    request_id_var.set(rid)


def set_trace_id(tid: str | None) -> None:
    trace_id_var.set(tid)


__all__ = [
    "JsonFormatter",
    "configure_logging",
    "parse_log_level",
    "set_request_id",
    "set_trace_id",
    "request_id_var",
    "trace_id_var",
]
