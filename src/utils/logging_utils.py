"""Helpers for emitting consistent structured logs and stage telemetry.

Only allowlisted fields reach the log stream. Document text and audio bytes
must never be logged; callers pass lengths instead.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Literal

STRUCTURED_LOG_ALLOWED_FIELDS: frozenset[str] = frozenset(
    {
        "attempt",
        "attempts",
        "audio_bytes",
        "blob_name",
        "bounded_length",
        "component",
        "container",
        "document_id",
        "duration_ms",
        "error",
        "error_kind",
        "error_type",
        "event",
        "extracted_chars",
        "http_status",
        "job_status",
        "max_attempts",
        "max_chars",
        "original_length",
        "pages",
        "path",
        "poll_interval",
        "request_id",
        "stage",
        "status",
        "trace_id",
        "truncated",
        "ttl_seconds",
        "used_chars",
        "voice",
    }
)


def _filter_structured_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value
        for key, value in fields.items()
        if key in STRUCTURED_LOG_ALLOWED_FIELDS and value is not None
    }


def structured_log(
    logger: logging.Logger, level: int, event: str, **fields: Any
) -> None:
    """Emit a log record with an `event` attribute and structured extras."""
    payload: Dict[str, Any] = {"event": event, "_structured_log": True}
    payload.update(_filter_structured_fields(fields))
    logger.log(level, event, extra=payload)


class StageMarker:
    """Brackets one pipeline stage with ``pipeline_stage`` log records.

    Usable with both ``with`` and ``async with``. A stage that raises is
    logged at ERROR with the exception type and, for pipeline errors, its
    ``error_kind``; the exception itself is never suppressed.
    """

    EVENT = "pipeline_stage"

    def __init__(self, logger: logging.Logger, *, stage: str, level: int = logging.INFO, **fields: Any) -> None:
        self.logger = logger
        self.stage = stage
        self.level = level
        self.fields = _filter_structured_fields({"stage": stage, **fields})
        self.duration_seconds = 0.0
        self._extra: Dict[str, Any] = {}
        self._clock_start = 0.0

    def add_completion_fields(self, **fields: Any) -> None:
        """Attach safe counters (lengths, attempts) to the closing record."""
        self._extra.update(_filter_structured_fields(fields))

    def _emit(self, level: int, status: str, **fields: Any) -> None:
        structured_log(self.logger, level, self.EVENT, **{**self.fields, **fields, "status": status})

    def _open(self) -> "StageMarker":
        self._clock_start = time.perf_counter()
        self._emit(self.level, "started")
        return self

    def _close(self, exc: BaseException | None) -> Literal[False]:
        self.duration_seconds = time.perf_counter() - self._clock_start
        closing = {**self._extra, "duration_ms": round(self.duration_seconds * 1000)}
        if exc is None:
            self._emit(self.level, "completed", **closing)
            return False
        kind = getattr(exc, "kind", None)
        self._emit(
            logging.ERROR,
            "failed",
            error_type=type(exc).__name__,
            error_kind=getattr(kind, "value", kind),
            **closing,
        )
        return False

    def __enter__(self) -> "StageMarker":
        return self._open()

    def __exit__(self, exc_type, exc: BaseException | None, _tb) -> Literal[False]:
        return self._close(exc)

    async def __aenter__(self) -> "StageMarker":
        return self._open()

    async def __aexit__(self, exc_type, exc: BaseException | None, _tb) -> Literal[False]:
        return self._close(exc)


def stage_marker(
    logger: logging.Logger, *, stage: str, level: int = logging.INFO, **fields: Any
) -> StageMarker:
    return StageMarker(logger, stage=stage, level=level, **fields)


__all__ = [
    "StageMarker",
    "stage_marker",
    "structured_log",
    "STRUCTURED_LOG_ALLOWED_FIELDS",
]
