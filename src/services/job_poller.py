"""Poll an analysis job until it succeeds, fails or the budget runs out."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Protocol, Tuple

from src.services.ocr_client import JobHandle
from src.utils.logging_utils import structured_log
from src.utils.polling import AsyncSleep, poll_until

_LOG = logging.getLogger("job_poller")

Page = Tuple[str, ...]

_SUCCESS_STATUSES = frozenset({"succeeded"})
_FAILURE_STATUSES = frozenset({"failed", "canceled", "cancelled"})


class AnalysisState(str, Enum):
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    state: AnalysisState
    pages: Tuple[Page, ...] = ()
    reason: str | None = None
    attempts: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.state is not AnalysisState.PENDING


class StatusSource(Protocol):
    async def fetch_status(self, handle: JobHandle) -> Dict[str, Any]: ...


def _line_text(line: Any) -> str | None:
    if isinstance(line, str):
        return line
    if isinstance(line, Mapping):
        value = line.get("content", line.get("text"))
        return value if isinstance(value, str) else None
    return None


def _extract_pages(payload: Mapping[str, Any]) -> Tuple[Page, ...]:
    container = payload.get("analyzeResult")
    if not isinstance(container, Mapping):
        container = payload
    raw_pages = container.get("pages")
    if not isinstance(raw_pages, list):
        return ()
    pages: list[Page] = []
    for raw_page in raw_pages:
        raw_lines = raw_page.get("lines") if isinstance(raw_page, Mapping) else None
        lines = (_line_text(line) for line in raw_lines or [])
        pages.append(tuple(text for text in lines if text is not None))
    return tuple(pages)


def _failure_reason(payload: Mapping[str, Any], status: str) -> str:
    error = payload.get("error")
    if isinstance(error, Mapping):
        message = error.get("message") or error.get("code")
        if message:
            return str(message)
    return f"analysis job reported status '{status}'"


def parse_status_payload(payload: Mapping[str, Any]) -> AnalysisResult:
    """Map one status document onto PENDING, SUCCEEDED or FAILED."""
    status = str(payload.get("status") or "").strip().lower()
    if status in _SUCCESS_STATUSES:
        return AnalysisResult(state=AnalysisState.SUCCEEDED, pages=_extract_pages(payload))
    if status in _FAILURE_STATUSES:
        return AnalysisResult(state=AnalysisState.FAILED, reason=_failure_reason(payload, status))
    return AnalysisResult(state=AnalysisState.PENDING)


class JobPoller:
    """Owns a job handle until the analysis reaches a terminal state."""

    def __init__(self, source: StatusSource, *, sleep: AsyncSleep = asyncio.sleep) -> None:
        self._source = source
        self._sleep = sleep

    async def poll(
        self,
        handle: JobHandle,
        max_attempts: int,
        interval: float,
        *,
        trace_id: str | None = None,
    ) -> AnalysisResult:
        """Return SUCCEEDED, FAILED or TIMED_OUT; never PENDING.

        Failures reported by the backend are final and are not polled again.
        """

        async def _probe(_attempt: int) -> AnalysisResult:
            return parse_status_payload(await self._source.fetch_status(handle))

        def _on_pending(attempt: int, _result: AnalysisResult) -> None:
            structured_log(
                _LOG,
                logging.DEBUG,
                "ocr_job_pending",
                document_id=handle.document_id,
                trace_id=trace_id,
                attempt=attempt,
                max_attempts=max_attempts,
            )

        outcome = await poll_until(
            _probe,
            is_terminal=lambda result: result.is_terminal,
            max_attempts=max_attempts,
            interval=interval,
            sleep=self._sleep,
            on_pending=_on_pending,
        )
        if not outcome.terminal:
            structured_log(
                _LOG,
                logging.WARNING,
                "ocr_job_timed_out",
                document_id=handle.document_id,
                trace_id=trace_id,
                attempts=outcome.attempts,
                poll_interval=interval,
            )
            return AnalysisResult(
                state=AnalysisState.TIMED_OUT,
                reason=f"no terminal state after {outcome.attempts} status queries",
                attempts=outcome.attempts,
            )

        result = outcome.value
        structured_log(
            _LOG,
            logging.INFO if result.state is AnalysisState.SUCCEEDED else logging.WARNING,
            "ocr_job_finished",
            document_id=handle.document_id,
            trace_id=trace_id,
            job_status=result.state.value,
            attempts=outcome.attempts,
            pages=len(result.pages),
        )
        return AnalysisResult(
            state=result.state,
            pages=result.pages,
            reason=result.reason,
            attempts=outcome.attempts,
        )


__all__ = [
    "AnalysisResult",
    "AnalysisState",
    "JobPoller",
    "Page",
    "StatusSource",
    "parse_status_payload",
]
