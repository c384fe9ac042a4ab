"""Custom exception hierarchy for the document narration service.

Every stage of the narration pipeline fails with a subclass of
:class:`PipelineError`. The ``kind`` attribute is the caller-facing error code
and ``stage`` records where the failure happened, so FastAPI exception
handlers can map failures to HTTP status codes without inspecting messages.
"""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    SUBMISSION_ERROR = "SUBMISSION_ERROR"
    POLL_TIMED_OUT = "POLL_TIMED_OUT"
    ANALYSIS_FAILED = "ANALYSIS_FAILED"
    NO_TEXT_EXTRACTED = "NO_TEXT_EXTRACTED"
    SYNTHESIS_ERROR = "SYNTHESIS_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class PipelineError(Exception):
    """Base class for failures surfaced by the narration pipeline."""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage


class ValidationError(PipelineError):
    """Raised when the document reference or request parameters are invalid."""

    kind = ErrorKind.INVALID_INPUT


class OCRSubmissionError(PipelineError):
    """Raised when the OCR analysis job could not be created."""

    kind = ErrorKind.SUBMISSION_ERROR


class PollTimeoutError(PipelineError):
    """Raised when the OCR job did not reach a terminal state within budget."""

    kind = ErrorKind.POLL_TIMED_OUT


class AnalysisFailedError(PipelineError):
    """Raised when the OCR backend reports the job as failed."""

    kind = ErrorKind.ANALYSIS_FAILED


class NoTextExtractedError(PipelineError):
    """Raised when OCR succeeded but produced no usable text."""

    kind = ErrorKind.NO_TEXT_EXTRACTED


class SynthesisError(PipelineError):
    """Raised when the text-to-speech backend rejects or fails a request."""

    kind = ErrorKind.SYNTHESIS_ERROR


class PersistenceError(PipelineError):
    """Raised when synthesized audio cannot be durably stored."""

    kind = ErrorKind.PERSISTENCE_ERROR


class InternalPipelineError(PipelineError):
    """Raised for unexpected failures and programming errors."""

    kind = ErrorKind.INTERNAL_ERROR


__all__ = [
    "ErrorKind",
    "PipelineError",
    "ValidationError",
    "OCRSubmissionError",
    "PollTimeoutError",
    "AnalysisFailedError",
    "NoTextExtractedError",
    "SynthesisError",
    "PersistenceError",
    "InternalPipelineError",
]
