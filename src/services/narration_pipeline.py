"""Narration pipeline: stored document → OCR → bounded text → speech → storage.

`NarrationPipelineService.run` sequences the stages below. Each stage starts
only after the previous one succeeded; any failure moves the run to FAILED
and is re-raised as a :class:`~src.errors.PipelineError` tagged with the
failing stage. No stage is retried here: the only retry loop is the job
poller waiting on a pending OCR job. The ephemeral audio file is released on
every exit path.

    SUBMITTED → POLLING → ASSEMBLING → BOUNDING → SYNTHESIZING → PERSISTING → DONE
                                (any stage) ────────────────────────────────→ FAILED
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Protocol

from src.config import PipelineSettings
from src.errors import (
    AnalysisFailedError,
    InternalPipelineError,
    NoTextExtractedError,
    PersistenceError,
    PipelineError,
    PollTimeoutError,
    ValidationError,
)
from src.services.interfaces import MetricsClient, PersistedAudio, StorageBackend
from src.services.job_poller import AnalysisResult, AnalysisState, JobPoller
from src.services.metrics import NullMetrics
from src.services.ocr_client import JobHandle
from src.services.speech_service import SpeechSynthesizer, SynthesisArtifact
from src.services.text_processing import BoundedText, assemble_text, bound_text
from src.utils.ephemeral import ArtifactScope
from src.utils.logging_utils import stage_marker, structured_log

_LOG = logging.getLogger("narration_pipeline")


class PipelineStage(str, Enum):
    SUBMITTED = "SUBMITTED"
    POLLING = "POLLING"
    ASSEMBLING = "ASSEMBLING"
    BOUNDING = "BOUNDING"
    SYNTHESIZING = "SYNTHESIZING"
    PERSISTING = "PERSISTING"
    DONE = "DONE"
    FAILED = "FAILED"

    @property
    def label(self) -> str:
        return self.value.lower()


class JobSubmitter(Protocol):
    async def submit(self, document_id: str, *, trace_id: str | None = None) -> JobHandle: ...


@dataclass(frozen=True, slots=True)
class NarrationResult:
    extracted_chars: int
    used_chars: int
    blob_name: str
    audio_url: str
    voice: str
    stage_history: tuple[PipelineStage, ...] = ()


@dataclass
class _RunState:
    document_id: str
    trace_id: str | None
    stage: PipelineStage = PipelineStage.SUBMITTED
    history: List[PipelineStage] = field(default_factory=lambda: [PipelineStage.SUBMITTED])

    def advance(self, stage: PipelineStage) -> None:
        self.stage = stage
        self.history.append(stage)


class NarrationPipelineService:
    """Orchestrates one document-to-audio narration per call to :meth:`run`."""

    def __init__(
        self,
        *,
        job_client: JobSubmitter,
        poller: JobPoller,
        synthesizer: SpeechSynthesizer,
        storage: StorageBackend,
        settings: PipelineSettings,
        metrics: MetricsClient | None = None,
        scope_factory: Callable[[], ArtifactScope] = ArtifactScope,
    ) -> None:
        self._job_client = job_client
        self._poller = poller
        self._synthesizer = synthesizer
        self._storage = storage
        self._settings = settings
        self._metrics = metrics or NullMetrics()
        self._scope_factory = scope_factory
        self._container_ready = False
        self._container_lock = threading.Lock()

    @property
    def settings(self) -> PipelineSettings:
        return self._settings

    async def run(
        self,
        document_id: str,
        voice: str | None = None,
        *,
        trace_id: str | None = None,
    ) -> NarrationResult:
        state = _RunState(document_id=document_id, trace_id=trace_id)
        started = time.perf_counter()
        try:
            with self._scope_factory() as scope:
                result = await self._execute(state, scope, voice)
        except PipelineError as exc:
            self._record_failure(state, exc)
            raise
        except Exception as exc:  # noqa: BLE001 - anything else is a programming error
            wrapped = InternalPipelineError(f"Unexpected failure: {exc}", stage=state.stage.label)
            self._record_failure(state, wrapped)
            raise wrapped from exc

        self._metrics.record_run("succeeded", PipelineStage.DONE.label)
        self._metrics.observe_duration(time.perf_counter() - started)
        self._metrics.observe_text(result.extracted_chars, result.used_chars)
        return result

    async def _execute(
        self, state: _RunState, scope: ArtifactScope, voice: str | None
    ) -> NarrationResult:
        document_id = (state.document_id or "").strip()
        if not document_id:
            raise ValidationError("document_id must not be empty", stage=state.stage.label)
        selected_voice = (voice or "").strip() or self._settings.default_voice
        log_fields: dict[str, Any] = {
            "document_id": document_id,
            "trace_id": state.trace_id,
            "component": "narration_pipeline",
        }

        async with stage_marker(_LOG, stage=state.stage.label, **log_fields):
            handle = await self._job_client.submit(document_id, trace_id=state.trace_id)

        state.advance(PipelineStage.POLLING)
        async with stage_marker(_LOG, stage=state.stage.label, **log_fields) as polling:
            analysis = await self._poller.poll(
                handle,
                self._settings.poll_max_attempts,
                self._settings.poll_interval,
                trace_id=state.trace_id,
            )
            polling.add_completion_fields(job_status=analysis.state.value, attempts=analysis.attempts)
            self._metrics.observe_poll_attempts(analysis.attempts)
            _raise_for_analysis(analysis)

        state.advance(PipelineStage.ASSEMBLING)
        with stage_marker(_LOG, stage=state.stage.label, **log_fields) as assembling:
            text = assemble_text(analysis)
            assembling.add_completion_fields(pages=len(analysis.pages), extracted_chars=len(text))
            if not text.strip():
                raise NoTextExtractedError("No text extracted from document")

        state.advance(PipelineStage.BOUNDING)
        with stage_marker(_LOG, stage=state.stage.label, **log_fields) as bounding:
            bounded: BoundedText = bound_text(text, self._settings.max_chars)
            bounding.add_completion_fields(
                original_length=bounded.original_length,
                bounded_length=bounded.bounded_length,
                truncated=bounded.truncated,
                max_chars=self._settings.max_chars,
            )

        state.advance(PipelineStage.SYNTHESIZING)
        async with stage_marker(_LOG, stage=state.stage.label, voice=selected_voice, **log_fields):
            artifact = await self._synthesizer.synthesize(
                bounded.text, selected_voice, scope=scope, trace_id=state.trace_id
            )

        state.advance(PipelineStage.PERSISTING)
        async with stage_marker(_LOG, stage=state.stage.label, **log_fields) as persisting:
            persisted = await asyncio.to_thread(self._persist, artifact)
            persisting.add_completion_fields(blob_name=persisted.blob_name, container=persisted.container)

        state.advance(PipelineStage.DONE)
        structured_log(
            _LOG,
            logging.INFO,
            "narration_complete",
            document_id=document_id,
            trace_id=state.trace_id,
            extracted_chars=bounded.original_length,
            used_chars=bounded.bounded_length,
            blob_name=persisted.blob_name,
            voice=selected_voice,
        )
        return NarrationResult(
            extracted_chars=bounded.original_length,
            used_chars=bounded.bounded_length,
            blob_name=persisted.blob_name,
            audio_url=persisted.url,
            voice=selected_voice,
            stage_history=tuple(state.history),
        )

    def _persist(self, artifact: SynthesisArtifact) -> PersistedAudio:
        container = self._settings.audio_container
        try:
            with self._container_lock:
                if not self._container_ready:
                    self._storage.provision_container(container)
                    self._container_ready = True
            payload = artifact.read_bytes()
            return self._storage.persist(payload, container, artifact.content_type)
        except PersistenceError:
            raise
        except Exception as exc:  # noqa: BLE001 - storage/file errors all mean "not persisted"
            raise PersistenceError(f"Could not persist audio: {exc}") from exc

    def _record_failure(self, state: _RunState, exc: PipelineError) -> None:
        if exc.stage is None:
            exc.stage = state.stage.label
        state.advance(PipelineStage.FAILED)
        self._metrics.record_run("failed", exc.stage)
        structured_log(
            _LOG,
            logging.ERROR,
            "narration_failed",
            document_id=state.document_id,
            trace_id=state.trace_id,
            stage=exc.stage,
            error_kind=exc.kind.value,
            error=str(exc),
        )


def _raise_for_analysis(result: AnalysisResult) -> None:
    if result.state is AnalysisState.SUCCEEDED:
        return
    if result.state is AnalysisState.TIMED_OUT:
        raise PollTimeoutError(
            f"Document analysis timed out after {result.attempts} status queries"
        )
    if result.state is AnalysisState.FAILED:
        raise AnalysisFailedError(f"Document analysis failed: {result.reason or 'unknown reason'}")
    raise InternalPipelineError(f"Poller returned non-terminal state {result.state.value}")


__all__ = ["NarrationPipelineService", "NarrationResult", "PipelineStage", "JobSubmitter"]
