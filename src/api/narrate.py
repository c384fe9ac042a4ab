"""Narration routes: turn a stored document into an MP3 audio file."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from src.errors import ErrorKind, PipelineError, ValidationError
from src.logging_setup import set_request_id, set_trace_id
from src.services.storage_service import document_id_from_url
from src.utils.logging_utils import structured_log

router = APIRouter()
_API_LOG = logging.getLogger("api")

STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.NO_TEXT_EXTRACTED: 422,
    ErrorKind.POLL_TIMED_OUT: 504,
    ErrorKind.SUBMISSION_ERROR: 502,
    ErrorKind.ANALYSIS_FAILED: 502,
    ErrorKind.SYNTHESIS_ERROR: 502,
    ErrorKind.PERSISTENCE_ERROR: 502,
    ErrorKind.INTERNAL_ERROR: 500,
}


class NarrateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document_id: str | None = Field(default=None, alias="documentId")
    file_url: str | None = Field(default=None, alias="fileUrl")
    voice: str | None = None

    def resolve_document_id(self) -> str:
        if self.document_id and self.document_id.strip():
            return self.document_id.strip()
        if self.file_url and self.file_url.strip():
            return document_id_from_url(self.file_url)
        raise ValidationError("Provide document_id or file_url in the JSON body")


class NarrateResponse(BaseModel):
    message: str = "File -> Text -> Speech done"
    document_id: str
    extracted_chars: int
    used_chars: int
    blob_name: str
    audio_url: str
    voice: str


def _extract_correlation_ids(request: Request) -> tuple[str | None, str]:
    trace_id: str | None = None
    trace_header = request.headers.get("X-Cloud-Trace-Context")
    if trace_header and "/" in trace_header:
        trace_id = trace_header.split("/", 1)[0]
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    return trace_id or request_id, request_id


def pipeline_error_response(request: Request, exc: PipelineError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    body: Dict[str, Any] = {
        "error_code": exc.kind.value,
        "detail": "Internal server error" if exc.kind is ErrorKind.INTERNAL_ERROR else str(exc),
        "stage": exc.stage,
        "path": request.url.path,
    }
    structured_log(
        _API_LOG,
        logging.WARNING if status_code < 500 else logging.ERROR,
        "request_failed",
        path=request.url.path,
        status=status_code,
        stage=exc.stage,
        error_kind=exc.kind.value,
    )
    return JSONResponse(status_code=status_code, content=body)


@router.post("", response_model=NarrateResponse)
async def narrate_document(payload: NarrateRequest, request: Request) -> NarrateResponse:
    trace_id, request_id = _extract_correlation_ids(request)
    set_request_id(request_id)
    set_trace_id(trace_id)
    try:
        document_id = payload.resolve_document_id()
        pipeline = request.app.state.narration_pipeline
        result = await pipeline.run(document_id, payload.voice, trace_id=trace_id)
    finally:
        set_request_id(None)
        set_trace_id(None)
    return NarrateResponse(
        document_id=document_id,
        extracted_chars=result.extracted_chars,
        used_chars=result.used_chars,
        blob_name=result.blob_name,
        audio_url=result.audio_url,
        voice=result.voice,
    )


__all__ = ["router", "NarrateRequest", "NarrateResponse", "STATUS_BY_KIND", "pipeline_error_response"]
