"""Client for the asynchronous document analysis (OCR) REST backend.

Submitting a document is a two-step exchange: ``POST …:analyze`` with a
read URL for the source document returns ``202 Accepted`` and an
``Operation-Location`` header; that address is then polled with ``GET`` until
the job reports ``succeeded`` or ``failed``. This module owns the HTTP side of
both calls. Polling cadence lives in :mod:`src.services.job_poller`.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict

import httpx

from src.errors import AnalysisFailedError, OCRSubmissionError, ValidationError
from src.services.interfaces import StorageBackend
from src.services.storage_service import StorageServiceError
from src.utils.logging_utils import structured_log

_LOG = logging.getLogger("ocr_client")

SUBSCRIPTION_KEY_HEADER = "Ocp-Apim-Subscription-Key"
OPERATION_LOCATION_HEADER = "Operation-Location"


@dataclass(frozen=True, slots=True)
class JobHandle:
    """Status-poll address of one in-flight analysis job."""

    operation_location: str
    document_id: str
    submitted_at: float = field(default_factory=time.time)


def _backend_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            code = error.get("code")
            message = error.get("message") or ""
            return f"{code}: {message}" if code else str(message)
    return str(payload)[:200]


class DocumentAnalysisClient:
    """Creates analysis jobs and fetches their status documents."""

    def __init__(
        self,
        *,
        endpoint: str,
        api_key: str,
        storage: StorageBackend,
        read_url_ttl_seconds: int,
        model_id: str = "prebuilt-read",
        api_version: str = "2023-07-31",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.model_id = model_id
        self.api_version = api_version
        self.read_url_ttl_seconds = read_url_ttl_seconds
        self._api_key = api_key
        self._storage = storage
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def analyze_url(self) -> str:
        return (
            f"{self.endpoint}/formrecognizer/documentModels/{self.model_id}:analyze"
            f"?api-version={self.api_version}"
        )

    @property
    def _headers(self) -> Dict[str, str]:
        return {SUBSCRIPTION_KEY_HEADER: self._api_key}

    async def submit(self, document_id: str, *, trace_id: str | None = None) -> JobHandle:
        """Start an analysis job for the stored document ``document_id``."""
        if not document_id or not document_id.strip():
            raise ValidationError("document_id must not be empty")

        try:
            source_url = await asyncio.to_thread(
                self._storage.get_read_reference, document_id, self.read_url_ttl_seconds
            )
        except StorageServiceError as exc:
            raise OCRSubmissionError(f"Read reference unavailable: {exc}") from exc

        try:
            response = await self._http.post(
                self.analyze_url,
                json={"urlSource": source_url},
                headers=self._headers,
            )
        except httpx.HTTPError as exc:
            raise OCRSubmissionError(f"Analysis request failed: {exc}") from exc

        if response.is_error:
            structured_log(
                _LOG,
                logging.ERROR,
                "ocr_submit_rejected",
                document_id=document_id,
                trace_id=trace_id,
                http_status=response.status_code,
            )
            raise OCRSubmissionError(
                f"Analysis request rejected ({response.status_code}): {_backend_error_message(response)}"
            )

        location = response.headers.get(OPERATION_LOCATION_HEADER)
        if not location:
            try:
                body = response.json()
            except ValueError:
                body = {}
            if isinstance(body, dict):
                location = body.get("operationLocation")
        if not location:
            raise OCRSubmissionError("Missing operation-location in analysis response")

        structured_log(
            _LOG,
            logging.INFO,
            "ocr_job_submitted",
            document_id=document_id,
            trace_id=trace_id,
            http_status=response.status_code,
        )
        return JobHandle(operation_location=location, document_id=document_id)

    async def fetch_status(self, handle: JobHandle) -> Dict[str, Any]:
        """Return the raw status document for ``handle``."""
        try:
            response = await self._http.get(handle.operation_location, headers=self._headers)
        except httpx.HTTPError as exc:
            raise AnalysisFailedError(f"Status query failed: {exc}") from exc
        if response.is_error:
            raise AnalysisFailedError(
                f"Status query rejected ({response.status_code}): {_backend_error_message(response)}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise AnalysisFailedError("Status response was not valid JSON") from exc
        if not isinstance(payload, dict):
            raise AnalysisFailedError("Status response was not a JSON object")
        return payload

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()


__all__ = ["DocumentAnalysisClient", "JobHandle"]
