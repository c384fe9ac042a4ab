"""Storage collaborator backed by Google Cloud Storage.

Source documents live in a private bucket and are exposed to the analysis
backend through short-lived V4 signed URLs. Narration audio is written to a
separate bucket that is created on first use.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import timedelta
from typing import Any
from urllib.parse import unquote, urlparse

from google.api_core import exceptions as gexc
from google.cloud import storage  # type: ignore[attr-defined]

from src.errors import PersistenceError, ValidationError
from src.services.interfaces import PersistedAudio, StorageBackend
from src.utils.logging_utils import structured_log

_LOG = logging.getLogger("storage_service")


class StorageServiceError(RuntimeError):
    """Raised when a read reference for a source document cannot be produced."""


def build_audio_blob_name(prefix: str = "narration", extension: str = "mp3") -> str:
    stamp = time.strftime("%Y%m%d%H%M%S", time.gmtime())
    return f"{prefix}-{stamp}-{uuid.uuid4().hex[:12]}.{extension}"


def document_id_from_url(file_url: str) -> str:
    """Derive the blob name of a source document from its URL.

    ``gs://bucket/path/doc.pdf`` yields ``path/doc.pdf``; for HTTP object URLs
    the last path segment is used.
    """
    parsed = urlparse((file_url or "").strip())
    if parsed.scheme == "gs":
        name = parsed.path.lstrip("/")
    else:
        name = parsed.path.rstrip("/").rsplit("/", 1)[-1]
    name = unquote(name)
    if not name:
        raise ValidationError(f"Cannot derive a document id from {file_url!r}")
    return name


def _validate_document_id(document_id: str) -> str:
    candidate = (document_id or "").strip()
    if not candidate:
        raise ValidationError("document_id must not be empty")
    if candidate.startswith("/") or ".." in candidate.split("/"):
        raise ValidationError("document_id must be a relative blob name")
    return candidate


class GCSStorageService(StorageBackend):
    def __init__(
        self,
        *,
        source_bucket: str,
        project_id: str | None = None,
        location: str = "US",
        audio_url_ttl_seconds: int = 3600,
        client: Any | None = None,
    ) -> None:
        self.source_bucket = source_bucket
        self.project_id = project_id or None
        self.location = location
        self.audio_url_ttl_seconds = audio_url_ttl_seconds
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = storage.Client(project=self.project_id)
        return self._client

    def get_read_reference(self, document_id: str, ttl_seconds: int) -> str:
        name = _validate_document_id(document_id)
        if ttl_seconds <= 0:
            raise ValidationError("Read reference TTL must be greater than zero")
        blob = self.client.bucket(self.source_bucket).blob(name)
        try:
            url = blob.generate_signed_url(
                version="v4",
                expiration=timedelta(seconds=ttl_seconds),
                method="GET",
            )
        except Exception as exc:  # noqa: BLE001 - signing errors vary by credential type
            raise StorageServiceError(f"Could not sign read URL for {name}: {exc}") from exc
        structured_log(
            _LOG,
            logging.INFO,
            "read_reference_issued",
            document_id=name,
            container=self.source_bucket,
            ttl_seconds=ttl_seconds,
        )
        return url

    def persist(
        self,
        data: bytes,
        container: str,
        content_type: str,
        *,
        blob_name: str | None = None,
    ) -> PersistedAudio:
        if not data:
            raise PersistenceError("Refusing to persist an empty artifact")
        name = blob_name or build_audio_blob_name()
        blob = self.client.bucket(container).blob(name)
        try:
            blob.upload_from_string(data, content_type=content_type)
        except gexc.GoogleAPICallError as exc:
            raise PersistenceError(f"Upload of {container}/{name} failed: {exc}") from exc
        except Exception as exc:  # noqa: BLE001 - transport errors surface as various types
            raise PersistenceError(f"Unexpected upload error for {container}/{name}: {exc}") from exc

        url = self._audio_url(blob)
        structured_log(
            _LOG,
            logging.INFO,
            "audio_persisted",
            blob_name=name,
            container=container,
            audio_bytes=len(data),
        )
        return PersistedAudio(blob_name=name, url=url, container=container)

    def _audio_url(self, blob: Any) -> str:
        if self.audio_url_ttl_seconds <= 0:
            return blob.public_url
        try:
            return blob.generate_signed_url(
                version="v4",
                expiration=timedelta(seconds=self.audio_url_ttl_seconds),
                method="GET",
            )
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Could not sign audio URL for {blob.name}: {exc}") from exc

    def provision_container(self, name: str) -> None:
        bucket = self.client.bucket(name)
        try:
            if bucket.exists():
                return
            self.client.create_bucket(bucket, location=self.location)
            structured_log(_LOG, logging.INFO, "container_created", container=name)
        except gexc.Conflict:
            # Created concurrently by another invocation.
            return
        except gexc.GoogleAPICallError as exc:
            raise PersistenceError(f"Could not provision container {name}: {exc}") from exc


__all__ = [
    "GCSStorageService",
    "StorageServiceError",
    "build_audio_blob_name",
    "document_id_from_url",
]
