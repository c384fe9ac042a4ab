"""Shared interfaces used across the narration services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class PersistedAudio:
    blob_name: str
    url: str
    container: str


class StorageBackend(Protocol):
    """Object storage collaborator holding source documents and audio."""

    def get_read_reference(self, document_id: str, ttl_seconds: int) -> str:
        """Return a time-limited read URL for a private source document."""

    def persist(
        self,
        data: bytes,
        container: str,
        content_type: str,
        *,
        blob_name: str | None = None,
    ) -> PersistedAudio:
        """Durably store ``data`` and return its blob name and URL."""

    def provision_container(self, name: str) -> None:
        """Create the container when absent; safe to call repeatedly."""


class TtsBackend(Protocol):
    """Text-to-speech engine returning encoded audio bytes."""

    async def synthesize_speech(self, text: str, voice: str) -> bytes: ...


class MetricsClient(Protocol):
    """Narration outcome and size metrics."""

    def record_run(self, outcome: str, stage: str) -> None: ...

    def observe_duration(self, seconds: float) -> None: ...

    def observe_poll_attempts(self, attempts: int) -> None: ...

    def observe_text(self, extracted_chars: int, used_chars: int) -> None: ...


__all__ = ["PersistedAudio", "StorageBackend", "TtsBackend", "MetricsClient"]
