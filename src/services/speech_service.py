"""Speech synthesis: render bounded text to an MP3 file.

The synthesizer writes audio into a path allocated from the caller's
:class:`~src.utils.ephemeral.ArtifactScope`. It never deletes that file; the
pipeline orchestrator owns its lifetime.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from google.api_core import exceptions as gexc
from google.cloud import texttospeech

from src.errors import SynthesisError
from src.services.interfaces import TtsBackend
from src.utils.ephemeral import ArtifactScope
from src.utils.logging_utils import structured_log

_LOG = logging.getLogger("speech_service")

MP3_CONTENT_TYPE = "audio/mpeg"
DEFAULT_LANGUAGE_CODE = "en-US"
# Google Cloud TTS limit on SynthesisInput.text, in UTF-8 bytes.
MAX_REQUEST_BYTES = 5000


def language_code_for_voice(voice: str) -> str:
    """``en-US-Neural2-F`` -> ``en-US``; unknown shapes fall back to en-US."""
    parts = (voice or "").split("-")
    if len(parts) >= 3 and parts[0].isalpha() and parts[1].isalpha():
        return f"{parts[0]}-{parts[1]}"
    return DEFAULT_LANGUAGE_CODE


def split_for_request(text: str, max_bytes: int = MAX_REQUEST_BYTES) -> list[str]:
    """Split ``text`` into pieces of at most ``max_bytes`` UTF-8 bytes.

    Cuts fall between characters, right after the last whitespace of a piece
    when it has one. Joining the pieces gives back ``text`` unchanged.
    """
    if max_bytes < 4:
        raise ValueError("max_bytes must fit at least one character")
    if len(text.encode("utf-8")) <= max_bytes:
        return [text]

    pieces: list[str] = []
    start = 0
    size = 0
    last_space = -1
    for index, char in enumerate(text):
        width = len(char.encode("utf-8"))
        while size + width > max_bytes:
            cut = last_space + 1 if last_space >= start else index
            pieces.append(text[start:cut])
            start = cut
            size = len(text[start:index].encode("utf-8"))
            last_space = -1
        size += width
        if char.isspace():
            last_space = index
    if start < len(text):
        pieces.append(text[start:])
    return pieces


class GoogleTtsBackend(TtsBackend):
    """Google Cloud Text-to-Speech backend producing MP3 audio.

    Text over the per-request byte limit is sent as several requests; the MP3
    payloads are concatenated in order.
    """

    def __init__(
        self,
        *,
        client: Any | None = None,
        speaking_rate: float = 1.0,
        max_request_bytes: int = MAX_REQUEST_BYTES,
    ) -> None:
        self._client = client
        self.speaking_rate = speaking_rate
        self.max_request_bytes = max_request_bytes

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = texttospeech.TextToSpeechAsyncClient()
        return self._client

    async def synthesize_speech(self, text: str, voice: str) -> bytes:
        pieces = [piece for piece in split_for_request(text, self.max_request_bytes) if piece.strip()]
        voice_params = texttospeech.VoiceSelectionParams(
            language_code=language_code_for_voice(voice),
            name=voice,
        )
        audio_config = texttospeech.AudioConfig(
            audio_encoding=texttospeech.AudioEncoding.MP3,
            speaking_rate=self.speaking_rate,
        )
        audio: list[bytes] = []
        for index, piece in enumerate(pieces, start=1):
            try:
                response = await self.client.synthesize_speech(
                    input=texttospeech.SynthesisInput(text=piece),
                    voice=voice_params,
                    audio_config=audio_config,
                )
            except gexc.InvalidArgument as exc:
                raise SynthesisError(
                    f"Speech request {index}/{len(pieces)} rejected (voice={voice}): {exc}"
                ) from exc
            except gexc.GoogleAPICallError as exc:
                raise SynthesisError(f"Speech synthesis failed on request {index}/{len(pieces)}: {exc}") from exc
            audio.append(response.audio_content)
        return b"".join(audio)


@dataclass(frozen=True, slots=True)
class SynthesisArtifact:
    path: Path
    voice: str
    content_type: str
    size_bytes: int
    text_chars: int

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


class SpeechSynthesizer:
    def __init__(self, backend: TtsBackend, *, content_type: str = MP3_CONTENT_TYPE, suffix: str = ".mp3") -> None:
        self.backend = backend
        self.content_type = content_type
        self.suffix = suffix

    async def synthesize(
        self,
        text: str,
        voice: str,
        *,
        scope: ArtifactScope,
        trace_id: str | None = None,
    ) -> SynthesisArtifact:
        if not text or not text.strip():
            raise SynthesisError("Cannot synthesize empty text")
        if not voice or not voice.strip():
            raise SynthesisError("A voice name is required")

        sink = scope.allocate(self.suffix)
        try:
            audio = await self.backend.synthesize_speech(text, voice)
        except SynthesisError:
            raise
        except Exception as exc:  # noqa: BLE001 - any backend failure is a synthesis failure
            raise SynthesisError(f"Speech backend error: {exc}") from exc
        if not audio:
            raise SynthesisError("Speech backend returned no audio")

        try:
            await asyncio.to_thread(sink.write_bytes, audio)
        except OSError as exc:
            raise SynthesisError(f"Could not write audio to {sink}: {exc}") from exc

        structured_log(
            _LOG,
            logging.INFO,
            "speech_synthesized",
            trace_id=trace_id,
            voice=voice,
            used_chars=len(text),
            audio_bytes=len(audio),
        )
        return SynthesisArtifact(
            path=sink,
            voice=voice,
            content_type=self.content_type,
            size_bytes=len(audio),
            text_chars=len(text),
        )


__all__ = [
    "GoogleTtsBackend",
    "MAX_REQUEST_BYTES",
    "MP3_CONTENT_TYPE",
    "SpeechSynthesizer",
    "SynthesisArtifact",
    "language_code_for_voice",
    "split_for_request",
]
