"""Configuration module for the document narration service.

Environment variables (env names in parentheses):
 - OCR_ENDPOINT / DOCINTEL_ENDPOINT: base URL of the document analysis backend
 - OCR_API_KEY / DOCINTEL_KEY: subscription key (``sm://`` references allowed)
 - OCR_MODEL_ID, OCR_API_VERSION: analysis model and REST API version
 - SOURCE_BUCKET, AUDIO_BUCKET: containers for uploaded documents and audio
 - MAX_CHARS, OCR_POLL_MAX_ATTEMPTS, OCR_POLL_INTERVAL_SECONDS, DEFAULT_VOICE
 - READ_URL_TTL_SECONDS, AUDIO_URL_TTL_SECONDS, HTTP_TIMEOUT_SECONDS
 - GOOGLE_APPLICATION_CREDENTIALS (used implicitly by Google clients)

Core pipeline code never reads the environment; it receives the explicit
:class:`PipelineSettings` built by :meth:`AppConfig.pipeline_settings`.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.utils.secrets import resolve_secret

DEFAULT_MAX_CHARS = 5000
DEFAULT_POLL_MAX_ATTEMPTS = 30
DEFAULT_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_VOICE = "en-US-Neural2-F"


def parse_bool(value: str | None) -> bool:
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    """Knobs consumed by the narration pipeline."""

    max_chars: int = DEFAULT_MAX_CHARS
    poll_max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    default_voice: str = DEFAULT_VOICE
    audio_container: str = "audio"

    @property
    def poll_budget_seconds(self) -> float:
        return self.poll_max_attempts * self.poll_interval


class AppConfig(BaseSettings):
    project_id: str = Field('', validation_alias='PROJECT_ID')
    ocr_endpoint: str = Field('', validation_alias=AliasChoices('OCR_ENDPOINT', 'DOCINTEL_ENDPOINT'))
    ocr_api_key: str | None = Field(None, validation_alias=AliasChoices('OCR_API_KEY', 'DOCINTEL_KEY'))
    ocr_model_id: str = Field('prebuilt-read', validation_alias='OCR_MODEL_ID')
    ocr_api_version: str = Field('2023-07-31', validation_alias='OCR_API_VERSION')
    source_bucket: str = Field('books', validation_alias='SOURCE_BUCKET')
    audio_bucket: str = Field('audio', validation_alias='AUDIO_BUCKET')
    bucket_location: str = Field('US', validation_alias='BUCKET_LOCATION')
    max_chars: int = Field(DEFAULT_MAX_CHARS, validation_alias='MAX_CHARS')
    poll_max_attempts: int = Field(DEFAULT_POLL_MAX_ATTEMPTS, validation_alias='OCR_POLL_MAX_ATTEMPTS')
    poll_interval_seconds: float = Field(DEFAULT_POLL_INTERVAL_SECONDS, validation_alias='OCR_POLL_INTERVAL_SECONDS')
    default_voice: str = Field(DEFAULT_VOICE, validation_alias='DEFAULT_VOICE')
    # Must exceed read_url_budget_seconds.
    read_url_ttl_seconds: int = Field(30 * 60, validation_alias='READ_URL_TTL_SECONDS')
    audio_url_ttl_seconds: int = Field(3600, validation_alias='AUDIO_URL_TTL_SECONDS')
    http_timeout_seconds: float = Field(30.0, validation_alias='HTTP_TIMEOUT_SECONDS')
    google_application_credentials: str | None = Field(None, validation_alias='GOOGLE_APPLICATION_CREDENTIALS')
    enable_metrics_raw: str | bool | None = Field(True, validation_alias='ENABLE_METRICS')

    model_config = SettingsConfigDict(env_file='.env', extra='ignore', case_sensitive=False)

    def model_post_init(self, __context: Any) -> None:  # pylint: disable=W0221
        """Resolve ``sm://`` secret references once the model is populated."""
        project_hint = self.project_id or os.getenv("PROJECT_ID")
        for field_name in ("ocr_api_key", "ocr_endpoint"):
            value = getattr(self, field_name, None)
            resolved = resolve_secret(value, project_id=project_hint)
            if resolved is not None:
                setattr(self, field_name, resolved)

    @property
    def enable_metrics(self) -> bool:
        raw = self.enable_metrics_raw
        if isinstance(raw, bool):
            return raw
        return parse_bool(str(raw))

    @property
    def read_url_budget_seconds(self) -> float:
        """Worst case from submit to the last status query: polling sleeps plus
        one HTTP timeout for the submit call and for every status query."""
        settings = self.pipeline_settings()
        return settings.poll_budget_seconds + self.http_timeout_seconds * (settings.poll_max_attempts + 1)

    def pipeline_settings(self) -> PipelineSettings:
        return PipelineSettings(
            max_chars=self.max_chars,
            poll_max_attempts=self.poll_max_attempts,
            poll_interval=self.poll_interval_seconds,
            default_voice=self.default_voice,
            audio_container=self.audio_bucket,
        )

    def validate_required(self) -> None:
        required_pairs = [
            ("ocr_endpoint", self.ocr_endpoint, "OCR_ENDPOINT"),
            ("ocr_api_key", self.ocr_api_key, "OCR_API_KEY"),
            ("source_bucket", self.source_bucket, "SOURCE_BUCKET"),
            ("audio_bucket", self.audio_bucket, "AUDIO_BUCKET"),
            ("default_voice", self.default_voice, "DEFAULT_VOICE"),
        ]
        missing = [env_name for _name, value, env_name in required_pairs if not value]
        if missing:
            raise RuntimeError("Missing required configuration values: " + ", ".join(sorted(missing)))

        if not self.ocr_endpoint.startswith(("https://", "http://")):
            raise RuntimeError("OCR_ENDPOINT must be an http(s) URL")
        if self.max_chars <= 0:
            raise RuntimeError("MAX_CHARS must be greater than zero")
        if self.poll_max_attempts <= 0:
            raise RuntimeError("OCR_POLL_MAX_ATTEMPTS must be greater than zero")
        if self.poll_interval_seconds < 0:
            raise RuntimeError("OCR_POLL_INTERVAL_SECONDS must not be negative")
        if self.http_timeout_seconds <= 0:
            raise RuntimeError("HTTP_TIMEOUT_SECONDS must be greater than zero")

        budget = self.read_url_budget_seconds
        if self.read_url_ttl_seconds <= budget:
            raise RuntimeError(
                f"READ_URL_TTL_SECONDS ({self.read_url_ttl_seconds}) must exceed the worst-case OCR wait "
                f"({budget:g}s of polling and HTTP timeouts)"
            )


@lru_cache
def get_config() -> AppConfig:
    return AppConfig()  # type: ignore[call-arg]


__all__ = ["AppConfig", "PipelineSettings", "get_config", "parse_bool"]
