"""FastAPI application entrypoint for the document narration service."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request

from src.api import build_api_router
from src.api.narrate import pipeline_error_response
from src.config import AppConfig, get_config
from src.errors import PipelineError
from src.logging_setup import configure_logging, parse_log_level
from src.services.job_poller import JobPoller
from src.services.metrics import NullMetrics, PrometheusMetrics
from src.services.narration_pipeline import NarrationPipelineService
from src.services.ocr_client import DocumentAnalysisClient
from src.services.speech_service import GoogleTtsBackend, SpeechSynthesizer
from src.services.storage_service import GCSStorageService
from src.startup import hydrate_google_credentials_file
from src.utils.logging_utils import structured_log

_API_LOG = logging.getLogger("api")


def _health_payload() -> dict[str, str]:
    return {"status": "ok"}


def build_pipeline(cfg: AppConfig, *, metrics=None) -> tuple[NarrationPipelineService, DocumentAnalysisClient]:
    """Wire the production collaborators from explicit configuration."""
    storage = GCSStorageService(
        source_bucket=cfg.source_bucket,
        project_id=cfg.project_id,
        location=cfg.bucket_location,
        audio_url_ttl_seconds=cfg.audio_url_ttl_seconds,
    )
    ocr_client = DocumentAnalysisClient(
        endpoint=cfg.ocr_endpoint,
        api_key=cfg.ocr_api_key or "",
        storage=storage,
        read_url_ttl_seconds=cfg.read_url_ttl_seconds,
        model_id=cfg.ocr_model_id,
        api_version=cfg.ocr_api_version,
        timeout=cfg.http_timeout_seconds,
    )
    pipeline = NarrationPipelineService(
        job_client=ocr_client,
        poller=JobPoller(ocr_client),
        synthesizer=SpeechSynthesizer(GoogleTtsBackend()),
        storage=storage,
        settings=cfg.pipeline_settings(),
        metrics=metrics,
    )
    return pipeline, ocr_client


def create_app() -> FastAPI:
    configure_logging(level=parse_log_level(os.getenv("LOG_LEVEL")))
    hydrate_google_credentials_file()
    get_config.cache_clear()
    cfg = get_config()

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        cfg.validate_required()
        structured_log(
            _API_LOG,
            logging.INFO,
            "service_startup",
            max_chars=cfg.max_chars,
            max_attempts=cfg.poll_max_attempts,
            poll_interval=cfg.poll_interval_seconds,
            voice=cfg.default_voice,
        )
        try:
            yield
        finally:
            await app.state.ocr_client.aclose()

    app = FastAPI(title="Document Narration API", version="1.0.0", lifespan=_lifespan)
    app.state.config = cfg
    app.state.metrics = PrometheusMetrics.instrument_app(app) if cfg.enable_metrics else NullMetrics()

    pipeline, ocr_client = build_pipeline(cfg, metrics=app.state.metrics)
    app.state.narration_pipeline = pipeline
    app.state.ocr_client = ocr_client

    @app.exception_handler(PipelineError)
    async def _pipeline_error_handler(request: Request, exc: PipelineError):
        return pipeline_error_response(request, exc)

    @app.get("/healthz", summary="Healthz")
    async def healthz():
        return _health_payload()

    @app.get("/readyz", include_in_schema=False)
    async def readyz():
        return _health_payload()

    app.include_router(build_api_router())
    return app


__all__ = ["create_app", "build_pipeline"]
