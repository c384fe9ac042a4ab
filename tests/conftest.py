from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Sequence

import pytest

from src.config import PipelineSettings
from src.services.job_poller import JobPoller
from src.services.narration_pipeline import NarrationPipelineService
from src.services.speech_service import SpeechSynthesizer
from tests.stubs.pipeline_stubs import (
    FakeClock,
    FakeJobClient,
    FakeStorage,
    FakeTtsBackend,
    ScopeRecorder,
    ScriptedStatusSource,
)


@dataclass
class PipelineHarness:
    pipeline: NarrationPipelineService
    status: ScriptedStatusSource
    job_client: FakeJobClient
    tts: FakeTtsBackend
    storage: FakeStorage
    clock: FakeClock
    scopes: ScopeRecorder


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_pipeline(tmp_path, fake_clock):
    artifacts_dir = tmp_path / "artifacts"
    artifacts_dir.mkdir()

    def _factory(
        payloads: Sequence[Dict[str, Any]],
        *,
        settings: PipelineSettings | None = None,
        job_client: FakeJobClient | None = None,
        tts: FakeTtsBackend | None = None,
        storage: FakeStorage | None = None,
    ) -> PipelineHarness:
        status = ScriptedStatusSource(payloads)
        job_client = job_client or FakeJobClient()
        tts = tts or FakeTtsBackend()
        storage = storage or FakeStorage()
        scopes = ScopeRecorder(artifacts_dir)
        pipeline = NarrationPipelineService(
            job_client=job_client,
            poller=JobPoller(status, sleep=fake_clock.sleep),
            synthesizer=SpeechSynthesizer(tts),
            storage=storage,
            settings=settings or PipelineSettings(poll_max_attempts=3, poll_interval=1.0),
            scope_factory=scopes,
        )
        return PipelineHarness(pipeline, status, job_client, tts, storage, fake_clock, scopes)

    return _factory
