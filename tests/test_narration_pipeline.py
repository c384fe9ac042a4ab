from __future__ import annotations

import asyncio

import pytest

from src.config import PipelineSettings
from src.errors import (
    AnalysisFailedError,
    InternalPipelineError,
    NoTextExtractedError,
    OCRSubmissionError,
    PersistenceError,
    PollTimeoutError,
    SynthesisError,
    ValidationError,
)
from src.services.narration_pipeline import PipelineStage
from tests.stubs.pipeline_stubs import FakeJobClient, FakeStorage, FakeTtsBackend, succeeded_payload

RUNNING = {"status": "running"}


def _assert_cleaned_up(harness) -> None:
    assert harness.scopes.scopes, "pipeline should open an artifact scope"
    assert all(scope.closed for scope in harness.scopes.scopes)
    assert harness.scopes.leftover_files() == []


@pytest.mark.asyncio
async def test_short_document_is_narrated_in_full(make_pipeline):
    harness = make_pipeline([RUNNING, succeeded_payload([["Hello", "World"]])])

    result = await harness.pipeline.run("book.pdf")

    assert result.extracted_chars == 11
    assert result.used_chars == 11
    assert result.voice == "en-US-Neural2-F"
    assert result.audio_url.startswith("https://storage.test/audio/")
    assert harness.tts.calls == [("Hello\nWorld", "en-US-Neural2-F")]
    assert harness.storage.persisted == [("audio", b"ID3-fake-mp3", "audio/mpeg")]
    assert harness.job_client.submitted == ["book.pdf"]
    assert result.stage_history == (
        PipelineStage.SUBMITTED,
        PipelineStage.POLLING,
        PipelineStage.ASSEMBLING,
        PipelineStage.BOUNDING,
        PipelineStage.SYNTHESIZING,
        PipelineStage.PERSISTING,
        PipelineStage.DONE,
    )
    _assert_cleaned_up(harness)


@pytest.mark.asyncio
async def test_long_document_is_cut_to_max_chars(make_pipeline):
    text = "abcdefghij" * 600
    harness = make_pipeline([succeeded_payload([[text]])])

    result = await harness.pipeline.run("long.pdf", "en-GB-Neural2-A")

    assert result.extracted_chars == 6000
    assert result.used_chars == 5000
    spoken, voice = harness.tts.calls[0]
    assert spoken == text[:5000]
    assert voice == "en-GB-Neural2-A"
    _assert_cleaned_up(harness)


@pytest.mark.asyncio
async def test_lines_from_several_pages_are_joined_with_newlines(make_pipeline):
    harness = make_pipeline([succeeded_payload([["a", "b"], ["c"]])])

    result = await harness.pipeline.run("pages.pdf")

    assert harness.tts.calls[0][0] == "a\nb\nc"
    assert result.extracted_chars == 5


@pytest.mark.asyncio
@pytest.mark.parametrize("pages", [[], [[]], [["   "]]])
async def test_document_without_text_never_reaches_synthesis(make_pipeline, pages):
    harness = make_pipeline([succeeded_payload(pages)])

    with pytest.raises(NoTextExtractedError) as excinfo:
        await harness.pipeline.run("blank.pdf")

    assert excinfo.value.stage == "assembling"
    assert harness.tts.calls == []
    assert harness.storage.persisted == []
    _assert_cleaned_up(harness)


@pytest.mark.asyncio
async def test_pending_job_times_out_after_max_attempts(make_pipeline):
    harness = make_pipeline([RUNNING], settings=PipelineSettings(poll_max_attempts=3, poll_interval=1.0))

    with pytest.raises(PollTimeoutError) as excinfo:
        await harness.pipeline.run("slow.pdf")

    assert excinfo.value.stage == "polling"
    assert harness.status.calls == 3
    assert harness.clock.elapsed <= 3.0
    assert harness.tts.calls == []
    _assert_cleaned_up(harness)


@pytest.mark.asyncio
async def test_failed_analysis_is_not_retried(make_pipeline):
    harness = make_pipeline([{"status": "failed", "error": {"message": "unsupported format"}}])

    with pytest.raises(AnalysisFailedError, match="unsupported format"):
        await harness.pipeline.run("bad.pdf")

    assert harness.status.calls == 1
    assert harness.clock.sleeps == []
    _assert_cleaned_up(harness)


@pytest.mark.asyncio
async def test_submission_failure_stops_before_polling(make_pipeline):
    harness = make_pipeline([RUNNING], job_client=FakeJobClient(error=OCRSubmissionError("401 bad key")))

    with pytest.raises(OCRSubmissionError) as excinfo:
        await harness.pipeline.run("book.pdf")

    assert excinfo.value.stage == "submitted"
    assert harness.status.calls == 0
    _assert_cleaned_up(harness)


@pytest.mark.asyncio
async def test_synthesis_failure_releases_audio_file(make_pipeline):
    harness = make_pipeline(
        [succeeded_payload([["Hello"]])], tts=FakeTtsBackend(error=RuntimeError("voice not found"))
    )

    with pytest.raises(SynthesisError) as excinfo:
        await harness.pipeline.run("book.pdf", "xx-bogus")

    assert excinfo.value.stage == "synthesizing"
    assert harness.storage.persisted == []
    _assert_cleaned_up(harness)


@pytest.mark.asyncio
async def test_persistence_failure_releases_audio_file(make_pipeline):
    harness = make_pipeline([succeeded_payload([["Hello"]])], storage=FakeStorage(fail_persist=True))

    with pytest.raises(PersistenceError) as excinfo:
        await harness.pipeline.run("book.pdf")

    assert excinfo.value.stage == "persisting"
    assert len(harness.tts.calls) == 1
    _assert_cleaned_up(harness)


@pytest.mark.asyncio
async def test_unexpected_errors_are_wrapped_as_internal(make_pipeline):
    harness = make_pipeline([RUNNING], job_client=FakeJobClient(error=KeyError("boom")))

    with pytest.raises(InternalPipelineError) as excinfo:
        await harness.pipeline.run("book.pdf")

    assert excinfo.value.stage == "submitted"
    assert isinstance(excinfo.value.__cause__, KeyError)
    _assert_cleaned_up(harness)


@pytest.mark.asyncio
@pytest.mark.parametrize("document_id", ["", "   "])
async def test_blank_document_id_is_rejected(make_pipeline, document_id):
    harness = make_pipeline([RUNNING])

    with pytest.raises(ValidationError):
        await harness.pipeline.run(document_id)

    assert harness.job_client.submitted == []
    _assert_cleaned_up(harness)


@pytest.mark.asyncio
async def test_audio_container_is_provisioned_once(make_pipeline):
    harness = make_pipeline([succeeded_payload([["Hello"]])])

    await harness.pipeline.run("one.pdf")
    await harness.pipeline.run("two.pdf")

    assert harness.storage.provisioned == ["audio"]
    assert len(harness.storage.persisted) == 2
    assert len(harness.scopes.scopes) == 2
    _assert_cleaned_up(harness)


@pytest.mark.asyncio
async def test_concurrent_first_runs_provision_the_container_once(make_pipeline):
    storage = FakeStorage(provision_delay=0.05)
    harness = make_pipeline([succeeded_payload([["Hello"]])], storage=storage)

    results = await asyncio.gather(*(harness.pipeline.run(f"doc-{i}.pdf") for i in range(4)))

    assert len(results) == 4
    assert storage.provision_calls == 1
    assert len(storage.persisted) == 4
    _assert_cleaned_up(harness)


@pytest.mark.asyncio
async def test_outcome_metrics_are_recorded(make_pipeline):
    class _RecordingMetrics:
        def __init__(self) -> None:
            self.runs: list[tuple[str, str]] = []
            self.attempts: list[int] = []
            self.text: list[tuple[int, int]] = []

        def record_run(self, outcome, stage):
            self.runs.append((outcome, stage))

        def observe_duration(self, seconds):
            assert seconds >= 0

        def observe_poll_attempts(self, attempts):
            self.attempts.append(attempts)

        def observe_text(self, extracted_chars, used_chars):
            self.text.append((extracted_chars, used_chars))

    harness = make_pipeline([RUNNING, succeeded_payload([["Hello"]])])
    metrics = _RecordingMetrics()
    harness.pipeline._metrics = metrics

    await harness.pipeline.run("ok.pdf")
    with pytest.raises(ValidationError):
        await harness.pipeline.run("")

    assert metrics.runs == [("succeeded", "done"), ("failed", "submitted")]
    assert metrics.attempts == [2]
    assert metrics.text == [(5, 5)]
