from fastapi import FastAPI
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from src.services.metrics import NullMetrics, PrometheusMetrics


def _sample(metrics: PrometheusMetrics, name: str, **labels) -> float | None:
    return metrics.registry.get_sample_value(name, labels or None)


def test_run_outcomes_are_counted_by_stage():
    metrics = PrometheusMetrics(registry=CollectorRegistry())
    metrics.record_run("succeeded", "done")
    metrics.record_run("failed", "polling")
    metrics.record_run("failed", "polling")

    assert _sample(metrics, "narrations_total", outcome="succeeded", stage="done") == 1.0
    assert _sample(metrics, "narrations_total", outcome="failed", stage="polling") == 2.0


def test_text_and_poll_histograms():
    metrics = PrometheusMetrics(registry=CollectorRegistry())
    metrics.observe_text(6000, 5000)
    metrics.observe_poll_attempts(3)
    metrics.observe_duration(4.2)

    assert _sample(metrics, "narration_text_chars_sum", kind="extracted") == 6000.0
    assert _sample(metrics, "narration_text_chars_sum", kind="used") == 5000.0
    assert _sample(metrics, "narration_ocr_poll_attempts_count") == 1.0
    assert _sample(metrics, "narration_duration_seconds_sum") == 4.2


def test_instrument_app_registers_endpoint_once():
    app = FastAPI()
    metrics = PrometheusMetrics(registry=CollectorRegistry())
    assert PrometheusMetrics.instrument_app(app, metrics) is metrics
    assert PrometheusMetrics.instrument_app(app) is metrics
    assert [route.path for route in app.routes].count("/metrics") == 1

    metrics.record_run("succeeded", "done")
    response = TestClient(app).get("/metrics")

    assert response.status_code == 200
    assert 'narrations_total{outcome="succeeded",stage="done"} 1.0' in response.text


def test_null_metrics_accepts_calls():
    null_metrics = NullMetrics()
    null_metrics.record_run("failed", "submitted")
    null_metrics.observe_duration(0.1)
    null_metrics.observe_poll_attempts(2)
    null_metrics.observe_text(10, 10)
