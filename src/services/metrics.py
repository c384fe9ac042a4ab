"""Prometheus metrics for narration runs.

Four series are exported:

- ``narrations_total{outcome, stage}``: finished runs. ``stage`` is ``done``
  for successes and the failing stage otherwise.
- ``narration_duration_seconds``: wall time of successful runs.
- ``narration_ocr_poll_attempts``: status queries spent per analysis job.
- ``narration_text_chars{kind}``: extracted vs. spoken characters.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.responses import PlainTextResponse

from .interfaces import MetricsClient

LOG = logging.getLogger(__name__)

_DURATION_BUCKETS = (1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0, 300.0)
_ATTEMPT_BUCKETS = (1, 2, 3, 5, 10, 20, 30, 60)
_CHAR_BUCKETS = (100, 500, 1000, 2500, 5000, 10000, 50000)


class PrometheusMetrics(MetricsClient):
    _DEFAULT_INSTANCE: ClassVar["PrometheusMetrics | None"] = None

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.registry = registry
        self._runs = Counter(
            "narrations_total",
            "Finished narration runs by outcome",
            ["outcome", "stage"],
            registry=registry,
        )
        self._duration = Histogram(
            "narration_duration_seconds",
            "Wall time of successful narration runs",
            buckets=_DURATION_BUCKETS,
            registry=registry,
        )
        self._poll_attempts = Histogram(
            "narration_ocr_poll_attempts",
            "Status queries issued per OCR analysis job",
            buckets=_ATTEMPT_BUCKETS,
            registry=registry,
        )
        self._chars = Histogram(
            "narration_text_chars",
            "Characters extracted by OCR and handed to speech synthesis",
            ["kind"],
            buckets=_CHAR_BUCKETS,
            registry=registry,
        )

    def record_run(self, outcome: str, stage: str) -> None:
        self._runs.labels(outcome=outcome, stage=stage).inc()

    def observe_duration(self, seconds: float) -> None:
        self._duration.observe(seconds)

    def observe_poll_attempts(self, attempts: int) -> None:
        self._poll_attempts.observe(attempts)

    def observe_text(self, extracted_chars: int, used_chars: int) -> None:
        self._chars.labels(kind="extracted").observe(extracted_chars)
        self._chars.labels(kind="used").observe(used_chars)

    def render(self) -> bytes:
        return generate_latest(self.registry)

    @classmethod
    def default(cls) -> "PrometheusMetrics":
        if cls._DEFAULT_INSTANCE is None:
            cls._DEFAULT_INSTANCE = cls()
        return cls._DEFAULT_INSTANCE

    @classmethod
    def instrument_app(cls, app: Any, metrics: "PrometheusMetrics | None" = None) -> "PrometheusMetrics":
        """Expose ``metrics`` (default: the process-wide instance) at /metrics."""
        metrics = metrics or cls.default()
        if getattr(app.state, "_prometheus_instrumented", False):
            return app.state.metrics

        @app.get("/metrics", include_in_schema=False)
        async def _metrics_endpoint():
            return PlainTextResponse(metrics.render().decode("utf-8"), media_type=CONTENT_TYPE_LATEST)

        app.state._prometheus_instrumented = True
        app.state.metrics = metrics
        return metrics


class NullMetrics(MetricsClient):
    """Discards every observation."""

    def record_run(self, outcome: str, stage: str) -> None:
        LOG.debug("Narration outcome ignored: %s at %s", outcome, stage)

    def observe_duration(self, seconds: float) -> None:
        return None

    def observe_poll_attempts(self, attempts: int) -> None:
        return None

    def observe_text(self, extracted_chars: int, used_chars: int) -> None:
        return None


__all__ = ["PrometheusMetrics", "NullMetrics"]
