"""Prometheus metrics for translations, stage durations, queues and errors."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from src.voice_translator.models.pipeline import PipelineResult
from src.voice_translator.models.queue import JobState, QueueStats

PREFIX = "voice_translator"
DURATION_BUCKETS = (0.1, 0.5, 1, 2, 5, 10, 30)


class PipelineMetrics:
    """Owns one registry so each app instance exports only its own series."""

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()

        self.translations = Counter(
            f"{PREFIX}_translations_total",
            "Translation branches by outcome",
            ["kind", "source_language", "target_language", "outcome"],
            registry=self.registry,
        )
        self.stage_duration = Histogram(
            f"{PREFIX}_stage_duration_seconds",
            "Wall-clock duration of each pipeline stage",
            ["kind", "stage"],
            buckets=DURATION_BUCKETS,
            registry=self.registry,
        )
        self.pipeline_duration = Histogram(
            f"{PREFIX}_pipeline_duration_seconds",
            "End-to-end duration of a translation request",
            ["kind"],
            buckets=DURATION_BUCKETS,
            registry=self.registry,
        )
        self.queue_jobs = Gauge(
            f"{PREFIX}_queue_jobs",
            "Jobs per queue and state (terminal states are running totals)",
            ["queue_type", "state"],
            registry=self.registry,
        )
        self.errors = Counter(
            f"{PREFIX}_errors_total",
            "Requests that failed before producing a result",
            ["type", "source"],
            registry=self.registry,
        )

    def observe_result(self, result: PipelineResult, kind: str) -> None:
        source = result.detection.detected_language
        for branch in result.branches:
            self.translations.labels(
                kind=kind,
                source_language=source,
                target_language=branch.target_language,
                outcome="succeeded" if branch.succeeded else "failed",
            ).inc()
        for stage, duration_ms in result.stage_timings.items():
            self.stage_duration.labels(kind=kind, stage=stage).observe(duration_ms / 1000)
        self.pipeline_duration.labels(kind=kind).observe(result.total_duration_ms / 1000)

    def record_error(self, exc: BaseException, source: str) -> None:
        self.errors.labels(type=type(exc).__name__, source=source).inc()

    def update_queue_stats(self, stats: dict[str, QueueStats]) -> None:
        for queue_type, queue_stats in stats.items():
            for state in JobState:
                self.queue_jobs.labels(queue_type=queue_type, state=state.value).set(
                    getattr(queue_stats, state.value)
                )

    def render(self) -> bytes:
        return generate_latest(self.registry)

    def summary(self) -> dict[str, Any]:
        """Condensed view for the dashboard endpoint."""
        translations = {"succeeded": 0.0, "failed": 0.0}
        for metric in self.translations.collect():
            for sample in metric.samples:
                if sample.name.endswith("_total"):
                    translations[sample.labels["outcome"]] += sample.value

        errors = 0.0
        for metric in self.errors.collect():
            errors += sum(s.value for s in metric.samples if s.name.endswith("_total"))

        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "total_translations": int(translations["succeeded"] + translations["failed"]),
            "succeeded_translations": int(translations["succeeded"]),
            "failed_translations": int(translations["failed"]),
            "errors": int(errors),
            "metrics_text": self.render().decode("utf-8"),
        }
