"""
Prometheus Metrics for the Narration Pipeline.

Metrics Exposed:
    narrator_events_total                 - Data events received, by kind
    narrator_events_dropped_total         - Events not narrated, by reason
    narrator_metadata_lookups_total       - Profile lookups, by result (hit/fetched/failed)
    narrator_synthesis_attempts_total     - Synthesis attempts, by outcome
    narrator_narrations_total             - say() outcomes, by status
    narrator_synthesis_duration_seconds   - Latency of a full say() call
    narrator_playback_queue_depth         - Buffers waiting for the audio device

Usage:
    from nostr_narrator.core.metrics import metrics

    metrics.record_event("text_note")
    metrics.record_drop("stale")
    metrics.record_narration("success", duration=1.2)

    # Expose on :9464/metrics (done by the CLI when metrics.enabled is set)
    metrics.start_exporter(9464)
"""
from __future__ import annotations

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)


class NarratorMetrics:
    """
    Metric collection for the triage loop, synthesizer and playback queue.

    Uses its own CollectorRegistry so tests can create fresh instances
    without tripping over duplicate registrations.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self._registry = registry or CollectorRegistry()
        self._exporter_port: Optional[int] = None

        self._events_total = Counter(
            "narrator_events_total",
            "Data events received from relays",
            ["kind"],
            registry=self._registry,
        )
        self._events_dropped = Counter(
            "narrator_events_dropped_total",
            "Events received but not narrated",
            ["reason"],
            registry=self._registry,
        )
        self._metadata_lookups = Counter(
            "narrator_metadata_lookups_total",
            "Author metadata lookups",
            ["result"],
            registry=self._registry,
        )
        self._synthesis_attempts = Counter(
            "narrator_synthesis_attempts_total",
            "Individual synthesis attempts against the speech backend",
            ["outcome"],
            registry=self._registry,
        )
        self._narrations = Counter(
            "narrator_narrations_total",
            "Completed say() calls",
            ["status"],
            registry=self._registry,
        )
        self._synthesis_duration = Histogram(
            "narrator_synthesis_duration_seconds",
            "Duration of a say() call from query to enqueue",
            buckets=(0.25, 0.5, 1.0, 2.0, 4.0, 8.0, 16.0, 32.0),
            registry=self._registry,
        )
        self._queue_depth = Gauge(
            "narrator_playback_queue_depth",
            "Audio buffers waiting for playback",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_event(self, kind: str) -> None:
        self._events_total.labels(kind=kind).inc()

    def record_drop(self, reason: str) -> None:
        self._events_dropped.labels(reason=reason).inc()

    def record_metadata(self, result: str) -> None:
        """result is one of "hit", "fetched", "failed"."""
        self._metadata_lookups.labels(result=result).inc()

    def record_attempt(self, outcome: str) -> None:
        """outcome is one of "ok", "http_error", "decode_error"."""
        self._synthesis_attempts.labels(outcome=outcome).inc()

    def record_narration(self, status: str, duration: Optional[float] = None) -> None:
        self._narrations.labels(status=status).inc()
        if duration is not None:
            self._synthesis_duration.observe(duration)

    def set_queue_depth(self, depth: int) -> None:
        self._queue_depth.set(depth)

    def start_exporter(self, port: int) -> None:
        """Serve /metrics on the given port from a daemon thread (idempotent)."""
        if self._exporter_port is not None:
            return
        start_http_server(port, registry=self._registry)
        self._exporter_port = port

    def get_metrics_response(self) -> tuple[bytes, str]:
        """Get metrics in Prometheus text format."""
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Process-wide instance
metrics = NarratorMetrics()
