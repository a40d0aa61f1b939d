"""Tests for Prometheus metrics."""
from __future__ import annotations

from nostr_narrator.core.metrics import NarratorMetrics, metrics


def _value(m: NarratorMetrics, name: str, **labels) -> float:
    value = m.registry.get_sample_value(name, labels or None)
    return value or 0.0


class TestNarratorMetrics:

    def test_global_instance_exists(self):
        assert isinstance(metrics, NarratorMetrics)

    def test_fresh_instances_do_not_collide(self):
        NarratorMetrics()
        NarratorMetrics()

    def test_counters(self):
        m = NarratorMetrics()
        m.record_event("text_note")
        m.record_event("text_note")
        m.record_drop("stale")
        m.record_metadata("hit")
        m.record_attempt("decode_error")

        assert _value(m, "narrator_events_total", kind="text_note") == 2
        assert _value(m, "narrator_events_dropped_total", reason="stale") == 1
        assert _value(m, "narrator_metadata_lookups_total", result="hit") == 1
        assert _value(m, "narrator_synthesis_attempts_total", outcome="decode_error") == 1

    def test_narration_duration(self):
        m = NarratorMetrics()
        m.record_narration("success", duration=0.7)
        m.record_narration("retry_limit")

        assert _value(m, "narrator_narrations_total", status="success") == 1
        assert _value(m, "narrator_narrations_total", status="retry_limit") == 1
        assert _value(m, "narrator_synthesis_duration_seconds_count") == 1
        assert _value(m, "narrator_synthesis_duration_seconds_sum") == 0.7

    def test_queue_depth(self):
        m = NarratorMetrics()
        m.set_queue_depth(4)
        assert _value(m, "narrator_playback_queue_depth") == 4

    def test_metrics_response(self):
        m = NarratorMetrics()
        m.record_event("reaction")
        body, content_type = m.get_metrics_response()
        assert b"narrator_events_total" in body
        assert content_type.startswith("text/plain")
