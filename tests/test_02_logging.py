"""Tests for the structured logging package."""
from __future__ import annotations

import io
import json
import logging
import os
from unittest.mock import patch


class TestLevelCoercion:
    """Level coercion from various input types."""

    def test_level_from_int(self):
        from nostr_narrator.core.logging import LogLevel, coerce_level

        assert coerce_level(1) == LogLevel.MINIMAL
        assert coerce_level(4) == LogLevel.DEBUG

    def test_level_from_names(self):
        from nostr_narrator.core.logging import LogLevel, coerce_level

        assert coerce_level("verbose") == LogLevel.VERBOSE
        assert coerce_level("INFO") == LogLevel.NORMAL
        assert coerce_level("WARNING") == LogLevel.MINIMAL
        assert coerce_level("3") == LogLevel.VERBOSE

    def test_invalid_level_defaults_to_normal(self):
        from nostr_narrator.core.logging import LogLevel, coerce_level

        assert coerce_level("loud") == LogLevel.NORMAL
        assert coerce_level(None) == LogLevel.NORMAL
        assert coerce_level(logging.WARNING) == LogLevel.MINIMAL


class TestLevelFiltering:
    """Messages above the configured level are suppressed."""

    def test_level_filtering_minimal(self):
        from nostr_narrator.core.logging import configure_logging, error, get_logger, info, speak

        captured = io.StringIO()
        with patch("sys.stdout", captured):
            configure_logging(level=1, force=True)
            log = get_logger("test_minimal")

            info(log, "info message")
            speak(log, "speak message")
            error(log, "error message")

        output = captured.getvalue()
        assert "error message" in output
        assert "info message" not in output
        assert "speak message" not in output

    def test_level_filtering_verbose(self):
        from nostr_narrator.core.logging import configure_logging, debug, get_logger, info, verbose

        captured = io.StringIO()
        with patch("sys.stdout", captured):
            configure_logging(level=3, force=True)
            log = get_logger("test_verbose")

            info(log, "info message")
            verbose(log, "verbose message")
            debug(log, "debug message")

        output = captured.getvalue()
        assert "info message" in output
        assert "verbose message" in output
        assert "debug message" not in output

    def test_fields_rendered(self):
        from nostr_narrator.core.logging import configure_logging, get_logger, warn

        captured = io.StringIO()
        with patch("sys.stdout", captured):
            configure_logging(level=2, force=True)
            warn(get_logger("test_fields"), "metadata_unavailable", author="3bf0c63f")

        assert "author=3bf0c63f" in captured.getvalue()


class TestCorrelationId:
    """The id of the event being handled is attached to log lines."""

    def test_correlation_id_in_console_output(self):
        from nostr_narrator.core.logging import configure_logging, get_logger, info, set_correlation_id

        captured = io.StringIO()
        with patch("sys.stdout", captured):
            configure_logging(level=2, force=True)
            set_correlation_id("abcd1234")
            try:
                info(get_logger("test_cid"), "narrating")
            finally:
                set_correlation_id("-")

        assert "(abcd1234)" in captured.getvalue()


class TestColors:
    """Console coloring follows the flag set by configure_logging()."""

    def test_colors_applied_when_enabled(self, monkeypatch):
        import nostr_narrator.core.logging as log_module
        from nostr_narrator.core.logging import Colors, configure_logging, get_logger, info

        captured = io.StringIO()
        with patch("sys.stdout", captured):
            configure_logging(level=2, force=True)
            monkeypatch.setattr(log_module, "_USE_COLORS", True)
            info(get_logger("test_colors_on"), "painted")

        assert Colors.BRIGHT_CYAN in captured.getvalue()

    def test_no_color_env(self):
        from nostr_narrator.core.logging import configure_logging, get_logger, info

        captured = io.StringIO()
        with patch.dict(os.environ, {"NO_COLOR": "1"}), patch("sys.stdout", captured):
            configure_logging(level=2, force=True)
            info(get_logger("test_colors_off"), "plain")

        assert "plain" in captured.getvalue()
        assert "\033[" not in captured.getvalue()


class TestEnvOverride:

    def test_env_override_log_level(self):
        from nostr_narrator.core.logging import LogLevel, configure_logging, get_level

        with patch.dict(os.environ, {"NARRATOR_LOG_LEVEL": "4"}):
            configure_logging(force=True)
            assert get_level() == LogLevel.DEBUG
        configure_logging(level=2, force=True)


def test_logging_jsonl_persistence(monkeypatch, tmp_path):
    from nostr_narrator.core.logging import configure_logging, get_logger, info, set_correlation_id

    monkeypatch.setenv("NARRATOR_LOG_DIR", str(tmp_path))
    monkeypatch.setenv("NARRATOR_JSONL_FILE", "test.jsonl")

    try:
        configure_logging(level=2, force=True)
        log = get_logger("test")
        set_correlation_id("ev-1")
        info(log, "hello", event="logging_test", relay="wss://r.example")

        for handler in logging.getLogger().handlers:
            handler.flush()

        log_path = tmp_path / "test.jsonl"
        assert log_path.exists()

        payload = json.loads(log_path.read_text(encoding="utf-8").strip().splitlines()[-1])
        assert payload["message"] == "hello"
        assert payload["cid"] == "ev-1"
        assert payload["event"] == "logging_test"
        assert payload["tag"] == "INFO"
        assert payload["extra"]["relay"] == "wss://r.example"
    finally:
        set_correlation_id("-")
        for handler in logging.getLogger().handlers:
            handler.close()
        monkeypatch.delenv("NARRATOR_LOG_DIR")
        configure_logging(level=2, force=True)
