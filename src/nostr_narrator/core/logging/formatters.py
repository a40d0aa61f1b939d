"""
Log Formatters for JSON and Console Output.

    JsonlFormatter: one JSON object per line, for the optional log file
    ColoredConsoleFormatter: human-readable line for the terminal

Output Examples:
    JSONL:
        {"ts":"2026-10-19T21:04:11+09:00","level":2,"tag":"SPEAK","message":"narrate","cid":"3bf0c63f","extra":{"text":"..."}}

    Console:
        21:04:11 [ SPEAK ] (3bf0c63f) narrate text=アリスさん、おはよう
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict

from .colors import Colors, get_tag_color


def _use_colors() -> bool:
    # Read through the package so tests can flip the flag at runtime
    import nostr_narrator.core.logging as log_module
    return getattr(log_module, "_USE_COLORS", False)


def _paint(text: str, color: str) -> str:
    if not _use_colors():
        return text
    return f"{color}{text}{Colors.RESET}"


class JsonlFormatter(logging.Formatter):
    """
    Format log records as JSON Lines.

    Keys: ts, level (1-4), tag, message, cid, and optionally event,
    seconds and extra.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).astimezone().isoformat()

        payload: Dict[str, Any] = {
            "ts": ts,
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "cid": getattr(record, "cid", "-"),
        }

        event = getattr(record, "event", None)
        if event:
            payload["event"] = event

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Format log records with ANSI colors for the terminal.

    Format:
        HH:MM:SS [ TAG ] (cid) message key=value 0.123s
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        cid = getattr(record, "cid", "-")

        parts = [_paint(ts, Colors.DIM), _paint(f"[{tag:^7}]", get_tag_color(tag))]
        if cid != "-":
            parts.append(_paint(f"({cid})", Colors.DIM + Colors.CYAN))
        parts.append(record.getMessage())

        event = getattr(record, "event", None)
        if event:
            parts.append(_paint(f"event={event}", Colors.BLUE))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            # Speech backends are slow; color thresholds follow VOICEVOX latency
            if seconds < 0.5:
                time_color = Colors.GREEN
            elif seconds < 3.0:
                time_color = Colors.YELLOW
            else:
                time_color = Colors.RED
            parts.append(_paint(f"{seconds:.3f}s", time_color))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for k, v in extra_data.items():
                parts.append(_paint(f"{k}={v}", self._field_color(k, v)))

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line

    def _field_color(self, key: str, value: Any) -> str:
        """Highlight the fields an operator scans for."""
        if key == "text":
            return Colors.MAGENTA
        if key in ("error", "reason"):
            return Colors.YELLOW
        if key == "attempt" and isinstance(value, int) and value > 1:
            return Colors.YELLOW
        return Colors.DIM
