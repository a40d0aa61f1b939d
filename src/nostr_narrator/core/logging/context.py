"""
Correlation Context and Configuration State for Logging.

The triage loop handles one event at a time; while it does, the event id
(shortened) is stored in a context variable so every log line emitted on
its behalf, from the cache, the synthesizer or the relay client, carries
the same correlation id.

Environment Variables:
    - NARRATOR_LOG_LEVEL: Override log level (1-4 or name)
    - NARRATOR_LOG_DIR: Enable JSONL file output in this directory
    - NARRATOR_JSONL_FILE: JSONL filename
    - NARRATOR_LOG_ROTATE_BYTES: Max log file size
    - NARRATOR_LOG_ROTATE_BACKUP: Number of backup files
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

from .levels import LEVEL_NAMES, LogLevel

# "-" outside of event handling
_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_correlation_id() -> str:
    """Get the correlation id of the current context ("-" if unset)."""
    return _correlation_id.get()


def set_correlation_id(cid: str) -> None:
    """Set the correlation id for subsequent log lines in this context."""
    _correlation_id.set(cid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve logging configuration from settings.yaml and the environment.

    Priority (highest first): environment variables, the `logging` section
    of the settings file named by NARRATOR_SETTINGS, defaults.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("NARRATOR_SETTINGS", "config/settings.yaml")
    if os.path.exists(settings_path):
        from nostr_narrator.core.config import load_settings
        from nostr_narrator.core.errors import ConfigValidationError

        try:
            settings = load_settings(settings_path)
            cfg.update(settings.raw.get("logging") or {})
        except ConfigValidationError:
            # Reported properly when the CLI loads the same file
            pass

    if os.getenv("NARRATOR_LOG_LEVEL"):
        cfg["level"] = os.environ["NARRATOR_LOG_LEVEL"]
    if os.getenv("NARRATOR_LOG_DIR"):
        cfg["log_dir"] = os.environ["NARRATOR_LOG_DIR"]
    if os.getenv("NARRATOR_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["NARRATOR_JSONL_FILE"]
    if os.getenv("NARRATOR_LOG_ROTATE_BYTES"):
        try:
            cfg["rotate_max_bytes"] = int(os.environ["NARRATOR_LOG_ROTATE_BYTES"])
        except ValueError:
            pass
    if os.getenv("NARRATOR_LOG_ROTATE_BACKUP"):
        try:
            cfg["rotate_backup_count"] = int(os.environ["NARRATOR_LOG_ROTATE_BACKUP"])
        except ValueError:
            pass

    return cfg
