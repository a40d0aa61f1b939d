"""
Configuration Management for nostr-narrator.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration objects
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (NARRATOR_VOICEVOX_URL, NARRATOR_PUBKEY, etc.)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Configuration is read once at startup and never re-read.

Example settings.yaml:
    voicevox:
      url: http://localhost:50021
      max_retry: 3

    nostr:
      relays:
        - wss://relay.damus.io
      old_threshold_seconds: 60
      pubkey: npub1...          # omit for universe mode

    speaker: 1

    transform:
      url_alternative_text: URL省略
      max_length: 100
      ellipsis_text: 以下略
      read_name: true
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import os
import yaml

from nostr_narrator.core.errors import ConfigValidationError

DEFAULT_SETTINGS_PATH = "config/settings.yaml"


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - VOICEVOX: Speech backend location and retry budget
        - Nostr: Relays, staleness threshold, query timeouts
        - Transform: Narration text shaping
        - Cache: Author metadata lifetime
        - Metrics: Prometheus exporter
        - Logging: Log level and file output
    """

    # ─────────────────────────────────────────────────────────────────────────
    # VOICEVOX Speech Backend
    # ─────────────────────────────────────────────────────────────────────────
    VOICEVOX_URL = "http://localhost:50021"
    VOICEVOX_MAX_RETRY = 3              # Synthesis attempts per utterance
    VOICEVOX_TIMEOUT_S = 30.0           # Per HTTP request

    # ─────────────────────────────────────────────────────────────────────────
    # Nostr Transport
    # ─────────────────────────────────────────────────────────────────────────
    NOSTR_OLD_THRESHOLD_SECONDS = 60    # Older events are never spoken
    NOSTR_METADATA_TIMEOUT_S = 10.0     # Profile lookup on cache miss
    NOSTR_CONTACTS_TIMEOUT_S = 10.0     # Contact list lookup when subscribing
    NOSTR_CONNECT_TIMEOUT_S = 10.0      # Websocket open handshake

    # ─────────────────────────────────────────────────────────────────────────
    # Speech
    # ─────────────────────────────────────────────────────────────────────────
    SPEAKER = 1                         # VOICEVOX style id

    # ─────────────────────────────────────────────────────────────────────────
    # Text Transform
    # ─────────────────────────────────────────────────────────────────────────
    TRANSFORM_URL_ALTERNATIVE_TEXT = "URL省略"
    TRANSFORM_MAX_LENGTH = 100
    TRANSFORM_ELLIPSIS_TEXT = "以下略"
    TRANSFORM_READ_NAME = True

    # ─────────────────────────────────────────────────────────────────────────
    # Metadata Cache
    # ─────────────────────────────────────────────────────────────────────────
    CACHE_TTL_SECONDS = 300             # 5 minutes

    # ─────────────────────────────────────────────────────────────────────────
    # Metrics
    # ─────────────────────────────────────────────────────────────────────────
    METRICS_ENABLED = False
    METRICS_PORT = 9464

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG


@dataclass
class VoicevoxConfig:
    """Speech backend location, retry budget and HTTP timeout."""
    url: str = Defaults.VOICEVOX_URL
    max_retry: int = Defaults.VOICEVOX_MAX_RETRY
    timeout_s: float = Defaults.VOICEVOX_TIMEOUT_S


@dataclass
class NostrConfig:
    """
    Relay connection and subscription configuration.

    When pubkey is set the narrator runs in following mode (contacts and
    mentions of that identity); otherwise it runs in universe mode.
    """
    relays: List[str] = field(default_factory=list)
    old_threshold_seconds: int = Defaults.NOSTR_OLD_THRESHOLD_SECONDS
    pubkey: Optional[str] = None
    metadata_timeout_s: float = Defaults.NOSTR_METADATA_TIMEOUT_S
    contacts_timeout_s: float = Defaults.NOSTR_CONTACTS_TIMEOUT_S
    connect_timeout_s: float = Defaults.NOSTR_CONNECT_TIMEOUT_S


@dataclass
class TransformConfig:
    """Narration text shaping options."""
    url_alternative_text: str = Defaults.TRANSFORM_URL_ALTERNATIVE_TEXT
    max_length: int = Defaults.TRANSFORM_MAX_LENGTH
    ellipsis_text: str = Defaults.TRANSFORM_ELLIPSIS_TEXT
    read_name: bool = Defaults.TRANSFORM_READ_NAME


@dataclass
class CacheConfig:
    """Author metadata cache lifetime."""
    ttl_seconds: int = Defaults.CACHE_TTL_SECONDS


@dataclass
class MetricsConfig:
    """Prometheus exporter settings."""
    enabled: bool = Defaults.METRICS_ENABLED
    port: int = Defaults.METRICS_PORT


@dataclass
class NarratorConfig:
    """
    Validated configuration for the narrator.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = NarratorConfig.from_settings(settings)
        print(config.voicevox.max_retry)
    """
    voicevox: VoicevoxConfig = field(default_factory=VoicevoxConfig)
    nostr: NostrConfig = field(default_factory=NostrConfig)
    speaker: int = Defaults.SPEAKER
    transform: TransformConfig = field(default_factory=TransformConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)

    @property
    def following_mode(self) -> bool:
        """True when an identity was configured."""
        return bool(self.nostr.pubkey)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "NarratorConfig":
        """
        Create NarratorConfig from Settings with validation.

        Args:
            settings: Raw Settings object loaded from YAML.

        Returns:
            Validated NarratorConfig instance.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        try:
            # ─────────────────────────────────────────────────────────────────
            # VOICEVOX
            # ─────────────────────────────────────────────────────────────────
            vv_raw = raw.get("voicevox") or {}
            voicevox = VoicevoxConfig(
                url=str(vv_raw.get("url", Defaults.VOICEVOX_URL)).rstrip("/"),
                max_retry=int(vv_raw.get("max_retry", Defaults.VOICEVOX_MAX_RETRY)),
                timeout_s=float(vv_raw.get("timeout_s", Defaults.VOICEVOX_TIMEOUT_S)),
            )

            # ─────────────────────────────────────────────────────────────────
            # Nostr
            # ─────────────────────────────────────────────────────────────────
            nostr_raw = raw.get("nostr") or {}
            relays = nostr_raw.get("relays") or []
            if isinstance(relays, str):
                relays = [relays]
            pubkey = nostr_raw.get("pubkey") or None
            nostr = NostrConfig(
                relays=[str(r).strip() for r in relays],
                old_threshold_seconds=int(nostr_raw.get("old_threshold_seconds", Defaults.NOSTR_OLD_THRESHOLD_SECONDS)),
                pubkey=str(pubkey).strip() if pubkey else None,
                metadata_timeout_s=float(nostr_raw.get("metadata_timeout_s", Defaults.NOSTR_METADATA_TIMEOUT_S)),
                contacts_timeout_s=float(nostr_raw.get("contacts_timeout_s", Defaults.NOSTR_CONTACTS_TIMEOUT_S)),
                connect_timeout_s=float(nostr_raw.get("connect_timeout_s", Defaults.NOSTR_CONNECT_TIMEOUT_S)),
            )

            speaker = int(raw.get("speaker", Defaults.SPEAKER))

            # ─────────────────────────────────────────────────────────────────
            # Transform
            # ─────────────────────────────────────────────────────────────────
            tr_raw = raw.get("transform") or {}
            transform = TransformConfig(
                url_alternative_text=str(tr_raw.get("url_alternative_text", Defaults.TRANSFORM_URL_ALTERNATIVE_TEXT)),
                max_length=int(tr_raw.get("max_length", Defaults.TRANSFORM_MAX_LENGTH)),
                ellipsis_text=str(tr_raw.get("ellipsis_text", Defaults.TRANSFORM_ELLIPSIS_TEXT)),
                read_name=bool(tr_raw.get("read_name", Defaults.TRANSFORM_READ_NAME)),
            )

            cache_raw = raw.get("cache") or {}
            cache = CacheConfig(
                ttl_seconds=int(cache_raw.get("ttl_seconds", Defaults.CACHE_TTL_SECONDS)),
            )

            metrics_raw = raw.get("metrics") or {}
            metrics = MetricsConfig(
                enabled=bool(metrics_raw.get("enabled", Defaults.METRICS_ENABLED)),
                port=int(metrics_raw.get("port", Defaults.METRICS_PORT)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigValidationError(f"invalid configuration value: {e}") from e

        cls._validate_http_url("voicevox.url", voicevox.url)
        cls._validate_positive("voicevox.max_retry", voicevox.max_retry)
        cls._validate_positive("voicevox.timeout_s", voicevox.timeout_s)
        cls._validate_relays(nostr.relays)
        cls._validate_non_negative("nostr.old_threshold_seconds", nostr.old_threshold_seconds)
        cls._validate_positive("nostr.metadata_timeout_s", nostr.metadata_timeout_s)
        cls._validate_positive("nostr.contacts_timeout_s", nostr.contacts_timeout_s)
        cls._validate_positive("nostr.connect_timeout_s", nostr.connect_timeout_s)
        cls._validate_non_negative("speaker", speaker)
        cls._validate_positive("transform.max_length", transform.max_length)
        cls._validate_positive("cache.ttl_seconds", cache.ttl_seconds)
        cls._validate_range("metrics.port", metrics.port, 1, 65535)

        return cls(
            voicevox=voicevox,
            nostr=nostr,
            speaker=speaker,
            transform=transform,
            cache=cache,
            metrics=metrics,
        )

    def summary(self) -> Dict[str, Any]:
        """Short, log-friendly view of the effective configuration."""
        return {
            "mode": "following" if self.following_mode else "universe",
            "relays": list(self.nostr.relays),
            "voicevox_url": self.voicevox.url,
            "max_retry": self.voicevox.max_retry,
            "speaker": self.speaker,
            "old_threshold_seconds": self.nostr.old_threshold_seconds,
            "cache_ttl_seconds": self.cache.ttl_seconds,
            "max_length": self.transform.max_length,
            "read_name": self.transform.read_name,
        }

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within a range [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")

    @staticmethod
    def _validate_http_url(name: str, value: str) -> None:
        if not value.startswith(("http://", "https://")):
            raise ConfigValidationError(f"{name} must be an http(s) URL, got {value!r}")

    @staticmethod
    def _validate_relays(relays: List[str]) -> None:
        if not relays:
            raise ConfigValidationError("nostr.relays must list at least one relay")
        for relay in relays:
            if not relay.startswith(("ws://", "wss://")):
                raise ConfigValidationError(f"nostr.relays entries must be ws:// or wss:// URLs, got {relay!r}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_config() to get a validated NarratorConfig.

    Attributes:
        raw: Dictionary of raw configuration values.
    """
    raw: Dict[str, Any]

    @property
    def voicevox_url(self) -> str:
        """Get the speech backend base URL."""
        return str((self.raw.get("voicevox") or {}).get("url", Defaults.VOICEVOX_URL))

    @property
    def pubkey(self) -> Optional[str]:
        """Get the configured identity, if any."""
        return (self.raw.get("nostr") or {}).get("pubkey") or None

    @property
    def speaker(self) -> int:
        """Get the default speaker id."""
        return int(self.raw.get("speaker", Defaults.SPEAKER))

    def get_config(self) -> NarratorConfig:
        """
        Get validated NarratorConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return NarratorConfig.from_settings(self)


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load settings from a YAML configuration file.

    Environment variable overrides:
        - NARRATOR_SETTINGS: Settings path used when path is None
        - NARRATOR_VOICEVOX_URL: Override voicevox.url
        - NARRATOR_PUBKEY: Override nostr.pubkey
        - NARRATOR_SPEAKER: Override speaker

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Settings object with loaded configuration.

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
        ConfigValidationError: If the file is not a YAML mapping.
    """
    p = Path(path or os.getenv("NARRATOR_SETTINGS", DEFAULT_SETTINGS_PATH))
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"could not parse {p}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigValidationError(f"{p} must contain a YAML mapping")

    # Apply environment variable overrides
    url = os.getenv("NARRATOR_VOICEVOX_URL")
    if url:
        raw["voicevox"] = {**(raw.get("voicevox") or {}), "url": url}
    pubkey = os.getenv("NARRATOR_PUBKEY")
    if pubkey:
        raw["nostr"] = {**(raw.get("nostr") or {}), "pubkey": pubkey}
    speaker = os.getenv("NARRATOR_SPEAKER")
    if speaker:
        raw["speaker"] = speaker

    return Settings(raw=raw)
