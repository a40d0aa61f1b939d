"""
Error Codes and Exceptions.

All narrator failures derive from NarratorError, which carries a stable
error code and an optional details dictionary for structured logging.

Failure classes:
    Startup-fatal:
        ConfigValidationError, AudioDeviceError, InvalidPublicKeyError
        (and RelayError once no relay could be added)
    Per-event recoverable:
        MetadataFetchError, SynthesisError and its subclasses
    Per-attempt (absorbed by the synthesizer's retry loop):
        AudioDecodeError

Per-event failures are logged by the triage loop and never propagate
out of it.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """
    Standardized error codes.

    Used in NarratorError exceptions and in log records so failures can be
    grouped without parsing messages.
    """
    CONFIG_INVALID = "CONFIG_INVALID"           # Bad or unreadable settings
    AUDIO_DEVICE = "AUDIO_DEVICE"               # No usable output device
    INVALID_PUBKEY = "INVALID_PUBKEY"           # Configured identity unparsable
    RELAY_FAILED = "RELAY_FAILED"               # Relay could not be added/used
    METADATA_FETCH = "METADATA_FETCH"           # Profile lookup failed
    AUDIO_QUERY_FAILED = "AUDIO_QUERY_FAILED"   # Backend rejected the query step
    DECODE_FAILED = "DECODE_FAILED"             # Backend returned undecodable audio
    RETRY_LIMIT = "RETRY_LIMIT"                 # All synthesis attempts failed
    SYNTHESIS_FAILED = "SYNTHESIS_FAILED"       # Generic synthesis failure
    INTERNAL_ERROR = "INTERNAL_ERROR"           # Unexpected error


class NarratorError(Exception):
    """
    Base exception for narrator errors.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode class.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a flat dict for structured logging."""
        result: Dict[str, Any] = {
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ConfigValidationError(NarratorError):
    """Raised when configuration validation fails."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.CONFIG_INVALID, details)


class AudioDeviceError(NarratorError):
    """Raised when the default audio output cannot be opened."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.AUDIO_DEVICE, details)


class InvalidPublicKeyError(NarratorError):
    """Raised when a configured identity is neither hex nor npub."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_PUBKEY, details)


class RelayError(NarratorError):
    """Raised when a relay cannot be added or talked to."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.RELAY_FAILED, details)


class MetadataFetchError(NarratorError):
    """Raised when an author's profile cannot be fetched or parsed."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.METADATA_FETCH, details)


class SynthesisError(NarratorError):
    """Raised when speech synthesis fails."""
    def __init__(self, message: str, code: str = ErrorCode.SYNTHESIS_FAILED, details: Optional[Dict] = None):
        super().__init__(message, code, details)


class AudioQueryError(SynthesisError):
    """Raised when the audio query step fails (never retried)."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.AUDIO_QUERY_FAILED, details)


class RetryLimitExceededError(SynthesisError):
    """Raised when every synthesis attempt failed."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.RETRY_LIMIT, details)


class AudioDecodeError(NarratorError):
    """Raised when synthesized bytes are not a decodable WAV file."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.DECODE_FAILED, details)
