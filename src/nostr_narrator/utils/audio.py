"""
Audio Decoding Utilities.

VOICEVOX returns complete WAV files (PCM 16-bit, mono, 24 kHz by default).
Before a buffer is handed to the playback queue it is decoded here, so an
undecodable response counts as a failed synthesis attempt rather than a
playback-time crash.

Dependencies:
    - numpy: Sample arrays
    - soundfile: WAV parsing (libsndfile)
"""
from __future__ import annotations

import io
from dataclasses import dataclass

import numpy as np
import soundfile as sf

from nostr_narrator.core.errors import AudioDecodeError


@dataclass(frozen=True)
class AudioBuffer:
    """
    A decoded, ready-to-play utterance.

    Attributes:
        samples: float32 array, shape (frames,) or (frames, channels).
        sample_rate: Samples per second.
    """
    samples: np.ndarray
    sample_rate: int

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def channels(self) -> int:
        return 1 if self.samples.ndim == 1 else int(self.samples.shape[1])

    @property
    def duration_seconds(self) -> float:
        return self.frames / float(self.sample_rate)


def decode_wav(wav_bytes: bytes) -> AudioBuffer:
    """
    Decode WAV bytes into an AudioBuffer.

    Args:
        wav_bytes: Complete WAV file contents.

    Returns:
        AudioBuffer with float32 samples in [-1, 1].

    Raises:
        AudioDecodeError: If the bytes are empty, not a WAV file, or
            contain no audio frames.
    """
    if not wav_bytes:
        raise AudioDecodeError("empty audio response")

    try:
        samples, sample_rate = sf.read(io.BytesIO(wav_bytes), dtype="float32")
    except (RuntimeError, ValueError, TypeError) as e:
        # soundfile.LibsndfileError is a RuntimeError subclass
        raise AudioDecodeError(f"failed to decode wav: {e}", {"bytes": len(wav_bytes)}) from e

    samples = np.asarray(samples, dtype=np.float32)
    if samples.size == 0:
        raise AudioDecodeError("wav contains no audio frames", {"bytes": len(wav_bytes)})

    return AudioBuffer(samples=samples, sample_rate=int(sample_rate))


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Encode float32 samples as PCM 16-bit WAV bytes."""
    buf = io.BytesIO()
    sf.write(buf, np.asarray(samples, dtype=np.float32), sample_rate, format="WAV", subtype="PCM_16")
    return buf.getvalue()
