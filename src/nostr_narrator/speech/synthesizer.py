"""
Speech Synthesizer with Bounded Retry.

say(speaker, text):
    1. audio_query          one request; failure → AudioQueryError (not retried)
    2. for each attempt allowed by the retry policy:
           synthesis + WAV decode
           HTTP/transport error or undecodable audio → next attempt
           success → enqueue on the playback queue, return the buffer
    3. attempts exhausted → RetryLimitExceededError, nothing enqueued

Attempts run back to back with no delay. The policy is a separate object
so a backoff policy can be dropped in without touching say().
"""
from __future__ import annotations

from typing import Iterator, Optional, Protocol

import httpx

from nostr_narrator.core.config import Defaults
from nostr_narrator.core.errors import AudioDecodeError, AudioQueryError, RetryLimitExceededError
from nostr_narrator.core.logging import fail, get_logger, speak, verbose, warn
from nostr_narrator.core.metrics import metrics
from nostr_narrator.speech.playback import PlaybackQueue
from nostr_narrator.speech.voicevox import VoicevoxClient
from nostr_narrator.utils.audio import AudioBuffer, decode_wav
from nostr_narrator.utils.timeit import timeit

_LOG = get_logger("nostr-narrator.synth")


class RetryPolicy(Protocol):
    """Decides how many synthesis attempts a say() call gets."""

    def attempts(self) -> Iterator[int]:
        """Yield 1-based attempt numbers. Consumed inside the event loop, so it must not block."""
        ...


class FixedRetryPolicy:
    """max_retry immediate attempts, no backoff."""

    def __init__(self, max_retry: int = Defaults.VOICEVOX_MAX_RETRY):
        if max_retry < 1:
            raise ValueError(f"max_retry must be >= 1, got {max_retry}")
        self.max_retry = max_retry

    def attempts(self) -> Iterator[int]:
        return iter(range(1, self.max_retry + 1))


class SpeechSynthesizer:
    """
    Text → decoded audio → playback queue.

    Args:
        client: VOICEVOX client.
        playback: Queue that receives every successfully decoded utterance.
        retry_policy: Attempt budget for the synthesis step.
    """

    def __init__(
        self,
        client: VoicevoxClient,
        playback: PlaybackQueue,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.client = client
        self.playback = playback
        self.retry_policy = retry_policy or FixedRetryPolicy()

    async def say(self, speaker: int, text: str) -> AudioBuffer:
        """
        Synthesize `text` with `speaker` and enqueue it for playback.

        Returns:
            The buffer that was enqueued.

        Raises:
            AudioQueryError: The audio query request failed.
            RetryLimitExceededError: Every synthesis attempt failed.
        """
        speak(_LOG, f"📣 {text}", speaker=speaker)

        with timeit("say") as t:
            try:
                query = await self.client.audio_query(speaker, text)
            except httpx.HTTPError as e:
                metrics.record_narration("query_failed")
                raise AudioQueryError(f"audio query failed: {e}", {"speaker": speaker}) from e

            attempts = 0
            last_error = ""
            for attempt in self.retry_policy.attempts():
                attempts += 1
                try:
                    wav = await self.client.synthesis(speaker, query)
                    buffer = decode_wav(wav)
                except httpx.HTTPError as e:
                    metrics.record_attempt("http_error")
                    last_error = str(e) or type(e).__name__
                    warn(_LOG, "synthesis_attempt_failed", attempt=attempt, error=last_error)
                    continue
                except AudioDecodeError as e:
                    metrics.record_attempt("decode_error")
                    last_error = e.message
                    warn(_LOG, "synthesis_attempt_failed", attempt=attempt, error=last_error)
                    continue

                metrics.record_attempt("ok")
                self.playback.enqueue(buffer)
                break
            else:
                metrics.record_narration("retry_limit")
                fail(_LOG, "synthesis_gave_up", attempts=attempts, error=last_error)
                raise RetryLimitExceededError(
                    f"synthesis failed after {attempts} attempts",
                    {"attempts": attempts, "last_error": last_error},
                )

        metrics.record_narration("success", duration=t.elapsed())
        verbose(_LOG, "synthesized", attempts=attempts, seconds=round(buffer.duration_seconds, 2),
                ms=round(t.elapsed() * 1000, 1))
        return buffer
