"""
Tests for the VOICEVOX client and the retrying synthesizer.

The speech backend is replaced by an httpx.MockTransport, so requests never
leave the process.

Tests cover:
- Request shape (/audio_query params, /synthesis body)
- Success on the Nth attempt after N-1 decode failures
- Exactly max_retry attempts and zero enqueues on permanent failure
- Audio query failure is not retried
- Network errors count as failed attempts
"""
import asyncio
import json
from typing import List
from unittest.mock import patch

import httpx
import numpy as np
import pytest

from nostr_narrator.core.errors import AudioQueryError, RetryLimitExceededError, SynthesisError
from nostr_narrator.speech.synthesizer import FixedRetryPolicy, SpeechSynthesizer
from nostr_narrator.speech.voicevox import VoicevoxClient
from nostr_narrator.utils.audio import AudioBuffer, encode_wav

QUERY = json.dumps({"accent_phrases": [], "speedScale": 1.0}).encode()
WAV = encode_wav(np.zeros(2400, dtype=np.float32), 24000)


class RecordingPlayback:
    """Stands in for PlaybackQueue."""

    def __init__(self):
        self.buffers: List[AudioBuffer] = []

    def enqueue(self, buffer: AudioBuffer) -> None:
        self.buffers.append(buffer)


class FakeEngine:
    """
    Scripted VOICEVOX engine.

    synthesis_results: one entry per /synthesis call; bytes are returned as
    the body, an int as an error status, an exception instance is raised.
    """

    def __init__(self, synthesis_results=None, query_status: int = 200):
        self.synthesis_results = list(synthesis_results or [WAV])
        self.query_status = query_status
        self.requests: List[httpx.Request] = []

    @property
    def synthesis_calls(self) -> int:
        return sum(1 for r in self.requests if r.url.path == "/synthesis")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/audio_query":
            if self.query_status != 200:
                return httpx.Response(self.query_status, text="engine error")
            return httpx.Response(200, content=QUERY, headers={"Content-Type": "application/json"})

        if request.url.path == "/synthesis":
            idx = min(self.synthesis_calls - 1, len(self.synthesis_results) - 1)
            result = self.synthesis_results[idx]
            if isinstance(result, Exception):
                raise result
            if isinstance(result, int):
                return httpx.Response(result, text="engine error")
            return httpx.Response(200, content=result, headers={"Content-Type": "audio/wav"})

        return httpx.Response(404)


def make_synth(engine: FakeEngine, max_retry: int = 3):
    client = VoicevoxClient(
        "http://voicevox.test",
        client=httpx.AsyncClient(base_url="http://voicevox.test", transport=httpx.MockTransport(engine.handler)),
    )
    playback = RecordingPlayback()
    return SpeechSynthesizer(client, playback, FixedRetryPolicy(max_retry)), playback


class TestVoicevoxClient:

    def test_request_shape(self):
        engine = FakeEngine()
        synth, _ = make_synth(engine)

        asyncio.run(synth.say(3, "こんにちは"))

        query_req, synth_req = engine.requests
        assert query_req.method == "POST"
        assert query_req.url.path == "/audio_query"
        assert query_req.url.params["speaker"] == "3"
        assert query_req.url.params["text"] == "こんにちは"

        assert synth_req.method == "POST"
        assert synth_req.url.path == "/synthesis"
        assert synth_req.url.params["speaker"] == "3"
        assert synth_req.content == QUERY

    def test_raises_on_status(self):
        engine = FakeEngine(query_status=422)
        client = VoicevoxClient(
            "http://voicevox.test",
            client=httpx.AsyncClient(base_url="http://voicevox.test", transport=httpx.MockTransport(engine.handler)),
        )
        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(client.audio_query(1, "x"))


class TestRetry:

    def test_first_attempt_success(self):
        engine = FakeEngine([WAV])
        synth, playback = make_synth(engine)

        buffer = asyncio.run(synth.say(1, "テスト"))

        assert engine.synthesis_calls == 1
        assert playback.buffers == [buffer]
        assert buffer.sample_rate == 24000
        assert buffer.frames == 2400

    @pytest.mark.parametrize("n", [1, 2, 3, 5])
    def test_success_on_last_attempt(self, n):
        """N-1 undecodable responses then a good one: exactly N attempts."""
        engine = FakeEngine([b"not a wav"] * (n - 1) + [WAV])
        synth, playback = make_synth(engine, max_retry=n)

        asyncio.run(synth.say(1, "テスト"))

        assert engine.synthesis_calls == n
        assert len(playback.buffers) == 1

    @pytest.mark.parametrize("n", [1, 3, 4])
    def test_permanent_failure(self, n):
        engine = FakeEngine([b"not a wav"])
        synth, playback = make_synth(engine, max_retry=n)

        with pytest.raises(RetryLimitExceededError) as exc_info:
            asyncio.run(synth.say(1, "テスト"))

        assert engine.synthesis_calls == n
        assert playback.buffers == []
        assert exc_info.value.details["attempts"] == n

    def test_http_errors_are_retried(self):
        engine = FakeEngine([500, httpx.ConnectError("refused"), b"", WAV])
        synth, playback = make_synth(engine, max_retry=4)

        asyncio.run(synth.say(1, "テスト"))

        assert engine.synthesis_calls == 4
        assert len(playback.buffers) == 1

    def test_query_failure_not_retried(self):
        engine = FakeEngine(query_status=500)
        synth, playback = make_synth(engine, max_retry=5)

        with pytest.raises(AudioQueryError):
            asyncio.run(synth.say(1, "テスト"))

        assert len(engine.requests) == 1
        assert engine.synthesis_calls == 0
        assert playback.buffers == []

    def test_errors_share_base_class(self):
        assert issubclass(AudioQueryError, SynthesisError)
        assert issubclass(RetryLimitExceededError, SynthesisError)


class TestRetryPolicy:

    def test_fixed_policy_yields_attempt_numbers(self):
        assert list(FixedRetryPolicy(3).attempts()) == [1, 2, 3]

    def test_fixed_policy_rejects_zero(self):
        with pytest.raises(ValueError):
            FixedRetryPolicy(0)

    def test_custom_policy(self):
        class TwoTries:
            def attempts(self):
                yield 1
                yield 2

        engine = FakeEngine([b"bad"])
        client = VoicevoxClient(
            "http://voicevox.test",
            client=httpx.AsyncClient(base_url="http://voicevox.test", transport=httpx.MockTransport(engine.handler)),
        )
        synth = SpeechSynthesizer(client, RecordingPlayback(), TwoTries())

        with pytest.raises(RetryLimitExceededError):
            asyncio.run(synth.say(1, "x"))
        assert engine.synthesis_calls == 2

    def test_fixed_policy_never_sleeps(self):
        with patch("time.sleep") as sleep:
            assert len(list(FixedRetryPolicy(5).attempts())) == 5
        sleep.assert_not_called()
