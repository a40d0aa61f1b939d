"""
Ordered Audio Playback.

enqueue() is a non-blocking append; a single daemon thread drains the queue
head-first into the audio device, one utterance at a time.

Ordering:
    The queue itself only guarantees FIFO. Narration order matches event
    order because the triage loop is the only producer and enqueues each
    utterance after its synthesis has finished. A second concurrent
    producer would break that.

Device:
    SoundDeviceOutput plays through PortAudio (sounddevice). sounddevice is
    imported when a device is opened, since importing it already requires
    the PortAudio library to be present.
"""
from __future__ import annotations

import queue
import threading
from typing import Optional, Protocol

from nostr_narrator.core.errors import AudioDeviceError
from nostr_narrator.core.logging import error, get_logger, info, verbose
from nostr_narrator.core.metrics import metrics
from nostr_narrator.utils.audio import AudioBuffer

_LOG = get_logger("nostr-narrator.playback")


class AudioDevice(Protocol):
    """Something that can play one buffer to completion."""

    def play(self, buffer: AudioBuffer) -> None: ...


class SoundDeviceOutput:
    """Default PortAudio output device."""

    def __init__(self, device: Optional[int | str] = None):
        import sounddevice as sd

        self._sd = sd
        self.device = device

    def play(self, buffer: AudioBuffer) -> None:
        self._sd.play(buffer.samples, samplerate=buffer.sample_rate, device=self.device)
        self._sd.wait()


def open_default_output() -> SoundDeviceOutput:
    """
    Open the system's default output device.

    Raises:
        AudioDeviceError: If PortAudio is missing or no output device exists.
    """
    try:
        import sounddevice as sd
    except OSError as e:
        # raised when the PortAudio shared library cannot be loaded
        raise AudioDeviceError(f"audio backend unavailable: {e}") from e

    try:
        dev = sd.query_devices(kind="output")
    except (sd.PortAudioError, ValueError) as e:
        raise AudioDeviceError(f"no default output device: {e}") from e

    info(_LOG, "audio_device_opened", device=dev.get("name", "?"),
         samplerate=dev.get("default_samplerate"))
    return SoundDeviceOutput()


class PlaybackQueue:
    """
    FIFO of decoded utterances drained by a background thread.

    Usage:
        playback = PlaybackQueue(open_default_output())
        playback.enqueue(buffer)   # returns immediately
        playback.join()            # wait until everything queued has played
        playback.close()
    """

    def __init__(self, device: AudioDevice):
        self._device = device
        self._q: "queue.Queue[Optional[AudioBuffer]]" = queue.Queue()
        self._closed = False
        self._played = 0
        self._thread = threading.Thread(target=self._drain, name="playback-drain", daemon=True)
        self._thread.start()

    @property
    def played(self) -> int:
        """Buffers handed to the device so far."""
        return self._played

    def enqueue(self, buffer: AudioBuffer) -> None:
        """Append to the tail. Never waits for playback."""
        if self._closed:
            raise RuntimeError("playback queue is closed")
        self._q.put_nowait(buffer)
        metrics.set_queue_depth(self._q.qsize())
        verbose(_LOG, "enqueued", seconds=round(buffer.duration_seconds, 2), pending=self._q.qsize())

    def pending(self) -> int:
        """Buffers waiting behind the one currently playing."""
        return self._q.qsize()

    def join(self) -> None:
        """Block until every enqueued buffer has been played."""
        self._q.join()

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop accepting buffers; the thread exits after draining what is queued."""
        if self._closed:
            return
        self._closed = True
        self._q.put(None)
        self._thread.join(timeout)

    def _drain(self) -> None:
        while True:
            buffer = self._q.get()
            try:
                if buffer is None:
                    return
                metrics.set_queue_depth(self._q.qsize())
                try:
                    self._device.play(buffer)
                    self._played += 1
                except Exception as e:
                    # device failures cost one utterance, not the drain thread
                    error(_LOG, "playback_failed", error=str(e), seconds=round(buffer.duration_seconds, 2))
            finally:
                self._q.task_done()
