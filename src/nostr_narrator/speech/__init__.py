"""Speech output: VOICEVOX client, retrying synthesizer and ordered playback."""
from .playback import AudioDevice, PlaybackQueue, SoundDeviceOutput, open_default_output
from .synthesizer import FixedRetryPolicy, RetryPolicy, SpeechSynthesizer
from .voicevox import VoicevoxClient

__all__ = [
    "AudioDevice",
    "FixedRetryPolicy",
    "PlaybackQueue",
    "RetryPolicy",
    "SoundDeviceOutput",
    "SpeechSynthesizer",
    "VoicevoxClient",
    "open_default_output",
]
