"""
Command-Line Interface for nostr-narrator.

Usage Examples:
    # Narrate with the default settings file
    nostr-narrator

    # Explicit settings file and chattier logs
    nostr-narrator --config ~/narrator.yaml --log-level 3

    # Speak one line through VOICEVOX and exit (checks engine + audio device)
    nostr-narrator --say "テストです"

    # Validate settings and print the effective configuration
    nostr-narrator --check-config

Exit Codes:
    0    clean shutdown
    1    startup failure (settings, identity, audio device, relays)
    130  interrupted (Ctrl-C)

Environment Variables:
    NARRATOR_SETTINGS: Settings file path (same as --config)
    NARRATOR_VOICEVOX_URL: VOICEVOX engine URL
    NARRATOR_PUBKEY: Identity for following mode (hex or npub)
    NARRATOR_SPEAKER: Speaker id
    NARRATOR_LOG_LEVEL: 1-4
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
from typing import List, Optional

from nostr_narrator import __version__
from nostr_narrator.core.config import NarratorConfig, load_settings
from nostr_narrator.core.errors import (
    AudioDeviceError,
    ConfigValidationError,
    InvalidPublicKeyError,
    RelayError,
    SynthesisError,
)
from nostr_narrator.core.logging import configure_logging, fail, get_logger, info, success, warn
from nostr_narrator.core.metrics import metrics
from nostr_narrator.nostr.keys import encode_npub, parse_public_key
from nostr_narrator.nostr.relay import RelayPool
from nostr_narrator.services.narrator import Narrator
from nostr_narrator.speech.playback import AudioDevice, PlaybackQueue, open_default_output
from nostr_narrator.speech.synthesizer import FixedRetryPolicy, SpeechSynthesizer
from nostr_narrator.speech.voicevox import VoicevoxClient


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="nostr-narrator",
        description="Narrate Nostr text notes and reactions with VOICEVOX",
    )
    parser.add_argument("--config", metavar="PATH",
                        help="Settings YAML (default: $NARRATOR_SETTINGS or config/settings.yaml)")
    parser.add_argument("--log-level", metavar="LEVEL",
                        help="1-4 or MINIMAL/NORMAL/VERBOSE/DEBUG")
    parser.add_argument("--say", metavar="TEXT",
                        help="Speak TEXT once and exit")
    parser.add_argument("--check-config", action="store_true",
                        help="Validate settings, print them as JSON and exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def _build_synthesizer(config: NarratorConfig, playback: PlaybackQueue) -> SpeechSynthesizer:
    client = VoicevoxClient(config.voicevox.url, timeout_s=config.voicevox.timeout_s)
    return SpeechSynthesizer(client, playback, FixedRetryPolicy(config.voicevox.max_retry))


async def _say_once(config: NarratorConfig, playback: PlaybackQueue, text: str) -> None:
    synthesizer = _build_synthesizer(config, playback)
    try:
        await synthesizer.say(config.speaker, text)
    finally:
        await synthesizer.client.aclose()


async def _narrate(config: NarratorConfig, pubkey: Optional[str], playback: PlaybackQueue) -> None:
    synthesizer = _build_synthesizer(config, playback)
    pool = RelayPool(public_key=pubkey, connect_timeout=config.nostr.connect_timeout_s)
    narrator = Narrator(config, pool, synthesizer)
    try:
        await narrator.run()
    finally:
        await narrator.stop()
        await synthesizer.client.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (see module docstring).
    """
    args = _parse_args(argv)

    # Logging reads its section of the same settings file
    if args.config:
        os.environ["NARRATOR_SETTINGS"] = args.config
    configure_logging(args.log_level, force=True)
    log = get_logger("nostr-narrator.cli")

    try:
        config = load_settings(args.config).get_config()
        pubkey = parse_public_key(config.nostr.pubkey) if config.nostr.pubkey else None
    except (FileNotFoundError, ConfigValidationError, InvalidPublicKeyError) as e:
        fail(log, "startup_failed", error=str(e))
        return 1

    if args.check_config:
        payload = {"ok": True, **config.summary()}
        if pubkey:
            payload["pubkey"] = pubkey
            payload["npub"] = encode_npub(pubkey)
        print(json.dumps(payload, ensure_ascii=False))
        return 0

    info(log, "starting", version=__version__, **config.summary())

    if config.metrics.enabled:
        try:
            metrics.start_exporter(config.metrics.port)
            info(log, "metrics_exporter", port=config.metrics.port)
        except OSError as e:
            warn(log, "metrics_exporter_failed", port=config.metrics.port, error=str(e))

    try:
        device: AudioDevice = open_default_output()
    except AudioDeviceError as e:
        fail(log, "startup_failed", **e.to_dict())
        return 1

    playback = PlaybackQueue(device)
    try:
        if args.say:
            asyncio.run(_say_once(config, playback, args.say))
            playback.join()
            success(log, "said", chars=len(args.say))
        else:
            asyncio.run(_narrate(config, pubkey, playback))
    except KeyboardInterrupt:
        info(log, "interrupted")
        return 130
    except (RelayError, SynthesisError) as e:
        fail(log, "stopped", **e.to_dict())
        return 1
    finally:
        playback.close(timeout=1.0)

    info(log, "stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
