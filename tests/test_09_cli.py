"""Tests for the nostr-narrator command line."""
import json
from unittest.mock import patch

import httpx
import numpy as np
import pytest

from nostr_narrator import cli
from nostr_narrator.core.errors import AudioDeviceError
from nostr_narrator.speech.voicevox import VoicevoxClient
from nostr_narrator.utils.audio import encode_wav

HEX = "7e7e9c42a91bfef19fa929e5fda1b72e0ebc1a4c1141673e2794234d86addf4e"


@pytest.fixture
def settings_file(tmp_path, monkeypatch):
    def write(body: str = "nostr:\n  relays: [wss://r.example]\n"):
        p = tmp_path / "settings.yaml"
        p.write_text(body, encoding="utf-8")
        # cli points NARRATOR_SETTINGS at --config; monkeypatch restores it
        monkeypatch.setenv("NARRATOR_SETTINGS", str(p))
        return str(p)
    return write


def _json_line(out: str) -> dict:
    lines = [line for line in out.splitlines() if line.startswith("{")]
    return json.loads(lines[-1])


class FakeDevice:
    def __init__(self):
        self.played = []

    def play(self, buffer):
        self.played.append(buffer)


def test_check_config(settings_file, capsys):
    path = settings_file(f"nostr:\n  relays: [wss://r.example]\n  pubkey: {HEX.upper()}\nspeaker: 2\n")

    code = cli.main(["--config", path, "--check-config"])

    assert code == 0
    payload = _json_line(capsys.readouterr().out)
    assert payload["ok"] is True
    assert payload["mode"] == "following"
    assert payload["pubkey"] == HEX
    assert payload["npub"].startswith("npub1")
    assert payload["speaker"] == 2


def test_missing_settings_file(tmp_path, monkeypatch):
    missing = str(tmp_path / "missing.yaml")
    monkeypatch.setenv("NARRATOR_SETTINGS", missing)
    assert cli.main(["--config", missing, "--check-config"]) == 1


def test_invalid_settings(settings_file):
    path = settings_file("nostr:\n  relays: []\n")
    assert cli.main(["--config", path, "--check-config"]) == 1


def test_invalid_pubkey(settings_file):
    path = settings_file("nostr:\n  relays: [wss://r.example]\n  pubkey: not-a-key\n")
    assert cli.main(["--config", path, "--check-config"]) == 1


def test_audio_device_failure(settings_file):
    path = settings_file()
    with patch.object(cli, "open_default_output", side_effect=AudioDeviceError("no output device")):
        assert cli.main(["--config", path, "--say", "テスト"]) == 1


def test_say(settings_file):
    path = settings_file()
    wav = encode_wav(np.zeros(240, dtype=np.float32), 24000)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/audio_query":
            return httpx.Response(200, content=b"{}")
        return httpx.Response(200, content=wav)

    def make_client(url, timeout_s):
        return VoicevoxClient(url, client=httpx.AsyncClient(base_url=url, transport=httpx.MockTransport(handler)))

    device = FakeDevice()
    with patch.object(cli, "open_default_output", return_value=device), \
            patch.object(cli, "VoicevoxClient", side_effect=make_client):
        code = cli.main(["--config", path, "--say", "テスト"])

    assert code == 0
    assert len(device.played) == 1


def test_say_backend_down(settings_file):
    path = settings_file()

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    def make_client(url, timeout_s):
        return VoicevoxClient(url, client=httpx.AsyncClient(base_url=url, transport=httpx.MockTransport(handler)))

    with patch.object(cli, "open_default_output", return_value=FakeDevice()), \
            patch.object(cli, "VoicevoxClient", side_effect=make_client):
        assert cli.main(["--config", path, "--say", "テスト"]) == 1


def test_no_relay_reachable(settings_file):
    path = settings_file()

    class DeadPool:
        public_key = None

        def __init__(self, *args, **kwargs):
            pass

        async def add_relay(self, url):
            pass

        async def connect(self):
            return []

        async def close(self):
            pass

    with patch.object(cli, "open_default_output", return_value=FakeDevice()), \
            patch.object(cli, "RelayPool", DeadPool):
        assert cli.main(["--config", path]) == 1


def test_version(capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--version"])
    assert exc_info.value.code == 0
    assert "nostr-narrator" in capsys.readouterr().out
