"""
VOICEVOX Engine HTTP Client.

Two-step synthesis API:
    POST /audio_query?speaker=<id>&text=<text>   → query JSON
    POST /synthesis?speaker=<id>  (body: query)  → WAV bytes

The query JSON is passed through untouched, so it is kept as raw bytes.
Errors surface as httpx exceptions; retry policy lives in the synthesizer.
"""
from __future__ import annotations

from typing import Optional

import httpx

from nostr_narrator.core.config import Defaults


class VoicevoxClient:
    """
    Thin async wrapper over a VOICEVOX-compatible engine.

    Args:
        base_url: Engine URL, e.g. http://localhost:50021
        timeout_s: Per-request timeout in seconds.
        client: Pre-built httpx.AsyncClient (tests pass one with a MockTransport).
    """

    def __init__(
        self,
        base_url: str = Defaults.VOICEVOX_URL,
        timeout_s: float = Defaults.VOICEVOX_TIMEOUT_S,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout_s)

    async def audio_query(self, speaker: int, text: str) -> bytes:
        response = await self._client.post(
            "/audio_query",
            params={"speaker": speaker, "text": text},
        )
        response.raise_for_status()
        return response.content

    async def synthesis(self, speaker: int, query: bytes) -> bytes:
        response = await self._client.post(
            "/synthesis",
            params={"speaker": speaker},
            content=query,
            headers={"Content-Type": "application/json", "Accept": "audio/wav"},
        )
        response.raise_for_status()
        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "VoicevoxClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
