"""
Public Key Parsing.

Identities can be configured either as 64-character hex or as NIP-19
`npub1...` strings. Internally the narrator always works with lowercase hex,
which is what relays expect in filters and what events carry.
"""
from __future__ import annotations

import re

from bech32 import bech32_decode, bech32_encode, convertbits

from nostr_narrator.core.errors import InvalidPublicKeyError

_HEX_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def parse_public_key(value: str) -> str:
    """
    Parse a hex or npub public key into lowercase hex.

    Raises:
        InvalidPublicKeyError: If the value is neither form.
    """
    value = value.strip()
    if _HEX_KEY_RE.match(value):
        return value.lower()

    if value.lower().startswith("npub1"):
        hrp, data = bech32_decode(value)
        if hrp != "npub" or data is None:
            raise InvalidPublicKeyError("invalid npub checksum or encoding", {"value": value[:12]})
        decoded = convertbits(data, 5, 8, False)
        if decoded is None or len(decoded) != 32:
            raise InvalidPublicKeyError("npub does not hold a 32-byte key", {"value": value[:12]})
        return bytes(decoded).hex()

    raise InvalidPublicKeyError("public key must be 64 hex chars or npub1...", {"value": value[:12]})


def encode_npub(hex_key: str) -> str:
    """Encode a hex public key as npub, for display."""
    data = convertbits(bytes.fromhex(hex_key), 8, 5, True)
    return bech32_encode("npub", data)
