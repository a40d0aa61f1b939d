"""
nostr-narrator Services Layer.

Components:
    - narrator.py: Narrator (event triage loop tying transport, metadata
      cache, transformer and synthesizer together)
"""
from .narrator import ANNOUNCE_FOLLOWING, ANNOUNCE_UNIVERSE, Narrator, NarratorState

__all__ = [
    "Narrator",
    "NarratorState",
    "ANNOUNCE_FOLLOWING",
    "ANNOUNCE_UNIVERSE",
]
