"""
nostr-narrator: Read Nostr aloud through VOICEVOX.

Listens to Nostr relays and narrates text notes and reactions in Japanese
using a VOICEVOX-compatible speech engine, playing utterances back in the
order the events arrived.

Operating Modes:
    - Following: notes by the contacts of a configured identity, plus
      anything mentioning it; follows contact-list changes live
    - Universe: every text note the relays deliver

Pipeline:
    relay notification → staleness check → author metadata (TTL cache)
    → text transform → VOICEVOX synthesis (bounded retry) → playback queue

Example Usage:
    $ nostr-narrator --config config/settings.yaml
    $ nostr-narrator --say "テストです"
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
