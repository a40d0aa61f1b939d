"""
Nostr transport layer.

    - event.py: Event / ProfileMetadata models, kinds, filters, notifications
    - keys.py: Public key parsing (hex or npub)
    - relay.py: RelayPool, a NIP-01 websocket client, and the Transport protocol
"""
from .event import (
    EndOfStoredEvents,
    Event,
    EventKind,
    EventNotification,
    Filter,
    Notice,
    Notification,
    ProfileMetadata,
)
from .keys import encode_npub, parse_public_key
from .relay import RelayPool, Transport

__all__ = [
    "EndOfStoredEvents",
    "Event",
    "EventKind",
    "EventNotification",
    "Filter",
    "Notice",
    "Notification",
    "ProfileMetadata",
    "RelayPool",
    "Transport",
    "encode_npub",
    "parse_public_key",
]
