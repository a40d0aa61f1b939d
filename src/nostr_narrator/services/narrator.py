"""
Narrator - Event Triage Loop.

Consumes relay notifications one at a time and narrates qualifying events.

Architecture:
    Transport → Triage → Metadata (cache → relay query) → Transformer → Synthesizer → Playback

State machine:
    IDLE → CONNECTED → SUBSCRIBED → LISTENING ... → STOPPED

Dispatch per data event:
    TEXT_NOTE / REACTION   drop if older than old_threshold_seconds, else narrate
    CONTACT_LIST by self   resubscribe with the new contacts (following mode only)
    anything else          ignored

Modes (fixed at startup):
    following   pubkey configured: notes by contacts plus anything mentioning us
    universe    no pubkey: every text note

Error Handling:
    Startup: RelayError when no relay could be connected.
    Per event: metadata and synthesis failures are logged with the event id and
    author; the loop moves on to the next notification.

Events are handled strictly one after another (metadata fetch and synthesis
are awaited inline), which keeps narration in arrival order and lets the
metadata cache go without locks.
"""
from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Callable, List, Optional, Sequence

from nostr_narrator.core.config import NarratorConfig
from nostr_narrator.core.errors import MetadataFetchError, NarratorError, RelayError, SynthesisError
from nostr_narrator.core.logging import (
    debug,
    error,
    get_logger,
    info,
    set_correlation_id,
    success,
    warn,
)
from nostr_narrator.core.metrics import metrics
from nostr_narrator.narration.metadata_cache import MetadataCache
from nostr_narrator.narration.transformer import Transformer
from nostr_narrator.nostr.event import Event, EventKind, EventNotification, Filter, Notification, ProfileMetadata
from nostr_narrator.nostr.relay import Transport
from nostr_narrator.speech.synthesizer import SpeechSynthesizer

_LOG = get_logger("nostr-narrator.narrator")

ANNOUNCE_FOLLOWING = "接続しました。フォロイングモードです。"
ANNOUNCE_UNIVERSE = "接続しました。ユニバースモードです。"


class NarratorState(str, Enum):
    IDLE = "idle"
    CONNECTED = "connected"
    SUBSCRIBED = "subscribed"
    LISTENING = "listening"
    STOPPED = "stopped"


class Narrator:
    """
    The triage loop.

    Args:
        config: Validated configuration.
        transport: Relay client (RelayPool in production, a fake in tests).
        synthesizer: Speech synthesizer feeding the playback queue.
        transformer: Text transformer (built from config.transform if omitted).
        cache: Metadata cache (built from config.cache if omitted).
        clock: Wall clock in unix seconds, compared against event created_at.
    """

    def __init__(
        self,
        config: NarratorConfig,
        transport: Transport,
        synthesizer: SpeechSynthesizer,
        transformer: Optional[Transformer] = None,
        cache: Optional[MetadataCache] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.transport = transport
        self.synthesizer = synthesizer
        self.transformer = transformer or Transformer(config.transform)
        self.cache = cache or MetadataCache(ttl_seconds=config.cache.ttl_seconds)
        self._clock = clock
        self.state = NarratorState.IDLE

    @property
    def following_mode(self) -> bool:
        return self.config.following_mode

    @property
    def self_pubkey(self) -> Optional[str]:
        return self.transport.public_key

    # =========================================================================
    # Startup
    # =========================================================================

    async def connect(self) -> List[str]:
        """
        Add every configured relay and connect.

        A relay that cannot be added or connected is logged and skipped.

        Raises:
            RelayError: If no relay ends up connected.
        """
        for url in self.config.nostr.relays:
            try:
                await self.transport.add_relay(url)
            except RelayError as e:
                error(_LOG, "relay_add_failed", relay=url, **e.to_dict())

        connected = await self.transport.connect()
        if not connected:
            raise RelayError("could not connect to any relay", {"relays": list(self.config.nostr.relays)})

        self.state = NarratorState.CONNECTED
        success(_LOG, "connected", relays=len(connected))
        return connected

    async def build_filters(self, contacts: Optional[Sequence[str]] = None) -> List[Filter]:
        """
        Subscription filters for the current mode.

        In following mode the contact list is fetched from the relays unless
        `contacts` is given. With no contacts only the mention filter is used.
        """
        if not self.following_mode:
            return [Filter(kinds=(EventKind.TEXT_NOTE.value,), limit=0)]

        me = self.self_pubkey
        if me is None:
            raise RelayError("following mode requires the transport to know our public key")

        if contacts is None:
            contacts = await self.transport.get_contacts(self.config.nostr.contacts_timeout_s)

        filters = []
        if contacts:
            filters.append(Filter(
                kinds=(EventKind.TEXT_NOTE.value, EventKind.CONTACT_LIST.value),
                authors=tuple(contacts),
                limit=0,
            ))
        else:
            warn(_LOG, "no_contacts", pubkey=me[:8])
        filters.append(Filter(
            kinds=(EventKind.TEXT_NOTE.value, EventKind.REACTION.value, EventKind.CONTACT_LIST.value),
            pubkeys=(me,),
            limit=0,
        ))
        return filters

    async def subscribe(self, contacts: Optional[Sequence[str]] = None) -> str:
        filters = await self.build_filters(contacts)
        sub_id = await self.transport.subscribe(filters)
        self.state = NarratorState.SUBSCRIBED
        info(_LOG, "subscription_ready",
             mode="following" if self.following_mode else "universe",
             filters=len(filters), contacts=len(filters[0].authors or ()) if self.following_mode else None)
        return sub_id

    async def announce(self) -> None:
        """Say which mode we are in. Failure is logged, not raised."""
        text = ANNOUNCE_FOLLOWING if self.following_mode else ANNOUNCE_UNIVERSE
        try:
            await self.synthesizer.say(self.config.speaker, text)
        except SynthesisError as e:
            error(_LOG, "announce_failed", **e.to_dict())

    # =========================================================================
    # Main loop
    # =========================================================================

    async def run(self) -> None:
        """
        Connect, subscribe, announce and narrate until the transport ends.

        Raises:
            RelayError: If startup fails (no relay, or contact list unavailable).
        """
        try:
            if self.state is NarratorState.IDLE:
                await self.connect()
            if self.state is NarratorState.CONNECTED:
                await self.subscribe()
            await self.announce()

            self.state = NarratorState.LISTENING
            info(_LOG, "listening")
            async for notification in self.transport.notifications():
                await self.handle_notification(notification)
        finally:
            self.state = NarratorState.STOPPED
            set_correlation_id("-")

    async def stop(self) -> None:
        await self.transport.close()
        self.state = NarratorState.STOPPED

    async def handle_notification(self, notification: Notification) -> None:
        """Process one notification. Never raises for per-event failures."""
        if not isinstance(notification, EventNotification):
            debug(_LOG, "notification_ignored", type=type(notification).__name__)
            return

        event = notification.event
        try:
            await self.handle_event(event)
        except NarratorError as e:
            error(_LOG, "event_failed", event_id=event.id, author=event.pubkey, **e.to_dict())
        except Exception as e:
            error(_LOG, "event_failed_unexpected", exc_info=True,
                  event_id=event.id, author=event.pubkey, error=str(e))

    async def handle_event(self, event: Event) -> bool:
        """
        Dispatch one data event by kind.

        Returns:
            True if the event was narrated.
        """
        set_correlation_id(event.short_id)
        kind = event.event_kind
        metrics.record_event(kind.label)

        if kind is EventKind.TEXT_NOTE or kind is EventKind.REACTION:
            return await self._narrate(event, kind)

        if kind is EventKind.CONTACT_LIST:
            if self.following_mode and event.pubkey == self.self_pubkey:
                info(_LOG, "contact_list_updated", contacts=len(event.tag_values("p")))
                await self.subscribe(contacts=list(dict.fromkeys(event.tag_values("p"))))
            else:
                metrics.record_drop("contact_list")
            return False

        metrics.record_drop("kind")
        debug(_LOG, "event_ignored", kind=event.kind)
        return False

    def is_old(self, event: Event) -> bool:
        return (self._clock() - event.created_at) > self.config.nostr.old_threshold_seconds

    async def _narrate(self, event: Event, kind: EventKind) -> bool:
        if self.is_old(event):
            metrics.record_drop("stale")
            info(
                _LOG, "stale_event_dropped",
                event_id=event.id, author=event.pubkey,
                age=int(self._clock() - event.created_at), kind=kind.label,
            )
            return False

        metadata = await self.resolve_metadata(event.pubkey)
        if kind is EventKind.REACTION:
            text = self.transformer.transform_reaction(event, metadata)
        else:
            text = self.transformer.transform_note(event, metadata)

        try:
            await self.synthesizer.say(self.config.speaker, text)
        except SynthesisError as e:
            metrics.record_drop("synthesis")
            error(_LOG, "narration_failed", event_id=event.id, author=event.pubkey, **e.to_dict())
            return False
        return True

    # =========================================================================
    # Metadata
    # =========================================================================

    async def resolve_metadata(self, author: str) -> Optional[ProfileMetadata]:
        """
        Author profile from the cache, or from the relays on a miss.

        Any fetch failure yields None; narration then goes without a name.
        """
        cached = self.cache.get(author)
        if cached is not None:
            metrics.record_metadata("hit")
            return cached

        try:
            metadata = await self.fetch_metadata(author)
        except MetadataFetchError as e:
            metrics.record_metadata("failed")
            warn(_LOG, "metadata_unavailable", author=author, **e.to_dict())
            return None

        metrics.record_metadata("fetched")
        self.cache.put(author, metadata)
        return metadata

    async def fetch_metadata(self, author: str) -> ProfileMetadata:
        """
        Query the newest kind-0 event by `author`.

        Raises:
            MetadataFetchError: On relay failure, timeout, no event, or bad content.
        """
        timeout = self.config.nostr.metadata_timeout_s
        try:
            events = await self.transport.query_events(
                [Filter(kinds=(EventKind.METADATA.value,), authors=(author,), limit=1)],
                timeout=timeout,
            )
        except (RelayError, asyncio.TimeoutError, OSError) as e:
            raise MetadataFetchError(f"metadata query failed: {e}", {"author": author}) from e

        events = [e for e in events if e.pubkey == author and e.event_kind is EventKind.METADATA]
        if not events:
            raise MetadataFetchError("no metadata event found", {"author": author})

        newest = max(events, key=lambda e: e.created_at)
        return ProfileMetadata.from_content(newest.content)
