"""
Relay Pool - NIP-01 Websocket Client.

The narrator talks to relays through the Transport protocol below; RelayPool
is the bundled implementation over `websockets`.

Architecture:
    one websocket + one reader task per relay
        └── _dispatch() routes every inbound message by subscription id:
              live subscription id  → notifications queue (deduplicated by event id)
              pending query id      → that query's collector
              anything else         → dropped

Subscriptions:
    subscribe()     replaces the single long-lived subscription (CLOSE old, REQ new)
    query_events()  opens a short-lived subscription, resolves when every relay
                    sent EOSE (or CLOSED, or disconnected) or the timeout fires,
                    then CLOSEs it

Reconnection is not handled here: a relay that drops is logged and left
disconnected.

Usage:
    pool = RelayPool(public_key=hex_pubkey)
    await pool.add_relay("wss://relay.example")
    await pool.connect()
    await pool.subscribe([Filter(kinds=(1,), limit=0)])
    async for notification in pool.notifications():
        ...
"""
from __future__ import annotations

import asyncio
import json
import secrets
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Set,
)

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, InvalidURI, WebSocketException

from nostr_narrator.core.errors import RelayError
from nostr_narrator.core.logging import debug, error, get_logger, info, verbose, warn
from nostr_narrator.nostr.event import (
    EndOfStoredEvents,
    Event,
    EventKind,
    EventNotification,
    Filter,
    Notice,
    Notification,
)

_LOG = get_logger("nostr-narrator.relay")

# Event ids remembered for cross-relay deduplication of live events
SEEN_EVENTS_MAX = 10_000


class Transport(Protocol):
    """What the triage loop needs from a Nostr client."""

    @property
    def public_key(self) -> Optional[str]: ...

    async def add_relay(self, url: str) -> None: ...

    async def connect(self) -> List[str]: ...

    async def subscribe(self, filters: Sequence[Filter]) -> str: ...

    def notifications(self) -> AsyncIterator[Notification]: ...

    async def query_events(self, filters: Sequence[Filter], timeout: float) -> List[Event]: ...

    async def get_contacts(self, timeout: float) -> List[str]: ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[Any]]


@dataclass
class _Relay:
    url: str
    ws: Any = None
    reader: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        return self.ws is not None


@dataclass
class _PendingQuery:
    """Collector for one query_events() call."""
    waiting_on: Set[str]
    events: Dict[str, Event] = field(default_factory=dict)
    done: asyncio.Event = field(default_factory=asyncio.Event)

    def add(self, event: Event) -> None:
        self.events.setdefault(event.id, event)

    def relay_finished(self, url: str) -> None:
        self.waiting_on.discard(url)
        if not self.waiting_on:
            self.done.set()


class RelayPool:
    """
    A minimal NIP-01 relay pool.

    Attributes:
        public_key: Own identity (hex), None in universe mode.
    """

    def __init__(
        self,
        public_key: Optional[str] = None,
        connect_timeout: float = 10.0,
        connector: Optional[Connector] = None,
    ):
        self._public_key = public_key
        self._connect_timeout = connect_timeout
        self._connector: Connector = connector or self._default_connector
        self._relays: "OrderedDict[str, _Relay]" = OrderedDict()
        self._notifications: "asyncio.Queue[Optional[Notification]]" = asyncio.Queue()
        self._pending: Dict[str, _PendingQuery] = {}
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self._sub_id: Optional[str] = None
        self._closed = False

    @property
    def public_key(self) -> Optional[str]:
        return self._public_key

    @property
    def subscription_id(self) -> Optional[str]:
        return self._sub_id

    def connected_relays(self) -> List[str]:
        return [r.url for r in self._relays.values() if r.connected]

    # =========================================================================
    # Connection management
    # =========================================================================

    async def add_relay(self, url: str) -> None:
        """
        Register a relay. Does not connect yet.

        Raises:
            RelayError: If the URL is not ws:// or wss://.
        """
        url = url.strip()
        if not url.startswith(("ws://", "wss://")):
            raise RelayError(f"not a websocket URL: {url!r}", {"relay": url})
        if url in self._relays:
            return
        self._relays[url] = _Relay(url=url)
        info(_LOG, "relay_added", relay=url)

    async def connect(self) -> List[str]:
        """
        Open a websocket to every registered relay.

        Relays that fail are logged and skipped.

        Returns:
            URLs of the relays that are connected afterwards.
        """
        for relay in self._relays.values():
            if relay.connected:
                continue
            try:
                relay.ws = await asyncio.wait_for(self._connector(relay.url), timeout=self._connect_timeout)
            except (OSError, asyncio.TimeoutError, InvalidURI, WebSocketException) as e:
                error(_LOG, "relay_connect_failed", relay=relay.url, error=str(e) or type(e).__name__)
                continue
            relay.reader = asyncio.create_task(self._read_loop(relay), name=f"relay-reader:{relay.url}")
            info(_LOG, "relay_connected", relay=relay.url)

        return self.connected_relays()

    async def close(self) -> None:
        """Close every websocket and end notifications()."""
        if self._closed:
            return
        self._closed = True
        for relay in self._relays.values():
            if relay.reader is not None:
                relay.reader.cancel()
            if relay.ws is not None:
                try:
                    await relay.ws.close()
                except (OSError, WebSocketException) as e:
                    debug(_LOG, "relay_close_failed", relay=relay.url, error=str(e))
                relay.ws = None
        await self._notifications.put(None)

    async def _default_connector(self, url: str) -> Any:
        return await websockets.connect(url, open_timeout=self._connect_timeout, max_size=2 ** 22)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def subscribe(self, filters: Sequence[Filter]) -> str:
        """
        Replace the live subscription with one matching `filters`.

        Returns:
            The new subscription id.
        """
        old_id = self._sub_id
        sub_id = secrets.token_hex(8)
        self._sub_id = sub_id

        if old_id is not None:
            await self._broadcast(["CLOSE", old_id])

        sent = await self._broadcast(["REQ", sub_id, *[f.to_dict() for f in filters]])
        info(_LOG, "subscribed", sub_id=sub_id, filters=len(filters), relays=sent)
        return sub_id

    async def notifications(self) -> AsyncIterator[Notification]:
        """Yield live-subscription notifications until close()."""
        while True:
            item = await self._notifications.get()
            if item is None:
                return
            yield item

    async def query_events(self, filters: Sequence[Filter], timeout: float) -> List[Event]:
        """
        Fetch stored events matching `filters` from every connected relay.

        Resolves when all relays signalled end of stored events, or when
        `timeout` elapses, whichever comes first; events collected so far
        are returned either way.

        Returns:
            Matching events, newest first, duplicates removed.

        Raises:
            RelayError: If no relay is connected.
        """
        connected = self.connected_relays()
        if not connected:
            raise RelayError("no connected relay to query")

        sub_id = secrets.token_hex(8)
        pending = _PendingQuery(waiting_on=set(connected))
        self._pending[sub_id] = pending
        try:
            await self._broadcast(["REQ", sub_id, *[f.to_dict() for f in filters]])
            try:
                await asyncio.wait_for(pending.done.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                verbose(_LOG, "query_timeout", sub_id=sub_id, collected=len(pending.events),
                        missing=len(pending.waiting_on))
        finally:
            self._pending.pop(sub_id, None)
            await self._broadcast(["CLOSE", sub_id])

        return sorted(pending.events.values(), key=lambda e: e.created_at, reverse=True)

    async def get_contacts(self, timeout: float) -> List[str]:
        """
        Pubkeys listed in the newest contact list of our own identity.

        Raises:
            RelayError: If no identity is configured or no relay is connected.
        """
        if self._public_key is None:
            raise RelayError("contact list requires a configured public key")

        events = await self.query_events(
            [Filter(kinds=(EventKind.CONTACT_LIST.value,), authors=(self._public_key,), limit=1)],
            timeout=timeout,
        )
        if not events:
            return []
        # dedup, keep order
        return list(OrderedDict.fromkeys(events[0].tag_values("p")))

    # =========================================================================
    # Wire handling
    # =========================================================================

    async def _broadcast(self, message: List[Any]) -> int:
        payload = json.dumps(message, ensure_ascii=False)
        sent = 0
        for relay in self._relays.values():
            if not relay.connected:
                continue
            try:
                await relay.ws.send(payload)
                sent += 1
            except (ConnectionClosed, OSError) as e:
                warn(_LOG, "relay_send_failed", relay=relay.url, error=str(e))
        return sent

    async def _read_loop(self, relay: _Relay) -> None:
        try:
            async for raw in relay.ws:
                self._dispatch(relay.url, raw)
        except ConnectionClosed as e:
            warn(_LOG, "relay_disconnected", relay=relay.url, error=str(e))
        finally:
            relay.ws = None
            for pending in list(self._pending.values()):
                pending.relay_finished(relay.url)

    def _dispatch(self, relay_url: str, raw: Any) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            debug(_LOG, "relay_message_unparsable", relay=relay_url)
            return
        if not isinstance(message, list) or not message:
            return

        msg_type = message[0]
        debug(_LOG, "relay_message", relay=relay_url, type=msg_type)

        if msg_type == "EVENT" and len(message) >= 3:
            self._on_event(relay_url, str(message[1]), message[2])
        elif msg_type == "EOSE" and len(message) >= 2:
            sub_id = str(message[1])
            pending = self._pending.get(sub_id)
            if pending is not None:
                pending.relay_finished(relay_url)
            elif sub_id == self._sub_id:
                self._notifications.put_nowait(EndOfStoredEvents(relay_url, sub_id))
        elif msg_type == "CLOSED" and len(message) >= 2:
            sub_id = str(message[1])
            reason = str(message[2]) if len(message) >= 3 else ""
            pending = self._pending.get(sub_id)
            if pending is not None:
                pending.relay_finished(relay_url)
            warn(_LOG, "relay_closed_subscription", relay=relay_url, sub_id=sub_id, reason=reason)
            self._notifications.put_nowait(Notice(relay_url, reason, subscription_id=sub_id))
        elif msg_type == "NOTICE" and len(message) >= 2:
            verbose(_LOG, "relay_notice", relay=relay_url, notice=str(message[1]))
            self._notifications.put_nowait(Notice(relay_url, str(message[1])))

    def _on_event(self, relay_url: str, sub_id: str, payload: Any) -> None:
        try:
            event = Event.model_validate(payload)
        except ValidationError:
            debug(_LOG, "relay_event_invalid", relay=relay_url)
            return

        pending = self._pending.get(sub_id)
        if pending is not None:
            pending.add(event)
            return

        if sub_id != self._sub_id:
            return

        if event.id in self._seen:
            return
        self._seen[event.id] = None
        while len(self._seen) > SEEN_EVENTS_MAX:
            self._seen.popitem(last=False)

        self._notifications.put_nowait(EventNotification(relay_url, sub_id, event))
