"""
Nostr Event and Profile Models.

Events arrive from relays as JSON objects (NIP-01) and are validated into
immutable pydantic models. The narrator never creates or mutates events.

Kinds the narrator cares about:
    0  metadata      - author profile JSON in `content`
    1  text note     - narrated
    3  contact list  - `p` tags list who the author follows
    7  reaction      - narrated as a fixed sentence
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from nostr_narrator.core.errors import MetadataFetchError


class EventKind(Enum):
    """
    Closed set of event kinds the triage loop dispatches on.

    Anything not listed maps to OTHER, so dispatch always has a default arm.
    """
    METADATA = 0
    TEXT_NOTE = 1
    CONTACT_LIST = 3
    REACTION = 7
    OTHER = -1

    @classmethod
    def from_number(cls, kind: int) -> "EventKind":
        try:
            return cls(kind)
        except ValueError:
            return cls.OTHER

    @property
    def label(self) -> str:
        return self.name.lower()


class Event(BaseModel):
    """A signed Nostr event as received from a relay."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: List[List[str]] = Field(default_factory=list)
    content: str = ""
    sig: str = ""

    @property
    def event_kind(self) -> EventKind:
        return EventKind.from_number(self.kind)

    @property
    def short_id(self) -> str:
        return self.id[:8]

    def tag_values(self, name: str) -> List[str]:
        """First value of every tag called `name` (e.g. all `p` pubkeys)."""
        return [tag[1] for tag in self.tags if len(tag) >= 2 and tag[0] == name]


class ProfileMetadata(BaseModel):
    """
    Author display metadata (kind 0 content).

    Only the two name fields matter for narration; everything else a
    client puts in the profile is ignored.
    """
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    display_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("display_name", "displayName"),
    )
    name: Optional[str] = None

    @classmethod
    def from_content(cls, content: str) -> "ProfileMetadata":
        """
        Parse the JSON content of a metadata event.

        Raises:
            MetadataFetchError: If content is not a JSON object with
                string (or null) name fields.
        """
        try:
            return cls.model_validate_json(content)
        except ValidationError as e:
            raise MetadataFetchError(
                "invalid metadata content",
                {"errors": e.error_count()},
            ) from e


@dataclass(frozen=True)
class Filter:
    """
    A NIP-01 subscription filter.

    Attributes:
        kinds: Event kinds to match.
        authors: Author pubkeys (hex) to match; None matches any author.
        pubkeys: Values of `#p` tags to match (mentions).
        limit: Max stored events to replay; 0 asks for live events only.
    """
    kinds: tuple[int, ...] = ()
    authors: Optional[tuple[str, ...]] = None
    pubkeys: Optional[tuple[str, ...]] = None
    limit: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.kinds:
            out["kinds"] = list(self.kinds)
        if self.authors is not None:
            out["authors"] = list(self.authors)
        if self.pubkeys is not None:
            out["#p"] = list(self.pubkeys)
        if self.limit is not None:
            out["limit"] = self.limit
        return out


@dataclass(frozen=True)
class EventNotification:
    """A data event delivered on the live subscription."""
    relay_url: str
    subscription_id: str
    event: Event


@dataclass(frozen=True)
class EndOfStoredEvents:
    """Relay finished replaying stored events for a subscription."""
    relay_url: str
    subscription_id: str


@dataclass(frozen=True)
class Notice:
    """Human-readable NOTICE or CLOSED message from a relay."""
    relay_url: str
    message: str
    subscription_id: Optional[str] = field(default=None)


Notification = Union[EventNotification, EndOfStoredEvents, Notice]
