"""
Author Metadata Cache with TTL.

Keeps the most recently fetched profile of every author seen within the
last `ttl_seconds`, so back-to-back events by the same author cost one
relay lookup.

Expiry rule:
    An entry fetched at t is served for lookups at now < t + ttl and is
    purged at now >= t + ttl. Every get() and put() purges all expired
    entries first, so a stale profile is never observable.

There is no capacity limit; memory is bounded by the number of distinct
authors seen within one TTL window. The purge is O(n) per access, which is
fine for a single listener but is the first thing to revisit if the
author fan-out grows.

Not thread-safe: only the triage loop touches it.

Example:
    >>> cache = MetadataCache(ttl_seconds=300)
    >>> cache.put(author, ProfileMetadata(name="alice"))
    >>> cache.get(author).name
    'alice'
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from nostr_narrator.core.config import Defaults
from nostr_narrator.core.logging import get_logger, verbose
from nostr_narrator.nostr.event import ProfileMetadata

_LOG = get_logger("nostr-narrator.cache")


@dataclass(frozen=True)
class CacheEntry:
    """A cached profile and the clock reading at which it was fetched."""
    metadata: ProfileMetadata
    fetched_at: float


class MetadataCache:
    """
    TTL-only profile cache keyed by author pubkey.

    Attributes:
        ttl_seconds: Entry lifetime in seconds.
    """

    def __init__(
        self,
        ttl_seconds: float = Defaults.CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Time-to-live in seconds (default: 300).
            clock: Monotonic time source, injectable for tests.
        """
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._d: Dict[str, CacheEntry] = {}

        # Statistics counters
        self._hits = 0
        self._misses = 0
        self._expirations = 0

    def get(self, author_id: str) -> Optional[ProfileMetadata]:
        """
        Look up an author's profile.

        Returns None both for authors never stored and for authors whose
        entry just expired; callers must fetch in either case.
        """
        self._purge()
        entry = self._d.get(author_id)
        if entry is None:
            self._misses += 1
            return None
        self._hits += 1
        return entry.metadata

    def put(self, author_id: str, metadata: ProfileMetadata) -> None:
        """Store (or overwrite) a profile, resetting its fetch time."""
        self._purge()
        self._d[author_id] = CacheEntry(metadata=metadata, fetched_at=self._clock())

    def _purge(self) -> None:
        now = self._clock()
        expired = [k for k, e in self._d.items() if now - e.fetched_at >= self.ttl_seconds]
        for key in expired:
            del self._d[key]
        if expired:
            self._expirations += len(expired)
            verbose(_LOG, "expired", count=len(expired), remaining=len(self._d))

    def __len__(self) -> int:
        return len(self._d)

    def __contains__(self, author_id: object) -> bool:
        # Introspection only: does not purge.
        return author_id in self._d

    def stats(self) -> Dict[str, float]:
        """
        Get cache statistics.

        Returns:
            Dictionary with hits, misses, expirations, size and ttl_seconds.
        """
        return {
            "hits": self._hits,
            "misses": self._misses,
            "expirations": self._expirations,
            "size": len(self._d),
            "ttl_seconds": self.ttl_seconds,
        }
