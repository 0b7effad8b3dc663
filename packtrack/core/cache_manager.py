"""
Cache management for PackTrack.

Process-wide caches are explicit objects constructed at startup and passed
to the services that use them:

- ``TTLCache``: per-key expiry, used for carrier tracking results
- ``ResultCache``: the merged order list plus the single in-flight refresh
- ``TokenStore``: the carrier OAuth bearer token
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


class TTLCache(Generic[T]):
    """
    In-memory key/value cache where every entry carries its own TTL.
    """

    def __init__(self, clock: Clock = time.time):
        self._clock = clock
        self._entries: Dict[str, Dict[str, Any]] = {}

    def get(self, key: str) -> Optional[T]:
        """
        Retrieve a cached value.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/expired
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() >= entry["expires_at"]:
            del self._entries[key]
            return None

        return entry["data"]

    def set(self, key: str, data: T, ttl_seconds: float) -> None:
        """Store a value; a non-positive TTL means "do not cache"."""
        if ttl_seconds <= 0:
            self._entries.pop(key, None)
            return

        now = self._clock()
        self._entries[key] = {
            "data": data,
            "created_at": now,
            "expires_at": now + ttl_seconds,
        }
        self._cleanup_expired(now)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        expired = sum(1 for entry in self._entries.values() if now >= entry["expires_at"])
        return {"total_keys": len(self._entries), "expired_keys": expired}

    def _cleanup_expired(self, now: float) -> None:
        expired_keys = [key for key, entry in self._entries.items() if now >= entry["expires_at"]]
        for key in expired_keys:
            del self._entries[key]

        if expired_keys:
            logger.debug(f"Cleaned up {len(expired_keys)} expired cache entries")


@dataclass
class CacheEntry(Generic[T]):
    """Snapshot of the merged list and when it was fetched."""

    fetched_at: float
    data: List[T] = field(default_factory=list)

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return now - self.fetched_at < ttl_seconds


class ResultCache(Generic[T]):
    """
    Holds the merged order list, the last successful sync time and the
    single pending refresh shared by concurrent readers.
    """

    def __init__(self, ttl_seconds: float, clock: Clock = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.entry: Optional[CacheEntry[T]] = None
        self.last_sync: Optional[float] = None
        self.pending: Optional[asyncio.Task] = None

    def now(self) -> float:
        return self._clock()

    def is_fresh(self) -> bool:
        return self.entry is not None and self.entry.is_fresh(self._clock(), self.ttl_seconds)

    @property
    def data(self) -> List[T]:
        return self.entry.data if self.entry else []

    @property
    def refresh_in_flight(self) -> bool:
        return self.pending is not None and not self.pending.done()

    def replace(self, data: List[T], fetched_at: Optional[float] = None) -> None:
        """Swap in a new list wholesale and record it as the last sync."""
        fetched_at = self._clock() if fetched_at is None else fetched_at
        self.entry = CacheEntry(fetched_at=fetched_at, data=list(data))
        self.last_sync = fetched_at

    def touch(self) -> None:
        """
        Restart the freshness window without changing data or last_sync.

        An empty cache gets an empty list, so a failed pass still waits a
        full TTL before upstream is asked again.
        """
        if self.entry is None:
            self.entry = CacheEntry(fetched_at=self._clock(), data=[])
        else:
            self.entry.fetched_at = self._clock()

    def update_items(self, updater: Callable[[T], Optional[T]]) -> int:
        """
        Replace single items in place of the current list.

        ``updater`` returns the replacement for an item, or None to keep it.
        Items not replaced stay the very same objects.

        Returns:
            int: number of items replaced
        """
        if self.entry is None:
            return 0

        replaced = 0
        new_data = []
        for item in self.entry.data:
            updated = updater(item)
            if updated is None:
                new_data.append(item)
            else:
                new_data.append(updated)
                replaced += 1

        self.entry.data = new_data
        return replaced


@dataclass
class CarrierToken:
    """Bearer token and its absolute expiry (epoch seconds)."""

    value: str
    expires_at: float


class TokenStore:
    """
    Carrier OAuth token holder.

    A token is reused while ``now < expires_at - safety_margin``. After a
    failed exchange no new attempt is made until the backoff deadline.
    """

    def __init__(self, safety_margin_seconds: float = 600, clock: Clock = time.time):
        self.safety_margin_seconds = safety_margin_seconds
        self._clock = clock
        self._token: Optional[CarrierToken] = None
        self._retry_not_before: float = 0.0

    def get_valid(self) -> Optional[str]:
        if self._token is None:
            return None
        if self._clock() < self._token.expires_at - self.safety_margin_seconds:
            return self._token.value
        return None

    def store(self, value: str, expires_in: float) -> CarrierToken:
        self._token = CarrierToken(value=value, expires_at=self._clock() + expires_in)
        self._retry_not_before = 0.0
        return self._token

    def invalidate(self) -> None:
        self._token = None

    def record_failure(self, backoff_seconds: float) -> None:
        self._token = None
        self._retry_not_before = self._clock() + backoff_seconds

    def in_backoff(self) -> bool:
        return self._clock() < self._retry_not_before
