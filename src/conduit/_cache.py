"""
Response cache stores for the conduit SDK.

A cache store has a narrow scope: remember a value under a key for a number of
seconds. Deciding what is cacheable and for how long is the job of
`CachingMiddleware`.

Expiration is lazy: entries are evicted when they are looked up after their
deadline, never by a background sweep.

Example:
    >>> from conduit._cache import InMemoryCacheStore
    >>> store = InMemoryCacheStore()
    >>> store.set("key", "value", ttl=60)
    >>> store.get("key")
    'value'
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, override

from conduit._clock import SYSTEM_CLOCK, Clock


class CacheStore(ABC):
    """
    Abstract key/value store with per-entry time-to-live.

    Implementations must be safe to share across threads.
    """

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the value for `key`, or None if absent or expired."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store `value` under `key` for `ttl` seconds, replacing any previous entry."""
        pass

    @abstractmethod
    def has(self, key: str) -> bool:
        """Return True if `key` holds a live entry. Expired entries are evicted."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the entry for `key`, if any."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove all entries."""
        pass


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    expires_at: float


class InMemoryCacheStore(CacheStore):
    """
    Process-local cache store backed by a dict.

    Args:
        clock: Time source for expiration (monotonic time).
    """

    def __init__(self, clock: Clock = SYSTEM_CLOCK):
        self.clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def _live_entry(self, key: str) -> CacheEntry | None:
        # Caller must hold the lock
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock.monotonic() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    @override
    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._live_entry(key)
            return entry.value if entry else None

    @override
    def set(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=self.clock.monotonic() + ttl)

    @override
    def has(self, key: str) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    @override
    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    @override
    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def count(self) -> int:
        """Return the number of live entries, purging expired ones first."""
        with self._lock:
            for key in list(self._entries):
                self._live_entry(key)
            return len(self._entries)

    def __len__(self) -> int:
        return self.count()
