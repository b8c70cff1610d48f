"""TTL cache for registry metadata and resolved packages."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

from constants import CacheNamespace, Constants

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry:
    """A single cache entry; ``expires_at`` of None never expires."""

    key: str
    payload: bytes
    fetched_at: float
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        """Check if this entry has expired at ``now``."""
        return self.expires_at is not None and now >= self.expires_at


class CacheStore(Protocol):
    """Key/value store for raw cached bytes."""

    def get(self, key: str) -> Optional[CacheEntry]:
        ...

    def set(self, key: str, payload: bytes, ttl: Optional[float] = None) -> CacheEntry:
        ...

    def invalidate(self, key: str) -> None:
        ...

    def clear(self) -> None:
        ...

    def entries(self) -> List[CacheEntry]:
        ...

    def now(self) -> float:
        ...


class MemoryCacheStore:
    """In-process CacheStore with an injectable clock.

    Expired entries are dropped lazily on read; they still count towards
    ``entries()`` until then.
    """

    def __init__(self, clock: Optional[Clock] = None, max_entries: int = Constants.CACHE_MAX_ENTRIES):
        """Initialize the store.

        Args:
            clock: Callable returning the current time in seconds.
            max_entries: Entry count above which the oldest entries are evicted.
        """
        self._clock = clock or time.time
        self._cache: Dict[str, CacheEntry] = {}
        self._max_entries = max_entries

    def now(self) -> float:
        """Current time according to the store's clock."""
        return self._clock()

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for ``key`` or None if missing/expired."""
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.is_expired(self.now()):
            del self._cache[key]
            return None
        return entry

    def set(self, key: str, payload: bytes, ttl: Optional[float] = None) -> CacheEntry:
        """Store ``payload`` under ``key``; ``ttl`` of None never expires."""
        now = self.now()
        expires_at = now + ttl if ttl is not None else None
        entry = CacheEntry(key=key, payload=bytes(payload), fetched_at=now, expires_at=expires_at)
        self._cache[key] = entry

        if len(self._cache) > self._max_entries:
            self._evict_oldest(max(1, self._max_entries // 10))
        return entry

    def invalidate(self, key: str) -> None:
        """Drop a single entry."""
        self._cache.pop(key, None)

    def clear(self) -> None:
        """Clear all cached entries."""
        self._cache.clear()

    def entries(self) -> List[CacheEntry]:
        """All stored entries, expired ones included."""
        return list(self._cache.values())

    def _evict_oldest(self, count: int) -> None:
        """Evict the oldest entries."""
        sorted_keys = sorted(self._cache.keys(), key=lambda k: self._cache[k].fetched_at)
        for key in sorted_keys[:count]:
            del self._cache[key]
        logger.debug("Evicted %d cache entries", min(count, len(sorted_keys)))


class MetadataCache:
    """Shared cache for registry documents and resolved packages.

    Metadata documents expire after ``metadata_ttl`` seconds; resolved
    packages never expire and are only dropped by ``clear()``.
    """

    def __init__(self, store: Optional[CacheStore] = None, metadata_ttl: float = Constants.METADATA_TTL_SEC):
        self._store: CacheStore = store if store is not None else MemoryCacheStore()
        self._metadata_ttl = metadata_ttl

    @property
    def store(self) -> CacheStore:
        return self._store

    @staticmethod
    def metadata_key(name: str) -> str:
        return f"{CacheNamespace.METADATA.value}:{name}"

    @staticmethod
    def resolved_key(name: str) -> str:
        return f"{CacheNamespace.RESOLVED.value}:{name}"

    def get_metadata(self, name: str) -> Optional[bytes]:
        entry = self._store.get(self.metadata_key(name))
        return entry.payload if entry is not None else None

    def put_metadata(self, name: str, payload: bytes) -> CacheEntry:
        return self._store.set(self.metadata_key(name), payload, ttl=self._metadata_ttl)

    def get_resolved(self, name: str) -> Optional[bytes]:
        entry = self._store.get(self.resolved_key(name))
        return entry.payload if entry is not None else None

    def put_resolved(self, name: str, payload: bytes) -> CacheEntry:
        return self._store.set(self.resolved_key(name), payload)

    def invalidate(self, name: str) -> None:
        """Drop both the metadata and resolved entries for ``name``."""
        self._store.invalidate(self.metadata_key(name))
        self._store.invalidate(self.resolved_key(name))

    def clear(self) -> None:
        """Clear all cached entries."""
        self._store.clear()

    def stats(self) -> Dict[str, Any]:
        """Entry count, payload bytes and the share of unexpired entries.

        ``hit_rate`` is valid entries over all entries, not a request-level
        hit/miss ratio.
        """
        now = self._store.now()
        entries = self._store.entries()
        valid = sum(1 for e in entries if not e.is_expired(now))
        return {
            "entries": len(entries),
            "size": sum(len(e.payload) for e in entries),
            "hit_rate": valid / len(entries) if entries else 0,
        }
