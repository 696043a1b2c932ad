import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Dict, Generic, Hashable, Iterable, List, Mapping, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

base_logger = logging.getLogger("pixmap_persistence.base.cache")


@dataclass(frozen=True)
class CachedValue(Generic[V]):
    """A cached value (None for a cached miss) and the absolute time it expires."""

    value: Optional[V]
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class CacheLookup(Generic[V]):
    """
    Result of a single-key lookup.

    `version` identifies the last write seen for the key and must be handed
    back to `put_if_unchanged` when populating the cache after a miss.
    """

    hit: bool
    value: Optional[V] = None
    version: int = 0


@dataclass
class CachePartition(Generic[K, V]):
    """Result of a multi-key lookup split into hits and misses."""

    hits: Dict[K, Optional[V]] = field(default_factory=dict)
    misses: List[K] = field(default_factory=list)
    versions: Dict[K, int] = field(default_factory=dict)


class TTLCache(Generic[K, V]):
    """
    In-process key/value cache with a fixed time-to-live per entry.

    Expiry is absolute: an entry written at time T expires at T + ttl and is
    never returned as a hit afterwards. Negative results are stored as
    `None` values and are hits like any other entry.

    All map access is serialized by a single asyncio.Lock owned by the
    instance. The lock is only held for the dictionary operations, never
    across I/O, so callers are free to query the database between a lookup
    and the subsequent `put_if_unchanged`.

    Every write or invalidation stamps the key with a fresh version. A
    read-through fill started before such a write is rejected, which keeps a
    slow reader from caching a value older than the latest write.
    """

    def __init__(
        self,
        ttl: timedelta,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ):
        if ttl <= timedelta(0):
            raise ValueError(f"Cache TTL must be positive, got {ttl}")
        self._ttl = ttl.total_seconds()
        self._clock = clock
        self._entries: Dict[K, CachedValue[V]] = {}
        self._versions: Dict[K, int] = {}
        self._counter = itertools.count(1)
        self._cleared_at = 0
        self._lock = asyncio.Lock()
        self._logger = logging.getLogger(f"{base_logger.name}.{name}")

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self._ttl)

    def __len__(self) -> int:
        return len(self._entries)

    # --- Internal helpers (caller holds the lock) ---

    def _version_of(self, key: K) -> int:
        return self._versions.get(key, self._cleared_at)

    def _stamp(self, key: K) -> None:
        self._versions[key] = next(self._counter)

    def _store(self, key: K, value: Optional[V], now: float) -> None:
        self._entries[key] = CachedValue(value, now + self._ttl)
        self._stamp(key)

    def _get_live(self, key: K, now: float) -> Optional[CachedValue[V]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(now):
            del self._entries[key]
            self._logger.debug(f"Cache entry for '{key}' expired")
            return None
        return entry

    # --- Reads ---

    async def lookup(self, key: K) -> CacheLookup[V]:
        async with self._lock:
            entry = self._get_live(key, self._clock())
            if entry is None:
                return CacheLookup(hit=False, version=self._version_of(key))
            return CacheLookup(hit=True, value=entry.value, version=self._version_of(key))

    async def get(self, key: K) -> Optional[V]:
        """Return the cached value, or None on a miss or a cached negative entry."""
        return (await self.lookup(key)).value

    async def lookup_many(self, keys: Iterable[K]) -> CachePartition[K, V]:
        partition: CachePartition[K, V] = CachePartition()
        async with self._lock:
            now = self._clock()
            for key in keys:
                entry = self._get_live(key, now)
                if entry is None:
                    partition.misses.append(key)
                    partition.versions[key] = self._version_of(key)
                else:
                    partition.hits[key] = entry.value
        return partition

    # --- Writes ---

    async def put(self, key: K, value: Optional[V]) -> None:
        async with self._lock:
            self._store(key, value, self._clock())

    async def put_many(self, items: Mapping[K, Optional[V]]) -> None:
        async with self._lock:
            now = self._clock()
            for key, value in items.items():
                self._store(key, value, now)

    async def put_if_unchanged(self, key: K, value: Optional[V], version: int) -> bool:
        """Populate `key` unless it was written or invalidated after `version` was read."""
        async with self._lock:
            if self._version_of(key) != version:
                self._logger.debug(f"Skipping stale fill for '{key}'")
                return False
            self._store(key, value, self._clock())
            return True

    async def put_many_if_unchanged(
        self, items: Mapping[K, Optional[V]], versions: Mapping[K, int]
    ) -> int:
        stored = 0
        async with self._lock:
            now = self._clock()
            for key, value in items.items():
                if self._version_of(key) != versions.get(key, self._cleared_at):
                    continue
                self._store(key, value, now)
                stored += 1
        return stored

    async def invalidate(self, key: K) -> None:
        async with self._lock:
            self._entries.pop(key, None)
            self._stamp(key)

    async def invalidate_many(self, keys: Iterable[K]) -> None:
        async with self._lock:
            for key in keys:
                self._entries.pop(key, None)
                self._stamp(key)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            self._versions.clear()
            self._cleared_at = next(self._counter)
        self._logger.debug("Cache cleared")

    async def purge_expired(self) -> int:
        """
        Drop every expired entry and return how many were removed.

        Version stamps of keys left without an entry are dropped too. The
        baseline version moves forward, so a fill whose lookup happened
        before the purge is still rejected.
        """
        async with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            orphaned = [k for k in self._versions if k not in self._entries]
            if orphaned:
                self._cleared_at = next(self._counter)
                for key in orphaned:
                    del self._versions[key]
        if orphaned:
            self._logger.debug(f"Dropped {len(orphaned)} version stamps without a live entry")
        return len(expired)

    @property
    def tracked_keys(self) -> int:
        """Number of keys that currently carry a version stamp."""
        return len(self._versions)
