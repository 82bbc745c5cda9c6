"""In-memory key/value cache with time-to-live expiry."""

import time
from typing import Any, Callable, Dict, Generic, Hashable, Iterable, Optional, TypeVar

from catalog_export.models.data_models import CacheEntry


T = TypeVar("T")


class TTLCache(Generic[T]):
    """Key/value store whose entries expire ``ttl`` seconds after creation.

    A read of an entry older than ``ttl`` returns absent and evicts it. There
    is no size bound: a cache lives for one pipeline run and is passed to the
    components that share it. Not safe for use from several threads; within a
    single event loop no locking is needed since no method awaits.
    """

    def __init__(self, ttl: float, now: Callable[[], float] = time.monotonic):
        if ttl < 0:
            raise ValueError(f"ttl must not be negative, got: {ttl}")
        self.ttl = ttl
        self._now = now
        self._entries: Dict[Hashable, CacheEntry[T]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable, default: Optional[T] = None) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return default

        if self._now() - entry.created_at > self.ttl:
            del self._entries[key]
            self.misses += 1
            return default

        self.hits += 1
        return entry.value

    def set(self, key: Hashable, value: T) -> None:
        self._entries[key] = CacheEntry(value=value, created_at=self._now())

    def delete(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def get_many(self, keys: Iterable[Hashable]) -> Dict[Hashable, T]:
        """Return the live entries among ``keys``; missing or expired keys are omitted."""
        found = {}
        for key in keys:
            value = self.get(key, _MISSING)
            if value is not _MISSING:
                found[key] = value
        return found

    def set_many(self, items: Dict[Hashable, T]) -> None:
        for key, value in items.items():
            self.set(key, value)

    def entry(self, key: Hashable) -> Optional[CacheEntry[T]]:
        """Raw entry access without expiry checks."""
        return self._entries.get(key)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)


_MISSING: Any = object()
