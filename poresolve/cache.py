"""
Bounded TTL cache for reference data.

Entries are keyed by natural key and always fetched fresh from the store
on miss, so concurrent population is safe with last-writer-wins.
"""

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, List, Optional, Sequence

from .interfaces import ReferenceStore
from .logger import get_logger
from .models import EntityKind, ReferenceEntity


_MISSING = object()


class TTLCache:
    """LRU cache with per-entry expiry."""

    def __init__(self, capacity: int = 1000, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[Hashable, tuple]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key, _MISSING)
            if entry is _MISSING:
                self.misses += 1
                return default
            value, stored_at = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                self.misses += 1
                return default
            self._entries.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: Hashable, value: Any):
        with self._lock:
            self._entries[key] = (value, self._clock())
            self._entries.move_to_end(key)
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, _MISSING) is not _MISSING

    def clear(self):
        with self._lock:
            self._entries.clear()

    def cleanup(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, stored_at) in self._entries.items() if now - stored_at > self.ttl_seconds]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING


class CachedReferenceStore:
    """
    Reference store wrapper serving natural-key lookups from a TTLCache.

    Field lookups and nearest-neighbour search pass straight through.
    """

    def __init__(self, store: ReferenceStore, cache: TTLCache):
        self.store = store
        self.cache = cache
        self.logger = get_logger()

    def find_by_keys(self, kind: EntityKind, keys: Sequence[str]) -> List[ReferenceEntity]:
        kind = EntityKind(kind)
        found: List[ReferenceEntity] = []
        missing: List[str] = []
        for key in keys:
            entity = self.cache.get((kind, key))
            if entity is None:
                missing.append(key)
            else:
                found.append(entity)

        if missing:
            fetched = self.store.find_by_keys(kind, missing)
            for entity in fetched:
                self._remember(entity)
            found.extend(fetched)

        # An external id and a natural key can name the same entity
        unique = {}
        for entity in found:
            unique.setdefault(entity.key, entity)
        return list(unique.values())

    def find_by_field(self, kind, field, value, active_only=True, limit=25):
        return self.store.find_by_field(kind, field, value, active_only=active_only, limit=limit)

    def nearest(self, kind, vector, k, restrict_keys=None):
        return self.store.nearest(kind, vector, k, restrict_keys=restrict_keys)

    def active_page(self, kind, limit, offset=0):
        return self.store.active_page(kind, limit, offset)

    def warm(self, kind: EntityKind, limit: Optional[int] = None) -> int:
        """Bulk-load one page of active entities; returns how many were cached."""
        kind = EntityKind(kind)
        limit = self.cache.capacity if limit is None else min(limit, self.cache.capacity)
        entities = self.store.active_page(kind, limit)
        for entity in entities:
            self._remember(entity)
        self.logger.info("Cache warmed", kind=kind.value, entries=len(entities))
        return len(entities)

    def _remember(self, entity: ReferenceEntity):
        self.cache.set((entity.kind, entity.key), entity)
        if entity.external_id:
            self.cache.set((entity.kind, entity.external_id), entity)
