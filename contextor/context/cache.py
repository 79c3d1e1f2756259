"""Bounded LRU memoization of context selections.

A hit returns the stored SelectedContext without re-running scoring or
optimization. One lock guards the ordered map because LRU reads move
entries and therefore mutate it; concurrent writes to the same key are
last-write-wins.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from threading import Lock

from contextor.schemas.config import CacheConfig
from contextor.schemas.selection import CacheKey, SelectedContext

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A stored selection plus access bookkeeping."""

    value: SelectedContext
    created_at: float
    last_accessed: float
    access_count: int = 0

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return ttl_seconds > 0 and (now - self.created_at) > ttl_seconds


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    invalidations: int = 0
    size: int = 0
    max_entries: int = 0
    entries_by_project: dict[str, int] = field(default_factory=dict)

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class ContextCache:
    """LRU cache of SelectedContext keyed by CacheKey, with optional TTL."""

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or CacheConfig()
        self._clock = clock
        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        self._stats = CacheStats(max_entries=self._config.max_entries)
        self._lock = Lock()

    def get(self, key: CacheKey) -> SelectedContext | None:
        """Return the stored selection for *key*, or None on a miss."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return None

            now = self._clock()
            if entry.is_expired(now, self._config.ttl_seconds):
                del self._entries[key]
                self._stats.misses += 1
                self._stats.evictions += 1
                logger.debug("Cache entry expired for task %s", key.task[:12])
                return None

            entry.access_count += 1
            entry.last_accessed = now
            self._entries.move_to_end(key)
            self._stats.hits += 1
            logger.debug("Cache hit for task %s (%s)", key.task[:12], key.strategy)
            return entry.value

    def put(self, key: CacheKey, value: SelectedContext) -> None:
        """Store *value*, evicting least-recently-used entries if full."""
        with self._lock:
            now = self._clock()
            if key in self._entries:
                self._entries.move_to_end(key)
            self._entries[key] = CacheEntry(value=value, created_at=now, last_accessed=now)

            while len(self._entries) > self._config.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self._stats.evictions += 1
                logger.info(
                    "Evicted cached selection for task %s (cache full at %d)",
                    evicted.task[:12],
                    self._config.max_entries,
                )

    def invalidate(self, key: CacheKey) -> bool:
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._stats.invalidations += 1
            return True

    def invalidate_project(self, fingerprint: str) -> int:
        """Drop every entry computed for the given project fingerprint."""
        with self._lock:
            stale = [k for k in self._entries if k.project == fingerprint]
            for key in stale:
                del self._entries[key]
            self._stats.invalidations += len(stale)
        if stale:
            logger.info("Invalidated %d cached selection(s) for project %s", len(stale), fingerprint[:12])
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._stats.invalidations += len(self._entries)
            self._entries.clear()

    def stats(self) -> CacheStats:
        """Snapshot of the counters; later cache activity does not change it."""
        with self._lock:
            by_project: dict[str, int] = {}
            for key in self._entries:
                by_project[key.project] = by_project.get(key.project, 0) + 1
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                evictions=self._stats.evictions,
                invalidations=self._stats.invalidations,
                size=len(self._entries),
                max_entries=self._config.max_entries,
                entries_by_project=by_project,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries
