# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

"""
Time-bounded caches for resolved streams and search results.

- CacheEntry: value plus creation timestamp
- TTLCache: keyed entries that expire at read time (no background sweep)
- ResolvedStream: immutable result of resolving a media identifier
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar


V = TypeVar("V")

Clock = Callable[[], float]


@dataclass(frozen=True)
class ResolvedStream:
    """A playable upstream URL for a media identifier."""

    url: str
    resolved_at: float
    format_id: str | None = None


@dataclass
class CacheEntry(Generic[V]):
    value: V
    created_at: float

    def is_fresh(self, now: float, ttl_s: float) -> bool:
        return now - self.created_at < ttl_s


@dataclass
class TTLCache(Generic[V]):
    """Mapping whose entries are valid for ``ttl_s`` seconds after ``put``.

    Stale entries are never evicted proactively; ``get`` reports them as misses
    and the next ``put`` for the key overwrites them.
    """

    ttl_s: float
    clock: Clock = time.monotonic
    _entries: dict[str, CacheEntry[V]] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def now(self) -> float:
        return self.clock()

    def get(self, key: str) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(self.clock(), self.ttl_s):
            return None
        return entry.value

    def put(self, key: str, value: V) -> None:
        entry = CacheEntry(value=value, created_at=self.clock())
        with self._lock:
            self._entries[key] = entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
