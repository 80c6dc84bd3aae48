"""Injected time-bounded cache with a get-or-compute contract.

Usage example:
    cache: TTLCache[ScoringConfig] = TTLCache(ttl_s=60.0)
    config = await cache.get_or_compute("active", load_active_config)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class _Entry(Generic[T]):
    value: T
    stored_at: float


@dataclass
class TTLCache(Generic[T]):
    """In-process cache whose entries expire *ttl_s* seconds after being stored.

    The clock is injectable so expiry can be tested without sleeping.
    Concurrent misses for the same key compute the value once.
    """

    ttl_s: float
    clock: Callable[[], float] = time.monotonic
    _entries: dict[str, _Entry[T]] = field(default_factory=dict, init=False, repr=False)
    _locks: dict[str, asyncio.Lock] = field(default_factory=dict, init=False, repr=False)

    def get(self, key: str) -> T | None:
        """Return a live entry, dropping it if expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() - entry.stored_at > self.ttl_s:
            self._entries.pop(key, None)
            return None
        return entry.value

    def set(self, key: str, value: T) -> None:
        self._entries[key] = _Entry(value=value, stored_at=self.clock())

    def invalidate(self, key: str | None = None) -> None:
        """Drop one key, or everything when *key* is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    async def get_or_compute(self, key: str, compute: Callable[[], Awaitable[T]]) -> T:
        cached = self.get(key)
        if cached is not None:
            return cached
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self.get(key)
            if cached is not None:
                return cached
            value = await compute()
            # None means "nothing to cache"; recompute next time
            if value is not None:
                self.set(key, value)
            return value
