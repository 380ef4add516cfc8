"""
Trustee Portal - Rate Limit Counter Stores

Windowed request counters behind one interface so a process-local map and a
shared Redis instance are interchangeable.
"""

from __future__ import annotations

import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from trustee_portal.core.logging import LoggerMixin
from trustee_portal.storage.cache.redis import RedisCache


@dataclass
class WindowState:
    """Hits in the current window and when the window resets (epoch seconds)."""
    count: int
    reset_at: float

    def retry_after(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        return max(1, math.ceil(self.reset_at - now))


class CounterStore(ABC, LoggerMixin):
    """Interface over windowed counters."""

    @abstractmethod
    async def increment(self, key: str, window_seconds: int) -> WindowState:
        """Count one hit, opening a new window if the previous one expired."""
        pass

    @abstractmethod
    async def peek(self, key: str) -> Optional[WindowState]:
        """Current window without counting a hit, or None."""
        pass

    @abstractmethod
    async def release(self, key: str) -> None:
        """Give back one hit in the current window; never drops below zero."""
        pass

    @abstractmethod
    async def reset(self, key: str) -> None:
        pass

    @abstractmethod
    async def evict_expired(self) -> int:
        """Drop expired windows and return how many were removed."""
        pass


class InMemoryCounterStore(CounterStore):
    """
    Process-local store.

    Every operation completes without awaiting, so on a single event loop it
    is atomic without locks and the sweep never blocks request handling.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: dict[str, WindowState] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def increment(self, key: str, window_seconds: int) -> WindowState:
        now = self._clock()
        entry = self._entries.get(key)
        if entry is None or entry.reset_at <= now:
            entry = WindowState(count=0, reset_at=now + window_seconds)
            self._entries[key] = entry
        entry.count += 1
        return WindowState(count=entry.count, reset_at=entry.reset_at)

    async def peek(self, key: str) -> Optional[WindowState]:
        entry = self._entries.get(key)
        if entry is None or entry.reset_at <= self._clock():
            return None
        return WindowState(count=entry.count, reset_at=entry.reset_at)

    async def release(self, key: str) -> None:
        entry = self._entries.get(key)
        if entry is not None and entry.reset_at > self._clock() and entry.count > 0:
            entry.count -= 1

    async def reset(self, key: str) -> None:
        self._entries.pop(key, None)

    async def evict_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.reset_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)


class RedisCounterStore(CounterStore):
    """Shared store for horizontally scaled deployments; Redis TTLs do the eviction."""

    def __init__(self, cache: RedisCache, prefix: str = "ratelimit:"):
        self._cache = cache
        self._prefix = prefix

    async def increment(self, key: str, window_seconds: int) -> WindowState:
        count, ttl = await self._cache.incr_window(self._prefix + key, window_seconds)
        return WindowState(count=count, reset_at=time.time() + ttl)

    async def peek(self, key: str) -> Optional[WindowState]:
        window = await self._cache.get_window(self._prefix + key)
        if window is None:
            return None
        count, ttl = window
        return WindowState(count=count, reset_at=time.time() + ttl)

    async def release(self, key: str) -> None:
        await self._cache.decr_window(self._prefix + key)

    async def reset(self, key: str) -> None:
        await self._cache.delete(self._prefix + key)

    async def evict_expired(self) -> int:
        return 0
