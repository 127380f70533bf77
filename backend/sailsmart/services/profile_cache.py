"""In-process profile cache with debounced invalidation.

``ProfileCache`` serves values for ``ttl`` seconds as fresh, then keeps
serving them as stale (``is_fresh=False``) until evicted by size or
invalidated, so callers can show something while they refetch.
``CoalescingInvalidator`` turns bursts of change events for one key into a
single invalidation after a fixed delay.
"""

import asyncio
import threading
import time
from typing import Any, Callable

import structlog
from cachetools import LRUCache, TTLCache

logger = structlog.get_logger(__name__)


class ProfileCache:
    def __init__(
        self,
        ttl_seconds: float = 300,
        max_items: int = 10_000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._values: LRUCache = LRUCache(maxsize=max_items)
        # Presence in _fresh means the value is still within its TTL
        self._fresh: TTLCache = TTLCache(maxsize=max_items, ttl=ttl_seconds, timer=timer)
        self._lock = threading.RLock()
        self._hits = 0
        self._stale_hits = 0
        self._misses = 0

    def get(self, key: str) -> tuple[Any, bool]:
        """Return ``(value, is_fresh)``; ``(None, False)`` on a miss."""
        with self._lock:
            value = self._values.get(key)
            if value is None:
                self._misses += 1
                return None, False
            if key in self._fresh:
                self._hits += 1
                return value, True
            self._stale_hits += 1
            return value, False

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value
            self._fresh[key] = True

    def invalidate(self, key: str) -> bool:
        with self._lock:
            self._fresh.pop(key, None)
            return self._values.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
            self._fresh.clear()

    def stats(self) -> dict[str, Any]:
        """Returns cache statistics for monitoring."""
        with self._lock:
            total = self._hits + self._stale_hits + self._misses
            hit_rate = (self._hits / total * 100) if total > 0 else 0.0
            return {
                "size": len(self._values),
                "maxsize": self._values.maxsize,
                "hits": self._hits,
                "stale_hits": self._stale_hits,
                "misses": self._misses,
                "hit_rate": round(hit_rate, 2),
            }


class CoalescingInvalidator:
    """Fixed-delay invalidation queue for a ProfileCache.

    The first request for a key schedules its invalidation ``delay_seconds``
    later; further requests before it fires are coalesced into it.
    Must be used from inside a running event loop.
    """

    def __init__(self, cache: ProfileCache, delay_seconds: float = 0.5):
        self.cache = cache
        self.delay_seconds = delay_seconds
        self._pending: dict[str, asyncio.TimerHandle] = {}
        self.fired = 0
        self.coalesced = 0

    def request(self, key: str) -> bool:
        """Queue an invalidation of ``key``.

        Returns:
            True if a new invalidation was scheduled, False if coalesced
        """
        if key in self._pending:
            self.coalesced += 1
            return False
        loop = asyncio.get_running_loop()
        self._pending[key] = loop.call_later(self.delay_seconds, self._fire, key)
        return True

    def _fire(self, key: str) -> None:
        self._pending.pop(key, None)
        self.cache.invalidate(key)
        self.fired += 1
        logger.debug("profile_cache_invalidated", key=key)

    @property
    def pending_keys(self) -> set[str]:
        return set(self._pending)

    def flush(self) -> int:
        """Fire every pending invalidation now. Returns how many fired."""
        keys = list(self._pending)
        for key in keys:
            self._pending[key].cancel()
            self._fire(key)
        return len(keys)
