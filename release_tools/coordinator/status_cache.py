"""TTL read-through cache shared by the CI and ArgoCD trackers."""

import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Hashable, Iterator, Optional, Tuple


class StatusCache:
    """Thread-safe TTL cache with single-flight refills per key.

    Concurrent misses on the same key wait for one ``fetch`` instead of
    each hitting the upstream API.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        """Initialize the cache.

        Args:
            ttl: Seconds an entry stays fresh. Zero disables caching.
            clock: Monotonic time source (replaced in tests).
        """
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[Hashable, Tuple[Any, float]] = {}
        self._key_locks: Dict[Hashable, threading.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    def _fresh(self, key: Hashable) -> Tuple[bool, Any]:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return False, None
        value, stored_at = entry
        if self._clock() - stored_at < self.ttl:
            return True, value
        return False, None

    @contextmanager
    def _refill_lock(self, key: Hashable) -> Iterator[None]:
        """Hold the per-key lock; it exists only while a refill is in flight."""
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._lock:
                self._waiters[key] -= 1
                if not self._waiters[key]:
                    del self._waiters[key]
                    del self._key_locks[key]

    def get(self, key: Hashable) -> Optional[Any]:
        """Fresh cached value for ``key``, or None."""
        hit, value = self._fresh(key)
        return value if hit else None

    def get_or_fetch(self, key: Hashable, fetch: Callable[[], Any]) -> Any:
        """Return the cached value, calling ``fetch`` on a miss.

        Exceptions from ``fetch`` propagate and nothing is stored.
        """
        hit, value = self._fresh(key)
        if hit:
            return value

        with self._refill_lock(key):
            # Another thread may have refilled while we waited
            hit, value = self._fresh(key)
            if hit:
                return value
            value = fetch()
            with self._lock:
                self._entries[key] = (value, self._clock())
            return value

    def invalidate(self, key: Hashable) -> None:
        """Drop one entry."""
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop all entries."""
        with self._lock:
            self._entries.clear()
