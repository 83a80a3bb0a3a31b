"""In-process implementation of CacheStore.

Single-process TTL key/value store. Entries expire lazily (a read after
``expires_at`` is a miss) and actively (a background thread evicts dead
entries every ``sweep_interval`` seconds so memory does not grow with
entries nobody reads again).
"""

import copy
import threading
import time
from typing import Any, Callable

from loguru import logger

from letter_archive.config import settings
from letter_archive.entities import CacheEntryEntity


class MemoryCacheStore:
    """Thread-safe TTL cache held in process memory.

    This class satisfies the CacheStore protocol through structural
    typing - no explicit inheritance needed.

    Example:
        ```python
        cache = MemoryCacheStore.create(default_ttl=300, sweep_interval=60)
        cache.start()  # background expiry sweep
        cache.set("letter:incoming:42", {"id": "42"}, ttl=600)
        cache.get("letter:incoming:42")
        cache.close()
        ```
    """

    def __init__(
        self,
        default_ttl: float = 300,
        sweep_interval: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache store.

        Args:
            default_ttl: TTL in seconds used when ``set`` gets none.
            sweep_interval: Seconds between background expiry sweeps.
            clock: Monotonic clock, injectable for tests.
        """
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self._default_ttl = default_ttl
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, CacheEntryEntity] = {}
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0, "expired": 0}

    @classmethod
    def create(
        cls,
        default_ttl: float | None = None,
        sweep_interval: float | None = None,
    ) -> "MemoryCacheStore":
        """Factory method to create MemoryCacheStore with defaults from settings.

        Args:
            default_ttl: Default TTL in seconds. If None, uses the list TTL.
            sweep_interval: Sweep interval. If None, uses settings.

        Returns:
            Configured (not yet started) MemoryCacheStore
        """
        return cls(
            default_ttl=default_ttl or settings.cache_list_ttl,
            sweep_interval=sweep_interval or settings.cache_sweep_interval,
        )

    # Lifecycle

    def start(self) -> None:
        """Start the background expiry sweep."""
        with self._lock:
            if self._sweeper is not None and self._sweeper.is_alive():
                return
            self._stop.clear()
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                name="cache-expiry-sweep",
                daemon=True,
            )
            self._sweeper.start()
        logger.debug(f"Cache expiry sweep started (every {self._sweep_interval}s)")

    def close(self) -> None:
        """Stop the sweep thread and drop all entries."""
        self._stop.set()
        sweeper = self._sweeper
        if sweeper is not None and sweeper is not threading.current_thread():
            sweeper.join(timeout=5)
        self._sweeper = None
        dropped = self.flush_all()
        logger.debug(f"Cache closed, {dropped} entries dropped")

    def __enter__(self) -> "MemoryCacheStore":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self._sweep_interval):
            try:
                evicted = self.sweep_expired()
                if evicted:
                    logger.debug(f"Cache sweep evicted {evicted} expired entries")
            except Exception as e:
                logger.warning(f"Cache sweep failed: {e}")

    # Operations

    def set(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """Store a private copy of ``value`` under ``key``.

        Args:
            key: The cache key
            value: Value to store (None is not cacheable)
            ttl: Seconds until expiry. Defaults to the store default.

        Returns:
            True if stored, False if the value was None or ttl not positive
        """
        if value is None:
            return False
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= 0:
            return False

        entry = CacheEntryEntity(
            key=key,
            value=copy.deepcopy(value),
            expires_at=self._clock() + ttl,
        )
        with self._lock:
            self._entries[key] = entry
            self._stats["sets"] += 1
        return True

    def get(self, key: str) -> Any | None:
        """Get a copy of a live value.

        Args:
            key: The cache key

        Returns:
            The value, or None on a miss (absent or expired)
        """
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                self._stats["misses"] += 1
                return None
            self._stats["hits"] += 1
            value = entry.value
        return copy.deepcopy(value)

    def has(self, key: str) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    def ttl(self, key: str) -> float | None:
        """Seconds left before ``key`` expires, or None if it is not live."""
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            return entry.expires_at - self._clock()

    def delete(self, key: str) -> int:
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None:
                return 0
            self._stats["deletes"] += 1
            return 0 if entry.is_expired(self._clock()) else 1

    def delete_many(self, keys: list[str]) -> int:
        return sum(self.delete(key) for key in keys)

    def keys(self) -> list[str]:
        now = self._clock()
        with self._lock:
            return [key for key, entry in self._entries.items() if not entry.is_expired(now)]

    def incr(self, key: str, amount: int = 1, ttl: float | None = None) -> int:
        """Atomically add to an integer counter.

        A missing or expired counter starts from zero with a fresh TTL; an
        existing counter keeps its original expiry (fixed window).

        Returns:
            The new counter value
        """
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                ttl = self._default_ttl if ttl is None else ttl
                entry = CacheEntryEntity(key=key, value=amount, expires_at=self._clock() + ttl)
            else:
                entry = CacheEntryEntity(
                    key=key,
                    value=int(entry.value) + amount,
                    expires_at=entry.expires_at,
                )
            self._entries[key] = entry
            self._stats["sets"] += 1
            return entry.value

    def flush_all(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count

    def sweep_expired(self) -> int:
        """Physically evict expired entries.

        Returns:
            Number of entries evicted
        """
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._stats["expired"] += len(expired)
        return len(expired)

    def get_stats(self) -> dict:
        """Get cache statistics.

        Returns:
            Dictionary with hit/miss counters and key counts
        """
        with self._lock:
            stats = dict(self._stats)
            stored = len(self._entries)
        lookups = stats["hits"] + stats["misses"]
        stats["keys"] = len(self.keys())
        stats["stored_entries"] = stored
        stats["hit_rate"] = stats["hits"] / lookups if lookups else 0.0
        stats["default_ttl"] = self._default_ttl
        stats["sweep_interval"] = self._sweep_interval
        return stats

    def health_check(self) -> bool:
        return self._sweeper is None or self._sweeper.is_alive()

    def _live_entry(self, key: str) -> CacheEntryEntity | None:
        # Caller holds the lock
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._stats["expired"] += 1
            return None
        return entry
