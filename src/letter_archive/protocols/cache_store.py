"""Cache storage protocol.

Defines the interface of the key/value store used for read-through caching
of letter data and as the counter store for rate limiting.
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class CacheStore(Protocol):
    """Protocol for TTL key/value stores.

    Implementations copy values on the way in and on the way out, so a
    caller can never mutate what another caller reads.

    Example:
        ```python
        from letter_archive.protocols import CacheStore

        cache: CacheStore = MemoryCacheStore.create()
        cache.set("letter:incoming:42", {"id": "42"}, ttl=600)
        ```
    """

    def set(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """Store a value, replacing any existing entry.

        Args:
            key: The cache key
            value: Value to store (None is not cacheable)
            ttl: Seconds until expiry. Defaults to the store default.

        Returns:
            True if stored, False otherwise
        """
        ...

    def get(self, key: str) -> Any | None:
        """Get a copy of a live value.

        Args:
            key: The cache key

        Returns:
            The value, or None on a miss (absent or expired)
        """
        ...

    def delete(self, key: str) -> int:
        """Delete one key.

        Returns:
            Number of entries deleted (0 or 1)
        """
        ...

    def delete_many(self, keys: list[str]) -> int:
        """Delete several keys.

        Returns:
            Number of entries deleted
        """
        ...

    def keys(self) -> list[str]:
        """List all non-expired keys."""
        ...

    def incr(self, key: str, amount: int = 1, ttl: float | None = None) -> int:
        """Atomically add to an integer counter.

        The expiry is set only when the counter is created.

        Returns:
            The new counter value
        """
        ...

    def flush_all(self) -> int:
        """Drop every entry.

        Returns:
            Number of entries dropped
        """
        ...

    def get_stats(self) -> dict:
        """Get store statistics (hits, misses, keys, ...)."""
        ...

    def health_check(self) -> bool:
        """Check if the store is usable."""
        ...
