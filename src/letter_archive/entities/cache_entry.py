"""Cache entry domain entity."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CacheEntryEntity:
    """A value held by the cache store.

    Attributes:
        key: The cache key
        value: Stored value (a private copy of what the caller passed in)
        expires_at: Clock reading after which the entry counts as a miss
    """

    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at
