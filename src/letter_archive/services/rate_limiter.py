"""Fixed-window rate limiting on top of the cache store."""

import time
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from letter_archive.cache_keys import rate_limit_key
from letter_archive.config import settings
from letter_archive.errors import ArchiveError, ErrorKind
from letter_archive.protocols import CacheStore


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float


class RateLimiter:
    """Counts requests per client in fixed windows.

    The counter for a window lives under ``rate_limit:<client>:<window-start>``
    and expires with the window. When the cache fails, requests are let
    through.
    """

    def __init__(
        self,
        cache: CacheStore,
        limit: int,
        window: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache = cache
        self._limit = limit
        self._window = window
        self._clock = clock

    @classmethod
    def create(cls, cache: CacheStore) -> "RateLimiter":
        return cls(cache=cache, limit=settings.rate_limit_requests, window=settings.rate_limit_window)

    def hit(self, client_key: str) -> RateLimitStatus:
        """Count one request for ``client_key``."""
        now = self._clock()
        window_start = int(now // self._window) * self._window
        reset_after = window_start + self._window - now
        try:
            count = self._cache.incr(rate_limit_key(client_key, window_start), 1, ttl=self._window)
        except Exception as e:
            logger.warning(f"Rate limit counter unavailable for {client_key}: {e}")
            return RateLimitStatus(True, self._limit, self._limit, reset_after)
        return RateLimitStatus(
            allowed=count <= self._limit,
            limit=self._limit,
            remaining=max(self._limit - count, 0),
            reset_after=reset_after,
        )

    def check(self, client_key: str) -> RateLimitStatus:
        """Count one request and refuse it when over the limit.

        Raises:
            ArchiveError: RATE_LIMITED when the window's budget is spent
        """
        status = self.hit(client_key)
        if not status.allowed:
            raise ArchiveError(
                ErrorKind.RATE_LIMITED,
                "Too many requests, please try again later",
                {"retry_after": int(status.reset_after) + 1},
            )
        return status
