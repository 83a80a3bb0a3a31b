"""Cache invalidation rules.

A mutation of an entity drops its own entity key and every list key of the
same entity type and scope. Keys of other entity types are never touched.
The key computations are pure; ``CacheInvalidator`` applies them to a live
cache and never lets a cache failure escape.
"""

from typing import Iterable

from loguru import logger

from letter_archive.cache_keys import letter_key, letters_list_prefix, notifications_prefix
from letter_archive.entities import Direction
from letter_archive.protocols import CacheStore


def letter_invalidation_keys(
    direction: Direction, letter_id: str, cached_keys: Iterable[str]
) -> list[str]:
    """Keys to drop after a letter of ``direction`` changed."""
    prefix = letters_list_prefix(direction)
    return [letter_key(direction, letter_id)] + [key for key in cached_keys if key.startswith(prefix)]


def notification_invalidation_keys(
    user_ids: Iterable[str | None], cached_keys: Iterable[str]
) -> list[str]:
    """Keys to drop after notifications addressed to ``user_ids`` changed.

    A None user id stands for a broadcast, which is visible in every user's
    lists.
    """
    prefixes = {notifications_prefix(user_id) for user_id in user_ids}
    return [key for key in cached_keys if key.startswith(tuple(prefixes))]


class CacheInvalidator:
    """Applies the invalidation rules to a cache store.

    Errors from the cache are logged and swallowed: a failed invalidation
    leaves entries that expire with their TTL.
    """

    def __init__(self, cache: CacheStore) -> None:
        self._cache = cache

    def letter_changed(self, direction: Direction, letter_id: str) -> int:
        try:
            keys = letter_invalidation_keys(direction, letter_id, self._cache.keys())
            dropped = self._cache.delete_many(keys)
        except Exception as e:
            logger.warning(f"Cache invalidation failed for {direction.value} letter {letter_id}: {e}")
            return 0
        logger.debug(f"Invalidated {dropped} cache keys after {direction.value} letter {letter_id} changed")
        return dropped

    def notifications_changed(self, user_ids: Iterable[str | None]) -> int:
        user_ids = list(user_ids)
        if not user_ids:
            return 0
        try:
            keys = notification_invalidation_keys(user_ids, self._cache.keys())
            return self._cache.delete_many(keys)
        except Exception as e:
            logger.warning(f"Notification cache invalidation failed: {e}")
            return 0
