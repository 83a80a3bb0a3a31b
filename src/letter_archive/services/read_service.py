"""Cache-aside reads of letters."""

from typing import Any

from loguru import logger

from letter_archive.cache_keys import letter_key, letters_list_key
from letter_archive.config import settings
from letter_archive.entities import Actor, Direction, LetterFilters, Pagination
from letter_archive.errors import ArchiveError
from letter_archive.protocols import CacheStore, DataStore


class LetterReadService:
    """Read-through cache in front of letter queries.

    Lists and single letters are cached as plain payloads. A cached letter
    still carries its owner id, so authorization is checked on every read,
    hit or miss.

    Example:
        ```python
        reads = LetterReadService.create(store=store, cache=cache)
        page = reads.get_list(Direction.INCOMING, LetterFilters(), Pagination(), actor)
        page["pagination"]["total"]
        ```
    """

    def __init__(
        self,
        store: DataStore,
        cache: CacheStore,
        list_ttl: int = 300,
        entity_ttl: int = 600,
    ) -> None:
        """Initialize the read service.

        Args:
            store: Authoritative data store (required).
            cache: Cache store (required). Its failures count as misses.
            list_ttl: Seconds a cached list page stays valid.
            entity_ttl: Seconds a cached single letter stays valid.
        """
        self._store = store
        self._cache = cache
        self._list_ttl = list_ttl
        self._entity_ttl = entity_ttl

    @classmethod
    def create(cls, store: DataStore, cache: CacheStore) -> "LetterReadService":
        return cls(
            store=store,
            cache=cache,
            list_ttl=settings.cache_list_ttl,
            entity_ttl=settings.cache_entity_ttl,
        )

    def get_list(
        self,
        direction: Direction,
        filters: LetterFilters,
        pagination: Pagination,
        actor: Actor,
    ) -> dict[str, Any]:
        """Get one page of letters with pagination metadata.

        Non-elevated users only see their own letters, whatever ``user_id``
        filter they sent.

        Returns:
            ``{"data": [...], "pagination": {...}}``
        """
        if not actor.is_elevated:
            filters = filters.scoped_to(actor.user_id)

        key = letters_list_key(direction, filters, pagination)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        def load(tx):
            return tx.find_letters(direction, filters, pagination), tx.count_letters(direction, filters)

        letters, total = self._store.run_in_transaction(load)
        result = {
            "data": [letter.to_payload() for letter in letters],
            "pagination": pagination.meta(total),
        }
        self._cache_set(key, result, self._list_ttl)
        return result

    def get_entity(self, direction: Direction, letter_id: str, actor: Actor) -> dict[str, Any]:
        """Get one letter.

        Raises:
            ArchiveError: NOT_FOUND if absent, AUTHORIZATION if the actor may not read it
        """
        key = letter_key(direction, letter_id)
        payload = self._cache_get(key)
        if payload is None:
            letter = self._store.run_in_transaction(lambda tx: tx.find_letter(direction, letter_id))
            if letter is None:
                raise ArchiveError.not_found(f"{direction.label} letter", id=letter_id)
            payload = letter.to_payload()
            self._cache_set(key, payload, self._entity_ttl)

        if not actor.can_access(payload.get("user_id")):
            raise ArchiveError.forbidden("Unauthorized to view this letter")
        return payload

    def _cache_get(self, key: str) -> Any | None:
        try:
            return self._cache.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}, falling back to the data store: {e}")
            return None

    def _cache_set(self, key: str, value: Any, ttl: int) -> None:
        try:
            self._cache.set(key, value, ttl)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")
