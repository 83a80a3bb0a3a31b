"""Cache key construction.

Keys follow ``<namespace>:<entity-type>:<id-or-"list">:<serialized-params>``:

    letters:incoming:list:limit=10&page=1&sort_by=created_at&sort_order=desc
    letter:incoming:3f2a...
    notifications:user:u1:list:is_read=false&limit=10&page=1&...
    rate_limit:203.0.113.7:1734000000

Parameters are sorted by name before joining so the same query always maps
to the same key, whatever order its parameters arrived in.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping
from urllib.parse import quote

from letter_archive.entities import Direction, LetterFilters, NotificationFilters, Pagination

LETTER_LIST_NAMESPACE = "letters"
LETTER_ENTITY_NAMESPACE = "letter"
NOTIFICATION_NAMESPACE = "notifications"
RATE_LIMIT_NAMESPACE = "rate_limit"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def serialize_filters(params: Mapping[str, Any]) -> str:
    """Flatten parameters to ``k=v`` pairs sorted by key and joined with ``&``.

    Values are percent-encoded so a search term holding ``&`` or ``=`` cannot
    collide with another parameter set. None values are skipped, so an unset
    filter and an absent one give the same key.
    """
    return "&".join(
        f"{key}={quote(_format_value(value), safe=':+')}"
        for key, value in sorted(params.items())
        if value is not None
    )


def build_list_key(entity_type: str, scope: str, params: Mapping[str, Any]) -> str:
    return f"{entity_type}:{scope}:list:{serialize_filters(params)}"


def build_entity_key(entity_type: str, scope: str, entity_id: str) -> str:
    return f"{entity_type}:{scope}:{entity_id}"


def list_prefix(entity_type: str, scope: str) -> str:
    """Prefix shared by every list key of one entity type and scope."""
    return f"{entity_type}:{scope}:list:"


# Letters


def letters_list_key(direction: Direction, filters: LetterFilters, pagination: Pagination) -> str:
    return build_list_key(
        LETTER_LIST_NAMESPACE,
        direction.value,
        {**filters.key_items(), **pagination.key_items()},
    )


def letters_list_prefix(direction: Direction) -> str:
    return list_prefix(LETTER_LIST_NAMESPACE, direction.value)


def letter_key(direction: Direction, letter_id: str) -> str:
    return build_entity_key(LETTER_ENTITY_NAMESPACE, direction.value, letter_id)


# Notifications


def notifications_list_key(
    user_id: str, filters: NotificationFilters, pagination: Pagination
) -> str:
    params = {k: v for k, v in filters.key_items().items() if k != "user_id"}
    return build_list_key(
        NOTIFICATION_NAMESPACE,
        f"user:{user_id}",
        {**params, **pagination.key_items()},
    )


def notifications_prefix(user_id: str | None = None) -> str:
    """Prefix of one user's notification keys, or of all of them when ``user_id`` is None."""
    if user_id is None:
        return f"{NOTIFICATION_NAMESPACE}:"
    return f"{NOTIFICATION_NAMESPACE}:user:{user_id}:"


# Rate limiting


def rate_limit_key(client_key: str, window: int) -> str:
    return f"{RATE_LIMIT_NAMESPACE}:{client_key}:{window}"
