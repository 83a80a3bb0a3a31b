"""
Tests for cache key construction and invalidation rules.
"""

from datetime import datetime, timezone

from letter_archive.cache_keys import (
    letter_key,
    letters_list_key,
    notifications_list_key,
    notifications_prefix,
    serialize_filters,
)
from letter_archive.entities import Direction, LetterCategory, LetterFilters, NotificationFilters, Pagination
from letter_archive.services import CacheInvalidator, letter_invalidation_keys, notification_invalidation_keys

from .conftest import BrokenCache


def test_serialize_filters_is_order_independent():
    a = serialize_filters({"page": 1, "search": "budget", "limit": 10})
    b = serialize_filters({"limit": 10, "search": "budget", "page": 1})
    assert a == b == "limit=10&page=1&search=budget"


def test_serialize_filters_formats_values():
    serialized = serialize_filters(
        {
            "is_invitation": False,
            "category": LetterCategory.OFFICIAL,
            "date_from": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "user_id": None,
        }
    )
    assert serialized == "category=OFFICIAL&date_from=2024-01-01T00:00:00+00:00&is_invitation=false"


def test_serialize_filters_encodes_separators_in_values():
    tricky = serialize_filters({"search": "a&page=2"})
    plain = serialize_filters({"search": "a", "page": 2})
    assert tricky == "search=a%26page%3D2"
    assert tricky != plain
    assert serialize_filters({"search": "rent 50%"}) == "search=rent%2050%25"


def test_letters_list_key_shape():
    key = letters_list_key(Direction.INCOMING, LetterFilters(search="rent"), Pagination())
    assert key == "letters:incoming:list:limit=10&page=1&search=rent&sort_by=created_at&sort_order=desc"


def test_equal_queries_share_a_key():
    first = letters_list_key(Direction.OUTGOING, LetterFilters(user_id="u1", is_invitation=True), Pagination(page=2))
    second = letters_list_key(Direction.OUTGOING, LetterFilters(is_invitation=True, user_id="u1"), Pagination(page=2))
    assert first == second


def test_notification_key_is_scoped_by_user():
    key = notifications_list_key("u1", NotificationFilters(user_id="u1", is_read=False), Pagination())
    assert key.startswith("notifications:user:u1:list:")
    assert "user_id" not in key
    assert "is_read=false" in key


def test_letter_invalidation_stays_within_direction():
    cached = [
        "letters:incoming:list:page=1",
        "letters:incoming:list:page=2",
        "letters:outgoing:list:page=1",
        "letter:incoming:other",
        "letter:outgoing:abc",
        "notifications:user:u1:list:page=1",
    ]
    keys = letter_invalidation_keys(Direction.INCOMING, "abc", cached)
    assert set(keys) == {
        "letter:incoming:abc",
        "letters:incoming:list:page=1",
        "letters:incoming:list:page=2",
    }


def test_notification_invalidation_for_user_and_broadcast():
    cached = [
        "notifications:user:u1:list:page=1",
        "notifications:user:u2:list:page=1",
        "letters:incoming:list:page=1",
    ]
    assert notification_invalidation_keys(["u1"], cached) == ["notifications:user:u1:list:page=1"]
    assert set(notification_invalidation_keys([None], cached)) == {
        "notifications:user:u1:list:page=1",
        "notifications:user:u2:list:page=1",
    }
    assert notifications_prefix() == "notifications:"


def test_invalidator_drops_keys(cache):
    cache.set(letter_key(Direction.INCOMING, "abc"), {"id": "abc"})
    cache.set("letters:incoming:list:page=1", {"data": []})
    cache.set("letters:outgoing:list:page=1", {"data": []})

    assert CacheInvalidator(cache).letter_changed(Direction.INCOMING, "abc") == 2
    assert cache.keys() == ["letters:outgoing:list:page=1"]


def test_invalidator_swallows_cache_errors():
    invalidator = CacheInvalidator(BrokenCache())
    assert invalidator.letter_changed(Direction.INCOMING, "abc") == 0
    assert invalidator.notifications_changed(["u1"]) == 0
