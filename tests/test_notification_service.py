"""
Tests for notification reads, read flags and deletion.
"""

from datetime import datetime, timezone

import pytest

from letter_archive.entities import (
    Direction,
    Invitation,
    LetterCategory,
    LetterEntity,
    NotificationDraft,
    NotificationFilters,
    Pagination,
)
from letter_archive.errors import ArchiveError, ErrorKind
from letter_archive.services import event_broadcast, event_reminder, letter_notification


def seed(store, *drafts):
    return store.run_in_transaction(lambda tx: [tx.create_notification(draft) for draft in drafts])


def letter(invitation=None):
    return LetterEntity(
        id="abc",
        direction=Direction.OUTGOING,
        letter_number="OUT-7",
        subject="Workshop",
        counterpart="Dept",
        primary_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        category=LetterCategory.INVITATION,
        user_id="u1",
        invitation=invitation,
    )


# Builders


def test_letter_notification_text():
    draft = letter_notification("update", letter(), "u9")
    assert draft.title == "Outgoing Letter Updated"
    assert draft.message == 'The outgoing letter "Workshop" has been updated.'
    assert draft.user_id == "u9"


@pytest.mark.parametrize(
    "event_day, expected",
    [
        (datetime(2024, 1, 1, 13, 0, tzinfo=timezone.utc), "1 day from now"),
        (datetime(2024, 1, 31, 12, 0, tzinfo=timezone.utc), "30 days from now"),
    ],
)
def test_event_broadcast_window(event_day, expected):
    now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    draft = event_broadcast(letter(Invitation(event_date=event_day)), now)
    assert draft.user_id is None
    assert draft.message.endswith(f"({expected})")


def test_no_broadcast_outside_window():
    now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert event_broadcast(letter(), now) is None
    assert event_broadcast(letter(Invitation(event_date=datetime(2024, 1, 31, 12, 1, tzinfo=timezone.utc))), now) is None
    assert event_broadcast(letter(Invitation(event_date=datetime(2023, 12, 31, tzinfo=timezone.utc))), now) is None


def test_event_reminder_defaults_location():
    draft = event_reminder(letter(Invitation(event_date=datetime(2024, 1, 2, tzinfo=timezone.utc))))
    assert draft.title == "Upcoming Event Reminder"
    assert draft.message == 'Event "Workshop" is scheduled for tomorrow at TBA'
    assert draft.user_id == "u1"


# Service


def test_list_includes_own_and_broadcasts(notifications, store, owner):
    seed(
        store,
        NotificationDraft(title="Mine", message="m", user_id="u1"),
        NotificationDraft(title="Theirs", message="m", user_id="u2"),
        NotificationDraft(title="All", message="m"),
    )

    result = notifications.list_notifications(owner, NotificationFilters(), Pagination())

    assert sorted(item["title"] for item in result["data"]) == ["All", "Mine"]
    assert result["unread_count"] == 2
    assert result["pagination"]["total"] == 2


def test_mark_read_invalidates_cached_list(notifications, store, owner):
    [mine] = seed(store, NotificationDraft(title="Mine", message="m", user_id="u1"))
    unread = NotificationFilters(is_read=False)

    assert notifications.list_notifications(owner, unread, Pagination())["unread_count"] == 1
    assert notifications.mark_read(owner, mine.id)["is_read"] is True

    after = notifications.list_notifications(owner, unread, Pagination())
    assert after["data"] == []
    assert after["unread_count"] == 0


def test_mark_read_of_foreign_notification_is_forbidden(notifications, store, stranger):
    [mine] = seed(store, NotificationDraft(title="Mine", message="m", user_id="u1"))

    with pytest.raises(ArchiveError) as exc:
        notifications.mark_read(stranger, mine.id)
    assert exc.value.kind is ErrorKind.AUTHORIZATION


def test_mark_all_read(notifications, store, owner, stranger):
    seed(
        store,
        NotificationDraft(title="Mine", message="m", user_id="u1"),
        NotificationDraft(title="Theirs", message="m", user_id="u2"),
        NotificationDraft(title="All", message="m"),
    )
    notifications.list_notifications(stranger, NotificationFilters(), Pagination())

    assert notifications.mark_all_read(owner) == 2
    assert notifications.list_notifications(stranger, NotificationFilters(), Pagination())["unread_count"] == 1


def test_delete_rules(notifications, store, owner, stranger, admin):
    mine, broadcast = seed(
        store,
        NotificationDraft(title="Mine", message="m", user_id="u1"),
        NotificationDraft(title="All", message="m"),
    )

    with pytest.raises(ArchiveError) as exc:
        notifications.delete(stranger, mine.id)
    assert exc.value.kind is ErrorKind.AUTHORIZATION

    with pytest.raises(ArchiveError) as exc:
        notifications.delete(owner, broadcast.id)
    assert exc.value.kind is ErrorKind.AUTHORIZATION

    notifications.delete(owner, mine.id)
    notifications.delete(admin, broadcast.id)

    with pytest.raises(ArchiveError) as exc:
        notifications.delete(owner, mine.id)
    assert exc.value.kind is ErrorKind.NOT_FOUND
