"""
Tests for the SQLAlchemy data store.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError

from letter_archive.entities import (
    Attachment,
    Direction,
    FilterOp,
    LetterCategory,
    LetterFilters,
    NotificationDraft,
    NotificationFilters,
    Pagination,
)
from letter_archive.errors import ArchiveError, ErrorKind
from letter_archive.repositories import SqlDataStore, is_transient_db_error


def add_letter(store, draft, user_id="u1", direction=Direction.INCOMING, attachment=None):
    return store.run_in_transaction(lambda tx: tx.create_letter(direction, draft, user_id, attachment))


def test_create_and_find_letter(store, make_draft):
    created = add_letter(store, make_draft(), attachment=Attachment("scan.pdf", "letters/incoming/1-scan.pdf"))

    found = store.run_in_transaction(lambda tx: tx.find_letter(Direction.INCOMING, created.id))
    assert found.letter_number == "IN-001"
    assert found.counterpart == "Org"
    assert found.primary_date == datetime(2024, 1, 10, tzinfo=timezone.utc)
    assert found.attachment == Attachment("scan.pdf", "letters/incoming/1-scan.pdf")
    assert found.created_at is not None

    other = store.run_in_transaction(lambda tx: tx.find_letter(Direction.OUTGOING, created.id))
    assert other is None


def test_letter_number_is_unique_per_direction(store, make_draft):
    add_letter(store, make_draft())
    add_letter(store, make_draft(), direction=Direction.OUTGOING)

    with pytest.raises(ArchiveError) as exc:
        add_letter(store, make_draft())
    assert exc.value.kind is ErrorKind.CONFLICT


def test_failed_transaction_rolls_back(store, make_draft):
    def fail(tx):
        tx.create_letter(Direction.INCOMING, make_draft(), "u1", None)
        raise ArchiveError.validation("stop")

    with pytest.raises(ArchiveError):
        store.run_in_transaction(fail)

    count = store.run_in_transaction(lambda tx: tx.count_letters(Direction.INCOMING, LetterFilters()))
    assert count == 0


def test_filters_and_pagination(store, make_draft):
    add_letter(store, make_draft(letter_number="A-1", subject="Budget 100%", primary_date=datetime(2024, 1, 1, tzinfo=timezone.utc)))
    add_letter(store, make_draft(letter_number="A-2", subject="Holiday", category=LetterCategory.OFFICIAL, primary_date=datetime(2024, 2, 1, tzinfo=timezone.utc)))
    add_letter(store, make_draft(letter_number="A-3", subject="Budget review", primary_date=datetime(2024, 3, 1, tzinfo=timezone.utc)), user_id="u2")

    def query(filters, pagination=Pagination(sort_by="primary_date", sort_order="asc")):
        return store.run_in_transaction(
            lambda tx: (
                [letter.letter_number for letter in tx.find_letters(Direction.INCOMING, filters, pagination)],
                tx.count_letters(Direction.INCOMING, filters),
            )
        )

    assert query(LetterFilters(search="budget")) == (["A-1", "A-3"], 2)
    assert query(LetterFilters(search="100%")) == (["A-1"], 1)
    assert query(LetterFilters(category=LetterCategory.OFFICIAL)) == (["A-2"], 1)
    assert query(LetterFilters(user_id="u2")) == (["A-3"], 1)
    assert query(
        LetterFilters(
            date_from=datetime(2024, 1, 15, tzinfo=timezone.utc),
            date_to=datetime(2024, 3, 1, tzinfo=timezone.utc),
        )
    ) == (["A-2", "A-3"], 2)
    assert query(LetterFilters(), Pagination(page=2, limit=2, sort_by="letter_number", sort_order="desc")) == (["A-1"], 3)
    assert query(LetterFilters(is_invitation=False)) == (["A-1", "A-2", "A-3"], 3)
    assert query(LetterFilters(is_invitation=True)) == ([], 0)


def test_filters_carry_their_operators():
    filters = LetterFilters(search="budget", category=LetterCategory.OFFICIAL, is_invitation=True)
    assert filters.terms() == [
        ("search", FilterOp.CONTAINS, "budget"),
        ("category", FilterOp.EQUALS, LetterCategory.OFFICIAL),
        ("is_invitation", FilterOp.EQUALS, True),
    ]
    assert NotificationFilters(user_id="u1").terms() == [("user_id", FilterOp.EQUALS_OR_UNSET, "u1")]


def test_update_and_delete_letter(store, make_draft):
    created = add_letter(store, make_draft())

    updated = store.run_in_transaction(
        lambda tx: tx.update_letter(Direction.INCOMING, created.id, make_draft(subject="Changed"), None)
    )
    assert updated.subject == "Changed"

    assert store.run_in_transaction(lambda tx: tx.delete_letter(Direction.INCOMING, created.id)) is True
    assert store.run_in_transaction(lambda tx: tx.delete_letter(Direction.INCOMING, created.id)) is False


def test_invitations_and_referenced_paths(store, make_draft, invitation_on):
    add_letter(store, make_draft(letter_number="I-1", invitation=invitation_on(2024, 5, 2)))
    add_letter(
        store,
        make_draft(letter_number="O-1"),
        direction=Direction.OUTGOING,
        attachment=Attachment("a.pdf", "letters/outgoing/a.pdf"),
    )

    found = store.run_in_transaction(
        lambda tx: tx.find_invitations_between(
            Direction.INCOMING,
            datetime(2024, 5, 2, tzinfo=timezone.utc),
            datetime(2024, 5, 3, tzinfo=timezone.utc),
        )
    )
    assert [letter.letter_number for letter in found] == ["I-1"]
    assert found[0].invitation.event_location == "Hall A"

    paths = store.run_in_transaction(lambda tx: tx.referenced_file_paths())
    assert paths == {"letters/outgoing/a.pdf"}


def test_notification_visibility(store):
    def seed(tx):
        tx.create_notification(NotificationDraft(title="Mine", message="m", user_id="u1"))
        tx.create_notification(NotificationDraft(title="Theirs", message="m", user_id="u2"))
        tx.create_notification(NotificationDraft(title="All", message="m", user_id=None))

    store.run_in_transaction(seed)

    titles = store.run_in_transaction(
        lambda tx: sorted(n.title for n in tx.find_notifications(NotificationFilters(user_id="u1"), Pagination()))
    )
    assert titles == ["All", "Mine"]

    marked = store.run_in_transaction(lambda tx: tx.mark_all_notifications_read("u1"))
    assert marked == 2
    unread_u2 = store.run_in_transaction(
        lambda tx: tx.count_notifications(NotificationFilters(user_id="u2", is_read=False))
    )
    assert unread_u2 == 1


def test_delete_read_notifications_before(store):
    def seed(tx):
        read = tx.create_notification(NotificationDraft(title="Old", message="m", user_id="u1"))
        tx.mark_notification_read(read.id)
        tx.create_notification(NotificationDraft(title="Unread", message="m", user_id="u1"))

    store.run_in_transaction(seed)
    cutoff = datetime.now(timezone.utc) + timedelta(days=1)

    assert store.run_in_transaction(lambda tx: tx.delete_read_notifications_before(cutoff)) == 1
    assert store.run_in_transaction(lambda tx: tx.count_notifications(NotificationFilters())) == 1


def test_is_transient_db_error():
    assert is_transient_db_error(OperationalError("UPDATE x", {}, Exception("database is locked")))
    assert is_transient_db_error(OperationalError("UPDATE x", {}, Exception("deadlock detected")))
    assert not is_transient_db_error(ProgrammingError("SELECT", {}, Exception("syntax error")))
    assert not is_transient_db_error(ValueError("database is locked"))


def test_health_check_and_memory_database():
    store = SqlDataStore.create("sqlite:///:memory:", timeout=1)
    try:
        assert store.health_check()
        assert store.run_in_transaction(lambda tx: tx.count_letters(Direction.OUTGOING, LetterFilters())) == 0
    finally:
        store.close()
