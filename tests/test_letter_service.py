"""
Tests for the transactional letter write protocol.
"""

from datetime import datetime, timezone

import pytest

from letter_archive.entities import Direction, LetterChanges, LetterFilters, NotificationFilters, Pagination
from letter_archive.errors import ArchiveError, ErrorKind
from letter_archive.services import LetterService, check_business_rules
from letter_archive.services.file_service import LETTERS_DIR, STAGING_DIR

from .conftest import PDF_BYTES, FlakyStore

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


def all_letters(store, direction=Direction.INCOMING):
    return store.run_in_transaction(
        lambda tx: tx.find_letters(direction, LetterFilters(), Pagination(limit=100))
    )


def all_notifications(store):
    return store.run_in_transaction(
        lambda tx: tx.find_notifications(NotificationFilters(), Pagination(limit=100, sort_order="asc"))
    )


def make_service(store, files, cache, sleeps, **kwargs):
    return LetterService(
        store=store,
        files=files,
        cache=cache,
        max_attempts=3,
        backoff_base=1.0,
        backoff_max=5.0,
        sleep=sleeps.append,
        **kwargs,
    )


# Create


def test_create_without_file(letters, store, make_draft, owner):
    letter = letters.create_letter_with_file(make_draft(), None, owner, Direction.INCOMING)

    assert letter.user_id == "u1"
    assert letter.attachment is None
    assert [row.id for row in all_letters(store)] == [letter.id]

    notifications = all_notifications(store)
    assert [(n.title, n.user_id) for n in notifications] == [("Incoming Letter Created", "u1")]
    assert notifications[0].message == 'A new incoming letter "Meeting" has been created.'


def test_create_with_file_moves_it_into_place(letters, storage, make_draft, owner, pdf_upload):
    letter = letters.create_letter_with_file(make_draft(), pdf_upload(), owner, Direction.INCOMING)

    assert letter.attachment.file_name == "scan.pdf"
    assert letter.attachment.file_path.startswith(f"{LETTERS_DIR}/incoming/")
    assert storage.read_file(letter.attachment.file_path) == PDF_BYTES
    assert storage.list_files(STAGING_DIR) == []


def test_duplicate_number_conflicts_without_leaving_files(letters, store, storage, make_draft, owner, pdf_upload):
    letters.create_letter_with_file(make_draft(), None, owner, Direction.INCOMING)

    with pytest.raises(ArchiveError) as exc:
        letters.create_letter_with_file(make_draft(), pdf_upload(), owner, Direction.INCOMING)

    assert exc.value.kind is ErrorKind.CONFLICT
    assert exc.value.message == "Incoming letter number 'IN-001' already exists"
    assert storage.list_files(STAGING_DIR) == []
    assert storage.list_files(LETTERS_DIR) == []
    assert len(all_letters(store)) == 1
    assert len(all_notifications(store)) == 1


def test_same_number_allowed_in_other_direction(letters, store, make_draft, owner):
    letters.create_letter_with_file(make_draft(), None, owner, Direction.INCOMING)
    letters.create_letter_with_file(make_draft(), None, owner, Direction.OUTGOING)
    assert len(all_letters(store, Direction.OUTGOING)) == 1


def test_event_must_follow_letter_date(letters, store, storage, make_draft, invitation_on, owner, pdf_upload):
    draft = make_draft(invitation=invitation_on(2024, 1, 5))

    with pytest.raises(ArchiveError) as exc:
        letters.create_letter_with_file(draft, pdf_upload(), owner, Direction.INCOMING)

    assert exc.value.kind is ErrorKind.VALIDATION
    assert exc.value.details == {"field": "event_date"}
    assert all_letters(store) == []
    assert storage.list_files(STAGING_DIR) == []


def test_check_business_rules_accepts_later_event(make_draft, invitation_on):
    check_business_rules(make_draft(invitation=invitation_on(2024, 1, 11)))


def test_invitation_broadcast(store, files, cache, sleeps, make_draft, invitation_on, owner):
    letters = make_service(store, files, cache, sleeps, clock=lambda: NOW)

    letters.create_letter_with_file(
        make_draft(subject="Annual meeting", invitation=invitation_on(2024, 1, 20)), None, owner, Direction.INCOMING
    )
    letters.create_letter_with_file(
        make_draft(letter_number="IN-002", invitation=invitation_on(2024, 3, 1)), None, owner, Direction.INCOMING
    )

    broadcasts = [n for n in all_notifications(store) if n.user_id is None]
    assert len(broadcasts) == 1
    assert broadcasts[0].title == "New Event Scheduled"
    assert broadcasts[0].message == (
        'Event "Annual meeting" has been scheduled for 2024-01-20 (10 days from now)'
    )


# Retry


def test_transient_failures_are_retried(store, files, cache, sleeps, make_draft, owner, pdf_upload, storage):
    flaky = FlakyStore(store, ArchiveError.transient("deadlock detected"), passes=1, failures=2)
    letters = make_service(flaky, files, cache, sleeps)

    letter = letters.create_letter_with_file(make_draft(), pdf_upload(), owner, Direction.INCOMING)

    assert sleeps == [1.0, 2.0]
    assert flaky.calls == 4
    assert [row.id for row in all_letters(store)] == [letter.id]
    assert len(all_notifications(store)) == 1
    assert storage.exists(letter.attachment.file_path)


def test_backoff_is_capped(store, files, cache, sleeps, make_draft, owner):
    flaky = FlakyStore(store, ArchiveError.transient("lock timeout"), passes=1, failures=4)
    letters = LetterService(
        store=flaky, files=files, cache=cache, max_attempts=5, backoff_base=1.0, backoff_max=3.0, sleep=sleeps.append
    )

    letters.create_letter_with_file(make_draft(), None, owner, Direction.INCOMING)

    assert sleeps == [1.0, 2.0, 3.0, 3.0]


def test_exhausted_retries_discard_staged_file(store, files, cache, sleeps, storage, make_draft, owner, pdf_upload):
    flaky = FlakyStore(store, ArchiveError.transient("deadlock detected"), passes=1, failures=3)
    letters = make_service(flaky, files, cache, sleeps)

    with pytest.raises(ArchiveError) as exc:
        letters.create_letter_with_file(make_draft(), pdf_upload(), owner, Direction.INCOMING)

    assert exc.value.kind is ErrorKind.TRANSIENT_STORE
    assert sleeps == [1.0, 2.0]
    assert all_letters(store) == []
    assert all_notifications(store) == []
    assert storage.list_files(STAGING_DIR) == []
    assert storage.list_files(LETTERS_DIR) == []


def test_permanent_failures_are_not_retried(store, files, cache, sleeps, make_draft, owner):
    flaky = FlakyStore(store, ArchiveError(ErrorKind.INTERNAL, "Data store operation failed"), passes=1)
    letters = make_service(flaky, files, cache, sleeps)

    with pytest.raises(ArchiveError) as exc:
        letters.create_letter_with_file(make_draft(), None, owner, Direction.INCOMING)

    assert exc.value.kind is ErrorKind.INTERNAL
    assert sleeps == []
    assert flaky.calls == 2


# File commit failures


def test_file_commit_failure_leaves_letter_without_file(letters, store, storage, make_draft, owner, pdf_upload):
    storage.fail_moves = True

    with pytest.raises(ArchiveError) as exc:
        letters.create_letter_with_file(make_draft(), pdf_upload(), owner, Direction.INCOMING)

    assert exc.value.kind is ErrorKind.STORAGE
    [letter] = all_letters(store)
    assert letter.attachment is None
    assert exc.value.details["letter_id"] == letter.id
    assert exc.value.details["letter_saved"] is True
    assert "saved with no attachment" in exc.value.message
    assert len(storage.list_files(STAGING_DIR)) == 1


def test_file_commit_failure_restores_previous_attachment(letters, store, storage, make_draft, owner, pdf_upload):
    created = letters.create_letter_with_file(make_draft(), pdf_upload("first.pdf"), owner, Direction.INCOMING)
    storage.fail_moves = True

    with pytest.raises(ArchiveError) as exc:
        letters.update_letter_with_file(
            created.id, LetterChanges({"subject": "New"}), pdf_upload("second.pdf"), owner, Direction.INCOMING
        )

    assert exc.value.kind is ErrorKind.STORAGE
    [letter] = all_letters(store)
    assert letter.subject == "New"
    assert "saved with its previous attachment" in exc.value.message
    assert exc.value.details["attachment"] == "first.pdf"
    assert letter.attachment == created.attachment
    assert storage.exists(created.attachment.file_path)


# Update


def test_update_replaces_file_after_commit(letters, storage, make_draft, owner, pdf_upload):
    created = letters.create_letter_with_file(make_draft(), pdf_upload("first.pdf"), owner, Direction.INCOMING)

    updated = letters.update_letter_with_file(
        created.id, LetterChanges(), pdf_upload("second.pdf"), owner, Direction.INCOMING
    )

    assert updated.attachment.file_name == "second.pdf"
    assert storage.exists(updated.attachment.file_path)
    assert not storage.exists(created.attachment.file_path)


def test_update_can_remove_file(letters, storage, make_draft, owner, pdf_upload):
    created = letters.create_letter_with_file(make_draft(), pdf_upload(), owner, Direction.INCOMING)

    updated = letters.update_letter_with_file(created.id, LetterChanges(), None, owner, Direction.INCOMING, remove_file=True)

    assert updated.attachment is None
    assert storage.list_files(LETTERS_DIR) == []


def test_update_requires_ownership(letters, make_draft, owner, stranger, admin):
    created = letters.create_letter_with_file(make_draft(), None, owner, Direction.INCOMING)

    with pytest.raises(ArchiveError) as exc:
        letters.update_letter_with_file(created.id, LetterChanges({"subject": "x"}), None, stranger, Direction.INCOMING)
    assert exc.value.kind is ErrorKind.AUTHORIZATION
    assert exc.value.message == "Unauthorized to update this letter"

    updated = letters.update_letter_with_file(created.id, LetterChanges({"subject": "By admin"}), None, admin, Direction.INCOMING)
    assert updated.subject == "By admin"
    assert updated.user_id == "u1"


def test_update_missing_letter(letters, owner):
    with pytest.raises(ArchiveError) as exc:
        letters.update_letter_with_file("missing", LetterChanges(), None, owner, Direction.OUTGOING)
    assert exc.value.kind is ErrorKind.NOT_FOUND
    assert exc.value.message == "Outgoing letter not found"


def test_update_number_conflict(letters, make_draft, owner):
    letters.create_letter_with_file(make_draft(letter_number="IN-001"), None, owner, Direction.INCOMING)
    second = letters.create_letter_with_file(make_draft(letter_number="IN-002"), None, owner, Direction.INCOMING)

    with pytest.raises(ArchiveError) as exc:
        letters.update_letter_with_file(
            second.id, LetterChanges({"letter_number": "IN-001"}), None, owner, Direction.INCOMING
        )
    assert exc.value.kind is ErrorKind.CONFLICT

    same = letters.update_letter_with_file(
        second.id, LetterChanges({"letter_number": "IN-002"}), None, owner, Direction.INCOMING
    )
    assert same.letter_number == "IN-002"


def test_update_checks_rules_on_merged_values(letters, make_draft, invitation_on, owner):
    created = letters.create_letter_with_file(
        make_draft(invitation=invitation_on(2024, 2, 1)), None, owner, Direction.INCOMING
    )

    with pytest.raises(ArchiveError) as exc:
        letters.update_letter_with_file(
            created.id,
            LetterChanges({"primary_date": datetime(2024, 3, 1, tzinfo=timezone.utc)}),
            None,
            owner,
            Direction.INCOMING,
        )
    assert exc.value.kind is ErrorKind.VALIDATION

    with pytest.raises(ArchiveError) as exc:
        letters.update_letter_with_file(
            created.id,
            LetterChanges({"is_invitation": True, "event_date": None}),
            None,
            owner,
            Direction.INCOMING,
        )
    assert exc.value.kind is ErrorKind.VALIDATION


def test_event_details_turn_letter_into_invitation(letters, make_draft, owner):
    created = letters.create_letter_with_file(make_draft(), None, owner, Direction.INCOMING)

    updated = letters.update_letter_with_file(
        created.id,
        LetterChanges({"event_date": datetime(2024, 2, 1, tzinfo=timezone.utc), "event_location": "Hall"}),
        None,
        owner,
        Direction.INCOMING,
    )

    assert updated.invitation is not None
    assert updated.invitation.event_date == datetime(2024, 2, 1, tzinfo=timezone.utc)
    assert updated.invitation.event_location == "Hall"


def test_event_details_rejected_when_not_invitation(letters, make_draft, owner):
    created = letters.create_letter_with_file(make_draft(), None, owner, Direction.INCOMING)

    with pytest.raises(ArchiveError) as exc:
        letters.update_letter_with_file(
            created.id,
            LetterChanges({"is_invitation": False, "event_location": "Hall"}),
            None,
            owner,
            Direction.INCOMING,
        )
    assert exc.value.kind is ErrorKind.VALIDATION
    assert exc.value.message == "Event details require is_invitation to be true"


def test_noop_update_still_notifies(letters, store, make_draft, owner):
    created = letters.create_letter_with_file(make_draft(), None, owner, Direction.INCOMING)
    letters.update_letter_with_file(created.id, LetterChanges(), None, owner, Direction.INCOMING)

    titles = [n.title for n in all_notifications(store)]
    assert titles == ["Incoming Letter Created", "Incoming Letter Updated"]


# Delete


def test_delete_removes_row_and_file(letters, store, storage, make_draft, owner, pdf_upload):
    created = letters.create_letter_with_file(make_draft(), pdf_upload(), owner, Direction.OUTGOING)

    deleted = letters.delete_letter_with_file(created.id, owner, Direction.OUTGOING)

    assert deleted.id == created.id
    assert all_letters(store, Direction.OUTGOING) == []
    assert not storage.exists(created.attachment.file_path)
    last = all_notifications(store)[-1]
    assert last.title == "Outgoing Letter Deleted"
    assert last.type.value == "WARNING"


def test_delete_requires_ownership(letters, store, make_draft, owner, stranger):
    created = letters.create_letter_with_file(make_draft(), None, owner, Direction.INCOMING)

    with pytest.raises(ArchiveError) as exc:
        letters.delete_letter_with_file(created.id, stranger, Direction.INCOMING)

    assert exc.value.kind is ErrorKind.AUTHORIZATION
    assert len(all_letters(store)) == 1


# Cache


def test_writes_invalidate_cached_reads(letters, reads, cache, make_draft, owner):
    empty = reads.get_list(Direction.INCOMING, LetterFilters(), Pagination(), owner)
    assert empty["pagination"]["total"] == 0

    created = letters.create_letter_with_file(make_draft(), None, owner, Direction.INCOMING)
    listed = reads.get_list(Direction.INCOMING, LetterFilters(), Pagination(), owner)
    assert [item["id"] for item in listed["data"]] == [created.id]

    assert reads.get_entity(Direction.INCOMING, created.id, owner)["subject"] == "Meeting"
    letters.update_letter_with_file(created.id, LetterChanges({"subject": "Changed"}), None, owner, Direction.INCOMING)
    assert reads.get_entity(Direction.INCOMING, created.id, owner)["subject"] == "Changed"
