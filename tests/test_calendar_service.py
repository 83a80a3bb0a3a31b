"""
Tests for the invitation event calendar.
"""

from datetime import datetime, timezone

import pytest

from letter_archive.entities import CalendarEvent, Direction
from letter_archive.errors import ArchiveError, ErrorKind
from letter_archive.services import CalendarService

NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)


def add_letter(store, draft, direction=Direction.INCOMING, user_id="u1"):
    return store.run_in_transaction(lambda tx: tx.create_letter(direction, draft, user_id, None))


@pytest.fixture
def calendar(store):
    return CalendarService(store=store, clock=lambda: NOW)


@pytest.fixture
def seeded(store, make_draft, invitation_on):
    add_letter(store, make_draft(letter_number="I-1", subject="Board", invitation=invitation_on(2024, 5, 20)))
    add_letter(
        store,
        make_draft(letter_number="O-1", subject="Workshop", invitation=invitation_on(2024, 5, 3, location=None)),
        direction=Direction.OUTGOING,
        user_id="u2",
    )
    add_letter(store, make_draft(letter_number="I-2", subject="Expo", invitation=invitation_on(2024, 7, 1)))
    add_letter(store, make_draft(letter_number="I-3", subject="Past", invitation=invitation_on(2024, 4, 2)))
    add_letter(store, make_draft(letter_number="I-4", subject="Plain"))


def test_events_default_to_the_next_thirty_days(calendar, seeded):
    events = calendar.events()

    assert [(event.title, event.type) for event in events] == [
        ("Workshop", Direction.OUTGOING),
        ("Board", Direction.INCOMING),
    ]
    assert events[0].location is None
    assert events[1].time == "09:00"


def test_events_in_explicit_range(calendar, seeded):
    events = calendar.events(
        datetime(2024, 4, 1, tzinfo=timezone.utc),
        datetime(2024, 5, 20, 9, 0, tzinfo=timezone.utc),
    )
    # The end bound is exclusive
    assert [event.title for event in events] == ["Past", "Workshop"]

    only_start = calendar.events(datetime(2024, 6, 15, tzinfo=timezone.utc))
    assert [event.title for event in only_start] == ["Expo"]


def test_events_reject_inverted_range(calendar):
    with pytest.raises(ArchiveError) as exc:
        calendar.events(datetime(2024, 6, 1, tzinfo=timezone.utc), datetime(2024, 5, 1, tzinfo=timezone.utc))
    assert exc.value.kind is ErrorKind.VALIDATION


def test_upcoming_merges_registers(calendar, seeded):
    assert [event.title for event in calendar.upcoming()] == ["Workshop", "Board", "Expo"]
    assert [event.title for event in calendar.upcoming(limit=2)] == ["Workshop", "Board"]


@pytest.mark.parametrize("limit", [0, 101])
def test_upcoming_rejects_bad_limit(calendar, limit):
    with pytest.raises(ArchiveError) as exc:
        calendar.upcoming(limit=limit)
    assert exc.value.kind is ErrorKind.VALIDATION
    assert exc.value.details["field"] == "limit"


def test_event_requires_invitation(store, make_draft):
    plain = add_letter(store, make_draft())
    with pytest.raises(ValueError):
        CalendarEvent.from_letter(plain)
