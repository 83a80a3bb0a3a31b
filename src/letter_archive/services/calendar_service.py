"""Calendar of events announced by invitation letters of both registers."""

from datetime import datetime, timedelta
from typing import Callable

from letter_archive.entities import CalendarEvent, Direction
from letter_archive.errors import ArchiveError
from letter_archive.protocols import DataStore
from letter_archive.utils import utcnow

DEFAULT_WINDOW_DAYS = 30
MAX_UPCOMING = 100


class CalendarService:
    """Reads invitation events for the calendar views.

    Events are organisation-wide: every authenticated user sees the events
    of both registers, merged and sorted by date.

    Example:
        ```python
        calendar = CalendarService(store=store)
        events = calendar.events()          # now .. now + 30 days
        soon = calendar.upcoming(limit=5)
        ```
    """

    def __init__(
        self,
        store: DataStore,
        window_days: int = DEFAULT_WINDOW_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._window = timedelta(days=window_days)
        self._clock = clock

    def events(self, start: datetime | None = None, end: datetime | None = None) -> list[CalendarEvent]:
        """Events in ``[start, end)``; defaults to the next 30 days.

        Raises:
            ArchiveError: VALIDATION if ``start`` is after ``end``
        """
        start = start or self._clock()
        end = end or start + self._window
        if start > end:
            raise ArchiveError.validation("start must not be after end", field="start")

        letters = self._store.run_in_transaction(
            lambda tx: [
                letter
                for direction in Direction
                for letter in tx.find_invitations_between(direction, start, end)
            ]
        )
        return self._sorted(letters)

    def upcoming(self, limit: int = 10) -> list[CalendarEvent]:
        """The next ``limit`` events from now on.

        Raises:
            ArchiveError: VALIDATION if ``limit`` is outside 1..100
        """
        if not 1 <= limit <= MAX_UPCOMING:
            raise ArchiveError.validation(f"limit must be between 1 and {MAX_UPCOMING}", field="limit")
        now = self._clock()

        # Each register contributes at most ``limit`` rows before merging
        letters = self._store.run_in_transaction(
            lambda tx: [
                letter
                for direction in Direction
                for letter in tx.find_invitations_between(direction, now, limit=limit)
            ]
        )
        return self._sorted(letters)[:limit]

    @staticmethod
    def _sorted(letters) -> list[CalendarEvent]:
        events = [CalendarEvent.from_letter(letter) for letter in letters]
        return sorted(events, key=lambda event: (event.date, event.id))
