"""HTTP handlers for the event calendar."""

from datetime import datetime

from letter_archive.dto import CalendarEventResponse, CalendarEventsResponse
from letter_archive.entities import CalendarEvent
from letter_archive.errors import ArchiveError
from letter_archive.services import CalendarService
from letter_archive.utils import parse_datetime


def _parse_bound(name: str, raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return parse_datetime(raw)
    except ValueError as e:
        raise ArchiveError.validation(f"Invalid date for '{name}'", field=name, value=raw) from e


def _response(events: list[CalendarEvent]) -> CalendarEventsResponse:
    return CalendarEventsResponse(
        events=[CalendarEventResponse.model_validate(event.to_payload()) for event in events]
    )


class CalendarHandler:
    def __init__(self, calendar: CalendarService) -> None:
        self._calendar = calendar

    def events(self, start: str | None, end: str | None) -> CalendarEventsResponse:
        """Handle GET /calendar/events."""
        return _response(self._calendar.events(_parse_bound("start", start), _parse_bound("end", end)))

    def upcoming(self, limit: int) -> CalendarEventsResponse:
        """Handle GET /calendar/upcoming."""
        return _response(self._calendar.upcoming(limit))
