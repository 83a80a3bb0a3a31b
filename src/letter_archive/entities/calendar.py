"""Calendar view of invitation letters."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from letter_archive.entities.letter import Direction, LetterEntity


@dataclass(frozen=True)
class CalendarEvent:
    """An event announced by an invitation letter.

    Attributes:
        id: Id of the invitation letter
        title: Letter subject
        date: Event date
        type: Register of the letter
        letter_number: Letter number
        time: Event time as HH:MM, if known
        location: Event location, if known
        description: Event notes, if any
    """

    id: str
    title: str
    date: datetime
    type: Direction
    letter_number: str
    time: str | None = None
    location: str | None = None
    description: str | None = None

    @classmethod
    def from_letter(cls, letter: LetterEntity) -> "CalendarEvent":
        if letter.invitation is None:
            raise ValueError(f"Letter {letter.id} is not an invitation")
        invitation = letter.invitation
        return cls(
            id=letter.id,
            title=letter.subject,
            date=invitation.event_date,
            type=letter.direction,
            letter_number=letter.letter_number,
            time=invitation.event_time,
            location=invitation.event_location,
            description=invitation.event_notes,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "date": self.date,
            "type": self.type.value,
            "letter_number": self.letter_number,
            "time": self.time,
            "location": self.location,
            "description": self.description,
        }
