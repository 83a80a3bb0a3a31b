"""Request DTOs for API endpoints.

Letter payloads accept snake_case or camelCase keys (``letterNumber`` and
``letter_number`` are the same field). Unknown keys are rejected.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from letter_archive.entities import LetterCategory

EVENT_TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class LetterCreateRequest(CamelModel):
    """Request DTO for creating a letter.

    Incoming letters need ``sender`` and ``received_date``; outgoing letters
    need ``recipient`` and ``sent_date``. The handler checks the pair that
    matches the register. Event details without ``is_invitation`` mark the
    letter as an invitation.
    """

    letter_number: str = Field(..., description="Letter number, unique per register", min_length=1, max_length=50)
    subject: str = Field(..., description="Letter subject", min_length=1, max_length=200)
    sender: str | None = Field(None, description="Sender (incoming letters)", min_length=1, max_length=100)
    recipient: str | None = Field(None, description="Recipient (outgoing letters)", min_length=1, max_length=100)
    received_date: datetime | None = Field(None, description="Date received (incoming letters)")
    sent_date: datetime | None = Field(None, description="Date sent (outgoing letters)")
    category: LetterCategory = Field(LetterCategory.GENERAL, description="Letter category")
    note: str | None = Field(None, max_length=1000)
    is_invitation: bool = Field(False, description="Whether the letter announces an event")
    event_date: datetime | None = Field(None, description="Event date (required for invitations)")
    event_time: str | None = Field(None, description="Event time as HH:MM", pattern=EVENT_TIME_PATTERN)
    event_location: str | None = Field(None, max_length=200)
    event_notes: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def check_invitation(self) -> "LetterCreateRequest":
        has_event = any(
            value is not None
            for value in (self.event_date, self.event_time, self.event_location, self.event_notes)
        )
        if has_event and not self.is_invitation:
            if "is_invitation" in self.model_fields_set:
                raise ValueError("Event details require is_invitation to be true")
            self.is_invitation = True
        if self.is_invitation and self.event_date is None:
            raise ValueError("event_date is required for invitations")
        return self


class LetterUpdateRequest(CamelModel):
    """Request DTO for a partial letter update.

    Only the fields present in the payload change. ``remove_file`` drops the
    current attachment when no new file is uploaded.
    """

    letter_number: str | None = Field(None, min_length=1, max_length=50)
    subject: str | None = Field(None, min_length=1, max_length=200)
    sender: str | None = Field(None, min_length=1, max_length=100)
    recipient: str | None = Field(None, min_length=1, max_length=100)
    received_date: datetime | None = None
    sent_date: datetime | None = None
    category: LetterCategory | None = None
    note: str | None = Field(None, max_length=1000)
    is_invitation: bool | None = None
    event_date: datetime | None = None
    event_time: str | None = Field(None, pattern=EVENT_TIME_PATTERN)
    event_location: str | None = Field(None, max_length=200)
    event_notes: str | None = Field(None, max_length=1000)
    remove_file: bool = Field(False, description="Remove the current attachment")
