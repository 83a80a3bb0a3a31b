"""Letter domain entity."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any


class Direction(str, Enum):
    """Which register a letter belongs to.

    Incoming and outgoing letters share one shape; only the counterpart and
    primary date fields are named differently.
    """

    INCOMING = "incoming"
    OUTGOING = "outgoing"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def counterpart_field(self) -> str:
        return "sender" if self is Direction.INCOMING else "recipient"

    @property
    def date_field(self) -> str:
        return "received_date" if self is Direction.INCOMING else "sent_date"


class LetterCategory(str, Enum):
    GENERAL = "GENERAL"
    INVITATION = "INVITATION"
    OFFICIAL = "OFFICIAL"
    ANNOUNCEMENT = "ANNOUNCEMENT"


@dataclass(frozen=True)
class Invitation:
    """Event details attached to an invitation letter."""

    event_date: datetime
    event_time: str | None = None
    event_location: str | None = None
    event_notes: str | None = None


@dataclass(frozen=True)
class Attachment:
    """Reference to the stored file of a letter (both parts or neither)."""

    file_name: str
    file_path: str


@dataclass(frozen=True)
class LetterDraft:
    """Field values of a letter before it is persisted.

    Used both for creation and as the merged result of an update, so the
    business rules can be checked on final values.
    """

    letter_number: str
    subject: str
    counterpart: str
    primary_date: datetime
    category: LetterCategory = LetterCategory.GENERAL
    note: str | None = None
    invitation: Invitation | None = None

    def to_columns(self, direction: Direction) -> dict[str, Any]:
        """Flatten to the column names used by the data store."""
        invitation = self.invitation
        return {
            "letter_number": self.letter_number,
            "subject": self.subject,
            direction.counterpart_field: self.counterpart,
            direction.date_field: self.primary_date,
            "category": self.category.value,
            "note": self.note,
            "is_invitation": invitation is not None,
            "event_date": invitation.event_date if invitation else None,
            "event_time": invitation.event_time if invitation else None,
            "event_location": invitation.event_location if invitation else None,
            "event_notes": invitation.event_notes if invitation else None,
        }


@dataclass(frozen=True)
class LetterEntity:
    """Domain entity for a stored letter.

    Attributes:
        id: Letter identifier
        direction: Incoming or outgoing register
        letter_number: Number, unique within its direction
        subject: Letter subject
        counterpart: Sender (incoming) or recipient (outgoing)
        primary_date: Received date (incoming) or sent date (outgoing)
        category: Letter category
        user_id: Owning user
        note: Optional free text
        invitation: Event details when the letter is an invitation
        attachment: Stored file reference, if any
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    id: str
    direction: Direction
    letter_number: str
    subject: str
    counterpart: str
    primary_date: datetime
    category: LetterCategory
    user_id: str
    note: str | None = None
    invitation: Invitation | None = None
    attachment: Attachment | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_draft(self) -> LetterDraft:
        return LetterDraft(
            letter_number=self.letter_number,
            subject=self.subject,
            counterpart=self.counterpart,
            primary_date=self.primary_date,
            category=self.category,
            note=self.note,
            invitation=self.invitation,
        )

    def to_payload(self) -> dict[str, Any]:
        """Plain-data representation used for caching and responses."""
        invitation = self.invitation
        return {
            "id": self.id,
            "direction": self.direction.value,
            "letter_number": self.letter_number,
            "subject": self.subject,
            self.direction.counterpart_field: self.counterpart,
            self.direction.date_field: self.primary_date,
            "category": self.category.value,
            "note": self.note,
            "is_invitation": invitation is not None,
            "event_date": invitation.event_date if invitation else None,
            "event_time": invitation.event_time if invitation else None,
            "event_location": invitation.event_location if invitation else None,
            "event_notes": invitation.event_notes if invitation else None,
            "file_name": self.attachment.file_name if self.attachment else None,
            "file_path": self.attachment.file_path if self.attachment else None,
            "user_id": self.user_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class LetterChanges:
    """Partial update of a letter.

    Only the keys present in ``values`` are changed. ``values`` uses the
    direction-neutral names of ``LetterDraft`` plus the flat invitation
    fields (``is_invitation``, ``event_date``, ...).
    """

    values: dict[str, Any] = field(default_factory=dict)

    INVITATION_FIELDS = ("event_date", "event_time", "event_location", "event_notes")

    def apply_to(self, draft: LetterDraft) -> LetterDraft:
        """Merge these changes onto an existing draft.

        Returns:
            The merged draft (date ordering is not checked here)

        Raises:
            ValueError: If the result is an invitation without an event date,
                or event details are sent while ``is_invitation`` is false
        """
        plain = {
            key: value
            for key, value in self.values.items()
            if key in ("letter_number", "subject", "counterpart", "primary_date", "category", "note")
        }
        if "category" in plain and not isinstance(plain["category"], LetterCategory):
            plain["category"] = LetterCategory(plain["category"])
        merged = replace(draft, **plain)

        touches_invitation = "is_invitation" in self.values or any(
            key in self.values for key in self.INVITATION_FIELDS
        )
        if not touches_invitation:
            return merged

        current = draft.invitation
        sets_event = any(self.values.get(key) is not None for key in self.INVITATION_FIELDS)
        # Event details on a plain letter turn it into an invitation
        is_invitation = self.values.get("is_invitation", current is not None or sets_event)
        if not is_invitation:
            if sets_event:
                raise ValueError("Event details require is_invitation to be true")
            return replace(merged, invitation=None)

        fields_now = {
            "event_date": current.event_date if current else None,
            "event_time": current.event_time if current else None,
            "event_location": current.event_location if current else None,
            "event_notes": current.event_notes if current else None,
        }
        fields_now.update({key: self.values[key] for key in self.INVITATION_FIELDS if key in self.values})
        if fields_now["event_date"] is None:
            raise ValueError("event_date is required for invitations")
        return replace(merged, invitation=Invitation(**fields_now))
