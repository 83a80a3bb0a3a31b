"""Transactional data store protocol.

The data store is the source of truth for letters and notifications. All
access goes through ``run_in_transaction``: the callback receives a
``TransactionHandle`` and everything it does commits together or not at all.
"""

from datetime import datetime
from typing import Callable, Protocol, TypeVar, runtime_checkable

from letter_archive.entities import (
    Attachment,
    Direction,
    LetterDraft,
    LetterEntity,
    LetterFilters,
    NotificationDraft,
    NotificationEntity,
    NotificationFilters,
    Pagination,
)

T = TypeVar("T")


@runtime_checkable
class TransactionHandle(Protocol):
    """Operations available inside one transaction."""

    # Letters

    def find_letter(
        self, direction: Direction, letter_id: str, for_update: bool = False
    ) -> LetterEntity | None:
        """Fetch one letter; ``for_update`` takes a row lock where supported."""
        ...

    def find_letter_by_number(self, direction: Direction, letter_number: str) -> LetterEntity | None:
        ...

    def find_letters(
        self, direction: Direction, filters: LetterFilters, pagination: Pagination
    ) -> list[LetterEntity]:
        ...

    def count_letters(self, direction: Direction, filters: LetterFilters) -> int:
        ...

    def create_letter(
        self,
        direction: Direction,
        draft: LetterDraft,
        user_id: str,
        attachment: Attachment | None,
    ) -> LetterEntity:
        ...

    def update_letter(
        self,
        direction: Direction,
        letter_id: str,
        draft: LetterDraft,
        attachment: Attachment | None,
    ) -> LetterEntity:
        """Overwrite a letter's fields and attachment reference."""
        ...

    def set_attachment(
        self, direction: Direction, letter_id: str, attachment: Attachment | None
    ) -> LetterEntity | None:
        """Change only the attachment reference. Returns None if the letter is gone."""
        ...

    def delete_letter(self, direction: Direction, letter_id: str) -> bool:
        ...

    def find_invitations_between(
        self,
        direction: Direction,
        start: datetime,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[LetterEntity]:
        """Invitation letters whose event date is in ``[start, end)``, earliest first.

        ``end=None`` leaves the range open; ``limit`` caps the number of rows.
        """
        ...

    def referenced_file_paths(self) -> set[str]:
        """Every ``file_path`` referenced by a letter of either direction."""
        ...

    # Notifications

    def create_notification(self, draft: NotificationDraft) -> NotificationEntity:
        ...

    def find_notification(self, notification_id: str) -> NotificationEntity | None:
        ...

    def find_notifications(
        self, filters: NotificationFilters, pagination: Pagination
    ) -> list[NotificationEntity]:
        ...

    def count_notifications(self, filters: NotificationFilters) -> int:
        ...

    def mark_notification_read(self, notification_id: str) -> NotificationEntity | None:
        ...

    def mark_all_notifications_read(self, user_id: str) -> int:
        """Mark the user's own notifications and all broadcasts read."""
        ...

    def delete_notification(self, notification_id: str) -> bool:
        ...

    def delete_read_notifications_before(self, cutoff: datetime) -> int:
        ...


@runtime_checkable
class DataStore(Protocol):
    """Protocol for the transactional data store.

    Example:
        ```python
        letter = store.run_in_transaction(
            lambda tx: tx.find_letter(Direction.INCOMING, letter_id),
            timeout=5,
        )
        ```
    """

    def run_in_transaction(
        self,
        fn: Callable[[TransactionHandle], T],
        timeout: float | None = None,
        isolation_level: str | None = None,
    ) -> T:
        """Run ``fn`` inside one transaction.

        The transaction commits when ``fn`` returns and rolls back when it
        raises.

        Raises:
            ArchiveError: CONFLICT on unique-constraint violations,
                TRANSIENT_STORE on deadlocks/lock timeouts, or whatever
                ``fn`` raised
        """
        ...

    def health_check(self) -> bool:
        ...

    def close(self) -> None:
        ...
