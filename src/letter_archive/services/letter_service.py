"""Transactional letter writes.

Each write runs the same sequence:

    VALIDATE -> FILE_STAGE -> DB_WRITE + NOTIFY -> COMMIT -> FILE_COMMIT -> CACHE_INVALIDATE

VALIDATE and FILE_STAGE run once. The DB_WRITE..COMMIT span is retried with
exponential backoff when the data store reports a transient failure. If it
ultimately fails, the staged file is deleted before the error propagates.
Files are moved into place only after the commit, and the previous file is
deleted only after its replacement is in place. Caches are invalidated last.
"""

import time
from datetime import datetime
from typing import Callable, TypeVar

from loguru import logger
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from letter_archive.config import settings
from letter_archive.entities import (
    Actor,
    Attachment,
    Direction,
    FileUpload,
    LetterChanges,
    LetterDraft,
    LetterEntity,
    StagedFile,
)
from letter_archive.errors import ArchiveError, is_transient
from letter_archive.protocols import CacheStore, DataStore, TransactionHandle
from letter_archive.services.file_service import FileService
from letter_archive.services.invalidation import CacheInvalidator
from letter_archive.services.notification_service import event_broadcast, letter_notification
from letter_archive.utils import utcnow

T = TypeVar("T")


def check_business_rules(draft: LetterDraft) -> None:
    """Rules on a letter's final values that the request schema cannot express.

    Raises:
        ArchiveError: VALIDATION if the invitation's event is not after the letter date
    """
    invitation = draft.invitation
    if invitation is not None and invitation.event_date <= draft.primary_date:
        raise ArchiveError.validation(
            "Event date must be after the letter date",
            field="event_date",
        )


def merge_changes(existing: LetterEntity, changes: LetterChanges) -> LetterDraft:
    try:
        return changes.apply_to(existing.to_draft())
    except ValueError as e:
        raise ArchiveError.validation(str(e), field="event_date") from e


class LetterService:
    """Create, update and delete letters together with their files and notifications.

    This service depends on PROTOCOLS, not concrete implementations:
    - DataStore: SQLite, PostgreSQL or a test double
    - CacheStore: the in-process cache
    - FileService: wraps any FileStorage

    Example:
        ```python
        letters = LetterService.create(store=store, files=files, cache=cache)
        letter = letters.create_letter_with_file(
            draft, upload=None, actor=Actor("u1"), direction=Direction.INCOMING
        )
        ```
    """

    def __init__(
        self,
        store: DataStore,
        files: FileService,
        cache: CacheStore,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 5.0,
        timeout: float | None = None,
        isolation_level: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the letter service.

        Args:
            store: Transactional data store (required).
            files: File lifecycle service (required).
            cache: Cache store to invalidate after writes (required).
            max_attempts: Attempts of the DB_WRITE..COMMIT span on transient failures.
            backoff_base: First retry delay in seconds; doubles per attempt.
            backoff_max: Upper bound of a single retry delay.
            timeout: Transaction timeout in seconds.
            isolation_level: Transaction isolation level (None = store default).
            sleep: Called with each retry delay; tests pass a no-op.
            clock: Current time, used for event day counts.
        """
        self._store = store
        self._files = files
        self._invalidator = CacheInvalidator(cache)
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._timeout = timeout
        self._isolation_level = isolation_level
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def create(
        cls,
        store: DataStore,
        files: FileService,
        cache: CacheStore,
        sleep: Callable[[float], None] | None = None,
    ) -> "LetterService":
        """Factory method to create LetterService with the retry policy from settings."""
        return cls(
            store=store,
            files=files,
            cache=cache,
            max_attempts=settings.tx_max_attempts,
            backoff_base=settings.tx_backoff_base,
            backoff_max=settings.tx_backoff_max,
            timeout=settings.db_transaction_timeout,
            isolation_level=settings.db_isolation_level,
            sleep=sleep or time.sleep,
        )

    # Entry points

    def create_letter_with_file(
        self,
        draft: LetterDraft,
        upload: FileUpload | None,
        actor: Actor,
        direction: Direction,
    ) -> LetterEntity:
        """Create a letter, its notifications and (optionally) its file.

        Args:
            draft: Field values of the new letter
            upload: Attached file, if any
            actor: Acting user; becomes the owner
            direction: Incoming or outgoing register

        Returns:
            The committed letter

        Raises:
            ArchiveError: VALIDATION, CONFLICT, FILE_UPLOAD, TRANSIENT_STORE
                (after retries) or STORAGE
        """
        # VALIDATE
        check_business_rules(draft)
        self._run(lambda tx: self._ensure_number_free(tx, direction, draft.letter_number))

        # FILE_STAGE
        staged = self._files.stage(upload, direction) if upload is not None else None
        attachment = self._attachment_for(staged)

        # DB_WRITE + NOTIFY + COMMIT
        def write(tx: TransactionHandle) -> tuple[LetterEntity, list[str | None]]:
            letter = tx.create_letter(direction, draft, actor.user_id, attachment)
            return letter, self._notify(tx, "create", letter, actor)

        letter, notified = self._write(write, staged, f"create {direction.value} letter")

        try:
            # FILE_COMMIT
            if staged is not None:
                letter = self._place_file(direction, letter, staged, previous=None)
        finally:
            # CACHE_INVALIDATE
            self._invalidate(direction, letter.id, notified)

        logger.info(f"Created {direction.value} letter {letter.id} ({letter.letter_number})")
        return letter

    def update_letter_with_file(
        self,
        letter_id: str,
        changes: LetterChanges,
        upload: FileUpload | None,
        actor: Actor,
        direction: Direction,
        remove_file: bool = False,
    ) -> LetterEntity:
        """Apply a partial update, optionally replacing or removing the file.

        Args:
            letter_id: Letter to update
            changes: Fields to change
            upload: Replacement file, if any
            actor: Acting user; must own the letter or be elevated
            direction: Incoming or outgoing register
            remove_file: Drop the current attachment (ignored when ``upload`` is given)

        Returns:
            The committed letter

        Raises:
            ArchiveError: NOT_FOUND, AUTHORIZATION, VALIDATION, CONFLICT,
                FILE_UPLOAD, TRANSIENT_STORE (after retries) or STORAGE
        """
        # VALIDATE
        def validate(tx: TransactionHandle) -> None:
            existing = self._load_owned(tx, direction, letter_id, actor, "update")
            draft = merge_changes(existing, changes)
            check_business_rules(draft)
            if draft.letter_number != existing.letter_number:
                self._ensure_number_free(tx, direction, draft.letter_number, exclude_id=letter_id)

        self._run(validate)

        # FILE_STAGE
        staged = self._files.stage(upload, direction) if upload is not None else None
        new_attachment = self._attachment_for(staged)

        # DB_WRITE + NOTIFY + COMMIT
        def write(
            tx: TransactionHandle,
        ) -> tuple[LetterEntity, Attachment | None, list[str | None]]:
            current = self._load_owned(tx, direction, letter_id, actor, "update", for_update=True)
            draft = merge_changes(current, changes)
            check_business_rules(draft)
            if staged is not None:
                attachment = new_attachment
            elif remove_file:
                attachment = None
            else:
                attachment = current.attachment
            letter = tx.update_letter(direction, letter_id, draft, attachment)
            return letter, current.attachment, self._notify(tx, "update", letter, actor)

        letter, previous, notified = self._write(write, staged, f"update {direction.value} letter {letter_id}")

        try:
            # FILE_COMMIT: new file in place first, then the old one goes
            if staged is not None:
                letter = self._place_file(direction, letter, staged, previous=previous)
            if previous is not None and (letter.attachment is None or letter.attachment.file_path != previous.file_path):
                self._files.remove(previous.file_path)
        finally:
            # CACHE_INVALIDATE
            self._invalidate(direction, letter_id, notified)

        logger.info(f"Updated {direction.value} letter {letter_id}")
        return letter

    def delete_letter_with_file(
        self,
        letter_id: str,
        actor: Actor,
        direction: Direction,
    ) -> LetterEntity:
        """Delete a letter and, after the commit, its file.

        Returns:
            The letter as it was before deletion

        Raises:
            ArchiveError: NOT_FOUND, AUTHORIZATION or TRANSIENT_STORE (after retries)
        """
        # VALIDATE
        self._run(lambda tx: self._load_owned(tx, direction, letter_id, actor, "delete"))

        # DB_WRITE + NOTIFY + COMMIT
        def write(tx: TransactionHandle) -> tuple[LetterEntity, list[str | None]]:
            current = self._load_owned(tx, direction, letter_id, actor, "delete", for_update=True)
            tx.delete_letter(direction, letter_id)
            return current, self._notify(tx, "delete", current, actor)

        deleted, notified = self._write(write, None, f"delete {direction.value} letter {letter_id}")

        try:
            # FILE_COMMIT
            if deleted.attachment is not None:
                self._files.remove(deleted.attachment.file_path)
        finally:
            # CACHE_INVALIDATE
            self._invalidate(direction, letter_id, notified)

        logger.info(f"Deleted {direction.value} letter {letter_id}")
        return deleted

    # Steps

    @staticmethod
    def _load_owned(
        tx: TransactionHandle,
        direction: Direction,
        letter_id: str,
        actor: Actor,
        action: str,
        for_update: bool = False,
    ) -> LetterEntity:
        letter = tx.find_letter(direction, letter_id, for_update=for_update)
        if letter is None:
            raise ArchiveError.not_found(f"{direction.label} letter", id=letter_id)
        if not actor.can_access(letter.user_id):
            raise ArchiveError.forbidden(f"Unauthorized to {action} this letter")
        return letter

    @staticmethod
    def _ensure_number_free(
        tx: TransactionHandle,
        direction: Direction,
        letter_number: str,
        exclude_id: str | None = None,
    ) -> None:
        found = tx.find_letter_by_number(direction, letter_number)
        if found is not None and found.id != exclude_id:
            raise ArchiveError.conflict(
                f"{direction.label} letter number '{letter_number}' already exists",
                field="letter_number",
            )

    def _notify(
        self,
        tx: TransactionHandle,
        action: str,
        letter: LetterEntity,
        actor: Actor,
    ) -> list[str | None]:
        drafts = [letter_notification(action, letter, actor.user_id)]
        if action != "delete":
            broadcast = event_broadcast(letter, self._clock())
            if broadcast is not None:
                drafts.append(broadcast)
        for draft in drafts:
            tx.create_notification(draft)
        return [draft.user_id for draft in drafts]

    @staticmethod
    def _attachment_for(staged: StagedFile | None) -> Attachment | None:
        if staged is None:
            return None
        return Attachment(file_name=staged.file_name, file_path=staged.permanent_path)

    def _write(self, fn: Callable[[TransactionHandle], T], staged: StagedFile | None, what: str) -> T:
        """Run the DB_WRITE..COMMIT span; on failure discard the staged file."""
        try:
            return self._run(fn)
        except Exception as e:
            if staged is not None:
                self._files.discard(staged)
                logger.warning(f"Aborted {what}; discarded staged file {staged.staged_path}: {e}")
            else:
                logger.warning(f"Aborted {what}: {e}")
            raise

    def _place_file(
        self,
        direction: Direction,
        letter: LetterEntity,
        staged: StagedFile,
        previous: Attachment | None,
    ) -> LetterEntity:
        """Move the staged file into place.

        If the move fails the row is pointed back at ``previous`` and the
        staged file is left for the reconciliation sweep. The letter itself
        stays committed, so the error tells the client to re-attach the file
        with an update instead of creating the letter again.

        Raises:
            ArchiveError: STORAGE if the file could not be moved
        """
        try:
            self._files.commit(staged)
            return letter
        except ArchiveError as e:
            logger.error(f"Failed to place file for {direction.value} letter {letter.id}: {e.message}")
            try:
                self._run(lambda tx: tx.set_attachment(direction, letter.id, previous))
            except ArchiveError as restore_error:
                logger.error(
                    f"Could not restore attachment of {direction.value} letter {letter.id}: "
                    f"{restore_error.message}"
                )
            kept = "its previous attachment" if previous is not None else "no attachment"
            raise ArchiveError.storage(
                f"Failed to store the attached file. The letter was saved with {kept}; "
                f"upload the file again by updating letter {letter.id}",
                letter_id=letter.id,
                letter_saved=True,
                attachment=previous.file_name if previous is not None else None,
            ) from e

    def _invalidate(self, direction: Direction, letter_id: str, notified: list[str | None]) -> None:
        self._invalidator.letter_changed(direction, letter_id)
        self._invalidator.notifications_changed(notified)

    # Retry

    def _run(self, fn: Callable[[TransactionHandle], T]) -> T:
        """Run ``fn`` in a transaction, retrying transient failures."""
        retrying = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff_base, max=self._backoff_max),
            retry=retry_if_exception(is_transient),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        return retrying(
            self._store.run_in_transaction,
            fn,
            timeout=self._timeout,
            isolation_level=self._isolation_level,
        )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Transaction failed transiently, retrying in {delay:.2f}s "
            f"(attempt {retry_state.attempt_number}/{self._max_attempts}): {error}"
        )
