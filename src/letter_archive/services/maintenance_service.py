"""Periodic maintenance: storage reconciliation, event reminders, notification cleanup."""

from datetime import datetime, timedelta
from typing import Callable

from loguru import logger

from letter_archive.config import settings
from letter_archive.entities import Direction, SweepReport
from letter_archive.protocols import CacheStore, DataStore
from letter_archive.services.file_service import FileService
from letter_archive.services.invalidation import CacheInvalidator
from letter_archive.services.notification_service import event_reminder
from letter_archive.utils import utcnow


class MaintenanceService:
    """Jobs that run out-of-band from requests.

    Each job is safe to run repeatedly; the scheduler calls them on fixed
    intervals and the admin API can trigger the storage sweep on demand.
    """

    def __init__(
        self,
        store: DataStore,
        files: FileService,
        cache: CacheStore,
        retention_days: int = 30,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._files = files
        self._invalidator = CacheInvalidator(cache)
        self._retention = timedelta(days=retention_days)
        self._clock = clock

    @classmethod
    def create(cls, store: DataStore, files: FileService, cache: CacheStore) -> "MaintenanceService":
        return cls(
            store=store,
            files=files,
            cache=cache,
            retention_days=settings.notification_retention_days,
        )

    def reconcile_storage(self) -> SweepReport:
        """Delete stored files that no letter references."""
        return self._files.reconcile(
            lambda: self._store.run_in_transaction(lambda tx: tx.referenced_file_paths())
        )

    def send_event_reminders(self) -> int:
        """Remind owners of invitations whose event falls on the next calendar day (UTC).

        Returns:
            Number of reminders created
        """
        today = self._clock().replace(hour=0, minute=0, second=0, microsecond=0)
        start = today + timedelta(days=1)
        end = start + timedelta(days=1)

        def remind(tx) -> list[str]:
            owners = []
            for direction in Direction:
                for letter in tx.find_invitations_between(direction, start, end):
                    tx.create_notification(event_reminder(letter))
                    owners.append(letter.user_id)
            return owners

        owners = self._store.run_in_transaction(remind)
        self._invalidator.notifications_changed(set(owners))
        logger.info(f"Processed {len(owners)} event reminders for {start.date().isoformat()}")
        return len(owners)

    def cleanup_read_notifications(self) -> int:
        """Delete read notifications older than the retention window.

        Returns:
            Number of notifications deleted
        """
        cutoff = self._clock() - self._retention
        deleted = self._store.run_in_transaction(
            lambda tx: tx.delete_read_notifications_before(cutoff)
        )
        if deleted:
            self._invalidator.notifications_changed([None])
        logger.info(f"Deleted {deleted} read notifications older than {cutoff.isoformat()}")
        return deleted
