"""Notification content and notification reads/updates.

The builders derive notification text from a letter's final field values;
they are called inside the letter's write transaction. ``NotificationService``
serves the per-user notification list (cache-aside) and the read-flag and
delete operations.
"""

import math
from datetime import datetime
from typing import Any

from loguru import logger

from letter_archive.cache_keys import notifications_list_key
from letter_archive.config import settings
from letter_archive.entities import (
    Actor,
    LetterEntity,
    NotificationDraft,
    NotificationFilters,
    NotificationType,
    Pagination,
)
from letter_archive.errors import ArchiveError
from letter_archive.protocols import CacheStore, DataStore
from letter_archive.services.invalidation import CacheInvalidator

EVENT_BROADCAST_WINDOW_DAYS = 30

NOTIFICATION_SORT_FIELDS = {"created_at", "updated_at", "title"}

_ACTIONS = {
    "create": ("Created", "A new {direction} letter \"{subject}\" has been created.", NotificationType.INFO),
    "update": ("Updated", "The {direction} letter \"{subject}\" has been updated.", NotificationType.INFO),
    "delete": ("Deleted", "The {direction} letter \"{subject}\" has been deleted.", NotificationType.WARNING),
}


def letter_notification(action: str, letter: LetterEntity, user_id: str) -> NotificationDraft:
    """Companion notification for a letter mutation, addressed to the acting user."""
    verb, template, kind = _ACTIONS[action]
    return NotificationDraft(
        title=f"{letter.direction.label} Letter {verb}",
        message=template.format(direction=letter.direction.value, subject=letter.subject),
        type=kind,
        user_id=user_id,
    )


def days_until(moment: datetime, now: datetime) -> int:
    """Whole days until ``moment``, rounded up."""
    return math.ceil((moment - now).total_seconds() / 86400)


def event_broadcast(letter: LetterEntity, now: datetime) -> NotificationDraft | None:
    """Broadcast announcing an invitation's event when it is 1 to 30 days away."""
    if letter.invitation is None:
        return None
    event_date = letter.invitation.event_date
    days = days_until(event_date, now)
    if not 0 < days <= EVENT_BROADCAST_WINDOW_DAYS:
        return None
    return NotificationDraft(
        title="New Event Scheduled",
        message=(
            f"Event \"{letter.subject}\" has been scheduled for "
            f"{event_date.strftime('%Y-%m-%d')} ({days} day{'s' if days != 1 else ''} from now)"
        ),
        type=NotificationType.INFO,
        user_id=None,
    )


def event_reminder(letter: LetterEntity) -> NotificationDraft:
    """Reminder sent to the owner of an invitation happening tomorrow."""
    location = letter.invitation.event_location if letter.invitation else None
    return NotificationDraft(
        title="Upcoming Event Reminder",
        message=f"Event \"{letter.subject}\" is scheduled for tomorrow at {location or 'TBA'}",
        type=NotificationType.INFO,
        user_id=letter.user_id,
    )


class NotificationService:
    """Per-user notification reads and updates.

    Lists include the user's own notifications and every broadcast. Lists
    are cached per user; any change drops the affected users' lists.
    """

    def __init__(
        self,
        store: DataStore,
        cache: CacheStore,
        ttl: int | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._invalidator = CacheInvalidator(cache)
        self._ttl = ttl or settings.cache_notification_ttl

    def list_notifications(
        self,
        actor: Actor,
        filters: NotificationFilters,
        pagination: Pagination,
    ) -> dict[str, Any]:
        """Get one page of the actor's notifications.

        Returns:
            ``{"data": [...], "pagination": {...}, "unread_count": n}``
        """
        key = notifications_list_key(actor.user_id, filters, pagination)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        scoped = filters.scoped_to(actor.user_id)
        unread = NotificationFilters(user_id=actor.user_id, is_read=False)

        def load(tx):
            items = tx.find_notifications(scoped, pagination)
            total = tx.count_notifications(scoped)
            unread_count = tx.count_notifications(unread)
            return items, total, unread_count

        items, total, unread_count = self._store.run_in_transaction(load)
        result = {
            "data": [item.to_payload() for item in items],
            "pagination": pagination.meta(total),
            "unread_count": unread_count,
        }
        self._cache_set(key, result)
        return result

    def mark_read(self, actor: Actor, notification_id: str) -> dict[str, Any]:
        def mark(tx):
            notification = tx.find_notification(notification_id)
            if notification is None:
                raise ArchiveError.not_found("Notification", id=notification_id)
            if not notification.is_broadcast and not actor.can_access(notification.user_id):
                raise ArchiveError.forbidden("Unauthorized to update this notification")
            return tx.mark_notification_read(notification_id)

        updated = self._store.run_in_transaction(mark)
        self._invalidator.notifications_changed([updated.user_id])
        return updated.to_payload()

    def mark_all_read(self, actor: Actor) -> int:
        count = self._store.run_in_transaction(
            lambda tx: tx.mark_all_notifications_read(actor.user_id)
        )
        # Broadcasts were marked too, which shows in every user's lists
        self._invalidator.notifications_changed([actor.user_id, None])
        logger.debug(f"Marked {count} notifications read for user {actor.user_id}")
        return count

    def delete(self, actor: Actor, notification_id: str) -> None:
        def remove(tx):
            notification = tx.find_notification(notification_id)
            if notification is None:
                raise ArchiveError.not_found("Notification", id=notification_id)
            if notification.is_broadcast and not actor.is_elevated:
                raise ArchiveError.forbidden("Only administrators can delete broadcast notifications")
            if not actor.can_access(notification.user_id) and not notification.is_broadcast:
                raise ArchiveError.forbidden("Unauthorized to delete this notification")
            tx.delete_notification(notification_id)
            return notification

        deleted = self._store.run_in_transaction(remove)
        self._invalidator.notifications_changed([deleted.user_id])

    def _cache_get(self, key: str) -> Any | None:
        try:
            return self._cache.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

    def _cache_set(self, key: str, value: Any) -> None:
        try:
            self._cache.set(key, value, self._ttl)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")
