"""Notification domain entity."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class NotificationType(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


@dataclass(frozen=True)
class NotificationDraft:
    """A notification that has not been stored yet.

    ``user_id=None`` addresses every user (broadcast).
    """

    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    user_id: str | None = None


@dataclass(frozen=True)
class NotificationEntity:
    """Domain entity for a stored notification.

    Attributes:
        id: Notification identifier
        title: Short title
        message: Body text
        type: Severity
        user_id: Addressed user, or None for a broadcast
        is_read: Read flag
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    id: str
    title: str
    message: str
    type: NotificationType
    user_id: str | None = None
    is_read: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_broadcast(self) -> bool:
        return self.user_id is None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.type.value,
            "user_id": self.user_id,
            "is_read": self.is_read,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
