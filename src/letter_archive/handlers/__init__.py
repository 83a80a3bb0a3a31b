"""Handler layer for HTTP endpoints.

This layer contains the HTTP request/response handlers.
Handlers depend on services (business logic), not directly on repositories.

Architecture:
    Handler -> Service -> Repository
    (HTTP)  -> (Business) -> (Data Access)
"""

from .calendar_handler import CalendarHandler
from .letter_handler import LetterHandler
from .notification_handler import NotificationHandler
from .system_handler import SystemHandler, require_admin

__all__ = [
    "CalendarHandler",
    "LetterHandler",
    "NotificationHandler",
    "SystemHandler",
    "require_admin",
]
