"""Service layer for business logic.

Services depend on the protocols in ``letter_archive.protocols``, never on
concrete repositories.
"""

from .calendar_service import CalendarService
from .file_service import FileService, sanitize_filename
from .invalidation import CacheInvalidator, letter_invalidation_keys, notification_invalidation_keys
from .letter_service import LetterService, check_business_rules
from .maintenance_service import MaintenanceService
from .notification_service import (
    NotificationService,
    event_broadcast,
    event_reminder,
    letter_notification,
)
from .rate_limiter import RateLimiter, RateLimitStatus
from .read_service import LetterReadService
from .scheduler import JobScheduler

__all__ = [
    "CacheInvalidator",
    "CalendarService",
    "FileService",
    "JobScheduler",
    "LetterReadService",
    "LetterService",
    "MaintenanceService",
    "NotificationService",
    "RateLimitStatus",
    "RateLimiter",
    "check_business_rules",
    "event_broadcast",
    "event_reminder",
    "letter_invalidation_keys",
    "letter_notification",
    "notification_invalidation_keys",
    "sanitize_filename",
]
