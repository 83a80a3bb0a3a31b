"""Domain entities for internal representation.

These are pure dataclasses (frozen) used internally by services
and repositories. They are NOT used for API contracts - use DTOs
from the dto package for that.
"""

from .actor import Actor, UserRole
from .cache_entry import CacheEntryEntity
from .calendar import CalendarEvent
from .letter import (
    Attachment,
    Direction,
    Invitation,
    LetterCategory,
    LetterChanges,
    LetterDraft,
    LetterEntity,
)
from .notification import NotificationDraft, NotificationEntity, NotificationType
from .query import FilterOp, LetterFilters, NotificationFilters, Pagination, letter_pagination, split_query
from .stored_file import FileMetadata, FileStat, FileUpload, StagedFile, StoredFileInfo, SweepReport

__all__ = [
    "Actor",
    "Attachment",
    "CacheEntryEntity",
    "CalendarEvent",
    "Direction",
    "FilterOp",
    "FileMetadata",
    "FileStat",
    "FileUpload",
    "Invitation",
    "LetterCategory",
    "LetterChanges",
    "LetterDraft",
    "LetterEntity",
    "LetterFilters",
    "NotificationDraft",
    "NotificationEntity",
    "NotificationFilters",
    "NotificationType",
    "Pagination",
    "StagedFile",
    "StoredFileInfo",
    "SweepReport",
    "UserRole",
    "letter_pagination",
    "split_query",
]
