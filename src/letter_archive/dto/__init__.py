"""Data Transfer Objects for API contracts.

These Pydantic models define the external API contract.
They are used for request/response validation and serialization.

Internal domain logic should use entities from the entities package.
"""

from .requests import LetterCreateRequest, LetterUpdateRequest
from .responses import (
    CacheClearResponse,
    CacheStatsResponse,
    CalendarEventResponse,
    CalendarEventsResponse,
    ErrorResponse,
    FileInfo,
    FileInfoResponse,
    HealthCheckResponse,
    LetterDeleteResponse,
    LetterListResponse,
    LetterResponse,
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    PaginationMeta,
    SweepResponse,
)

__all__ = [
    "LetterCreateRequest",
    "LetterUpdateRequest",
    "CacheClearResponse",
    "CacheStatsResponse",
    "CalendarEventResponse",
    "CalendarEventsResponse",
    "ErrorResponse",
    "FileInfo",
    "FileInfoResponse",
    "HealthCheckResponse",
    "LetterDeleteResponse",
    "LetterListResponse",
    "LetterResponse",
    "MarkAllReadResponse",
    "NotificationListResponse",
    "NotificationResponse",
    "PaginationMeta",
    "SweepResponse",
]
