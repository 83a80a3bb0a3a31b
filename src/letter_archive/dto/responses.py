"""Response DTOs for API endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class PaginationMeta(BaseModel):
    current: int = Field(..., description="Current page (1-based)", ge=1)
    limit: int = Field(..., description="Page size", ge=1)
    total: int = Field(..., description="Number of matching records", ge=0)
    pages: int = Field(..., description="Number of pages", ge=0)
    has_next: bool
    has_prev: bool
    next_page: int | None = None
    prev_page: int | None = None


class LetterResponse(BaseModel):
    """Response DTO for a single letter.

    Incoming letters fill ``sender``/``received_date``; outgoing letters
    fill ``recipient``/``sent_date``.
    """

    id: str
    direction: str
    letter_number: str
    subject: str
    sender: str | None = None
    recipient: str | None = None
    received_date: datetime | None = None
    sent_date: datetime | None = None
    category: str
    note: str | None = None
    is_invitation: bool = False
    event_date: datetime | None = None
    event_time: str | None = None
    event_location: str | None = None
    event_notes: str | None = None
    file_name: str | None = None
    file_path: str | None = None
    user_id: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LetterListResponse(BaseModel):
    data: list[LetterResponse] = Field(default_factory=list)
    pagination: PaginationMeta


class LetterDeleteResponse(BaseModel):
    id: str = Field(..., description="Id of the deleted letter")
    message: str


class CalendarEventResponse(BaseModel):
    id: str = Field(..., description="Id of the invitation letter")
    title: str
    date: datetime
    type: str = Field(..., description="Register of the letter: 'incoming' or 'outgoing'")
    letter_number: str
    time: str | None = None
    location: str | None = None
    description: str | None = None


class CalendarEventsResponse(BaseModel):
    events: list[CalendarEventResponse] = Field(default_factory=list)


class FileInfo(BaseModel):
    file_name: str
    file_size: int = Field(..., ge=0)
    mime_type: str
    is_viewable: bool = Field(..., description="Whether browsers can display the file inline")
    last_modified: datetime
    letter_number: str
    uploaded_at: datetime | None = None


class FileInfoResponse(BaseModel):
    """Attachment details; ``exists`` is false when the file is missing from storage."""

    exists: bool
    file_info: FileInfo | None = None


class NotificationResponse(BaseModel):
    id: str
    title: str
    message: str
    type: str
    user_id: str | None = Field(None, description="Addressed user, null for broadcasts")
    is_read: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class NotificationListResponse(BaseModel):
    data: list[NotificationResponse] = Field(default_factory=list)
    pagination: PaginationMeta
    unread_count: int = Field(..., ge=0)


class MarkAllReadResponse(BaseModel):
    updated: int = Field(..., description="Number of notifications marked read", ge=0)


class CacheStatsResponse(BaseModel):
    """Response DTO for cache statistics."""

    hits: int = Field(..., ge=0)
    misses: int = Field(..., ge=0)
    sets: int = Field(..., ge=0)
    deletes: int = Field(..., ge=0)
    expired: int = Field(..., description="Entries evicted after their TTL", ge=0)
    keys: int = Field(..., description="Live (unexpired) keys", ge=0)
    stored_entries: int = Field(..., description="Entries physically held, live or not", ge=0)
    hit_rate: float = Field(..., ge=0.0, le=1.0)
    default_ttl: float
    sweep_interval: float


class CacheClearResponse(BaseModel):
    cleared: int = Field(..., description="Number of entries dropped", ge=0)


class SweepResponse(BaseModel):
    scanned: int = Field(..., ge=0)
    deleted: list[str] = Field(default_factory=list, description="Deleted storage paths")
    failed: list[str] = Field(default_factory=list, description="Paths that could not be deleted")
    skipped_recent: int = Field(0, description="Staged files still inside the grace period", ge=0)


class HealthCheckResponse(BaseModel):
    """Response DTO for health check."""

    status: str = Field(..., description="Health status: 'healthy' or 'unhealthy'")
    cache_healthy: bool = Field(..., description="Whether the cache sweep is running")
    database_healthy: bool = Field(..., description="Whether the database is reachable")
    scheduler_running: bool = Field(..., description="Whether maintenance jobs are scheduled")


class ErrorResponse(BaseModel):
    error: str
    code: str
    status_code: int
    details: dict[str, Any] | None = None
    stack: str | None = None
