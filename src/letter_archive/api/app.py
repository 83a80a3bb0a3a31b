import time
from typing import Annotated, Any

from fastapi import APIRouter, FastAPI, File, Form, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from loguru import logger

from letter_archive.api.dependencies import (
    ActorDep,
    CalendarHandlerDep,
    LetterHandlerDep,
    NotificationHandlerDep,
    RateLimitDep,
    SettingsDep,
    SystemHandlerDep,
    lifespan,
)
from letter_archive.config import Settings, get_settings
from letter_archive.dto import (
    CacheClearResponse,
    CacheStatsResponse,
    CalendarEventsResponse,
    FileInfoResponse,
    HealthCheckResponse,
    LetterDeleteResponse,
    LetterListResponse,
    LetterResponse,
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    SweepResponse,
)
from letter_archive.entities import Direction, FileUpload
from letter_archive.errors import ArchiveError, ErrorKind

router = APIRouter()

FILE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Cache-Control": "private, no-cache",
}


def to_upload(file: UploadFile | None, max_bytes: int) -> FileUpload | None:
    """Read an uploaded file, at most one byte past the size limit."""
    if file is None or not file.filename:
        return None
    content = file.file.read(max_bytes + 1)
    return FileUpload(content=content, filename=file.filename, content_type=file.content_type)


@router.get("/")
def root() -> dict[str, Any]:
    """Root endpoint with API information."""
    return {
        "name": "Letter Archive API",
        "version": "0.1.0",
        "description": "Incoming/outgoing letter archive with attachments and notifications",
        "endpoints": {
            "letters": "/letters/{incoming|outgoing}",
            "notifications": "/notifications",
            "calendar": "/calendar/events",
            "cache": "/cache/stats",
            "health": "/health",
            "docs": "/docs",
        },
    }


@router.get("/health", response_model=HealthCheckResponse)
def health(handler: SystemHandlerDep) -> HealthCheckResponse:
    """Health check endpoint."""
    return handler.health()


# Letters


@router.get("/letters/{direction}", response_model=LetterListResponse)
def list_letters(
    direction: Direction,
    request: Request,
    actor: ActorDep,
    handler: LetterHandlerDep,
) -> LetterListResponse:
    """List letters of one register.

    Query parameters: ``search``, ``category``, ``date_from``, ``date_to``,
    ``user_id``, ``is_invitation`` and ``page``, ``limit``, ``sort_by``,
    ``sort_order``. Any other parameter is rejected.
    """
    return handler.list_letters(direction, dict(request.query_params), actor)


@router.get("/letters/{direction}/{letter_id}", response_model=LetterResponse)
def get_letter(
    direction: Direction,
    letter_id: str,
    actor: ActorDep,
    handler: LetterHandlerDep,
) -> LetterResponse:
    return handler.get(direction, letter_id, actor)


@router.get("/letters/{direction}/{letter_id}/download")
def download_letter_file(
    direction: Direction,
    letter_id: str,
    actor: ActorDep,
    handler: LetterHandlerDep,
) -> FileResponse:
    path, file_name, media_type, disposition = handler.download(direction, letter_id, actor)
    return FileResponse(
        path,
        media_type=media_type,
        filename=file_name,
        content_disposition_type=disposition,
        headers=FILE_HEADERS,
    )


@router.get("/letters/{direction}/{letter_id}/preview")
def preview_letter_file(
    direction: Direction,
    letter_id: str,
    actor: ActorDep,
    handler: LetterHandlerDep,
) -> FileResponse:
    """Serve a PDF or image attachment inline; other types download."""
    path, file_name, media_type, disposition = handler.download(direction, letter_id, actor, preview=True)
    return FileResponse(
        path,
        media_type=media_type,
        filename=file_name,
        content_disposition_type=disposition,
        headers=FILE_HEADERS,
    )


@router.get("/letters/{direction}/{letter_id}/file", response_model=FileInfoResponse)
def get_letter_file_info(
    direction: Direction,
    letter_id: str,
    actor: ActorDep,
    handler: LetterHandlerDep,
) -> FileInfoResponse:
    """Describe the attachment without downloading it."""
    return handler.file_info(direction, letter_id, actor)


@router.post(
    "/letters/{direction}",
    response_model=LetterResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_letter(
    direction: Direction,
    payload: Annotated[str, Form(description="Letter fields as JSON")],
    actor: ActorDep,
    handler: LetterHandlerDep,
    settings: SettingsDep,
    _rate: RateLimitDep,
    file: Annotated[UploadFile | None, File(description="Optional attachment")] = None,
) -> LetterResponse:
    """Create a letter with an optional attachment.

    The letter fields travel as a JSON string in the ``payload`` form field
    next to the ``file`` part.
    """
    upload = to_upload(file, settings.max_upload_bytes)
    return handler.create(direction, payload, upload, actor)


@router.put("/letters/{direction}/{letter_id}", response_model=LetterResponse)
def update_letter(
    direction: Direction,
    letter_id: str,
    actor: ActorDep,
    handler: LetterHandlerDep,
    settings: SettingsDep,
    _rate: RateLimitDep,
    payload: Annotated[str, Form(description="Changed letter fields as JSON")] = "{}",
    file: Annotated[UploadFile | None, File(description="Replacement attachment")] = None,
) -> LetterResponse:
    upload = to_upload(file, settings.max_upload_bytes)
    return handler.update(direction, letter_id, payload, upload, actor)


@router.delete("/letters/{direction}/{letter_id}", response_model=LetterDeleteResponse)
def delete_letter(
    direction: Direction,
    letter_id: str,
    actor: ActorDep,
    handler: LetterHandlerDep,
    _rate: RateLimitDep,
) -> LetterDeleteResponse:
    return handler.delete(direction, letter_id, actor)


# Notifications


@router.get("/notifications", response_model=NotificationListResponse)
def list_notifications(
    request: Request,
    actor: ActorDep,
    handler: NotificationHandlerDep,
) -> NotificationListResponse:
    """List the acting user's notifications and all broadcasts."""
    return handler.list_notifications(dict(request.query_params), actor)


@router.patch("/notifications/read-all", response_model=MarkAllReadResponse)
def mark_all_notifications_read(actor: ActorDep, handler: NotificationHandlerDep) -> MarkAllReadResponse:
    return handler.mark_all_read(actor)


@router.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(
    notification_id: str,
    actor: ActorDep,
    handler: NotificationHandlerDep,
) -> NotificationResponse:
    return handler.mark_read(notification_id, actor)


@router.delete("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: str,
    actor: ActorDep,
    handler: NotificationHandlerDep,
) -> Response:
    handler.delete(notification_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Calendar


@router.get("/calendar/events", response_model=CalendarEventsResponse)
def calendar_events(
    _actor: ActorDep,
    handler: CalendarHandlerDep,
    start: str | None = None,
    end: str | None = None,
) -> CalendarEventsResponse:
    """Invitation events of both registers in ``[start, end)``, by date.

    Without bounds the next 30 days are returned.
    """
    return handler.events(start, end)


@router.get("/calendar/upcoming", response_model=CalendarEventsResponse)
def upcoming_events(
    _actor: ActorDep,
    handler: CalendarHandlerDep,
    limit: int = 10,
) -> CalendarEventsResponse:
    return handler.upcoming(limit)


# Diagnostics


@router.get("/cache/stats", response_model=CacheStatsResponse)
def cache_stats(_actor: ActorDep, handler: SystemHandlerDep) -> CacheStatsResponse:
    """Get cache statistics."""
    return handler.cache_stats()


@router.delete("/cache", response_model=CacheClearResponse)
def clear_cache(actor: ActorDep, handler: SystemHandlerDep) -> CacheClearResponse:
    """Clear all entries from the cache (admin only)."""
    return handler.clear_cache(actor)


@router.post("/maintenance/sweep", response_model=SweepResponse)
def run_storage_sweep(actor: ActorDep, handler: SystemHandlerDep) -> SweepResponse:
    """Run the storage reconciliation sweep now (admin only)."""
    return handler.sweep(actor)


def _error_response(error: ArchiveError, settings: Settings) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_response(include_diagnostics=not settings.is_production),
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings for this app instance. If None, uses the
            environment-derived settings.

    Returns:
        Application whose components are created by its lifespan
    """
    app_settings = settings or get_settings()

    app = FastAPI(
        title="Letter Archive API",
        description="Incoming/outgoing letter archive with attachments and notifications",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = app_settings

    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)")
        return response

    @app.exception_handler(ArchiveError)
    async def handle_archive_error(request: Request, error: ArchiveError) -> JSONResponse:
        if error.kind.is_client_error:
            logger.warning(f"{request.method} {request.url.path}: {error.code} {error.message}")
        else:
            logger.error(f"{request.method} {request.url.path}: {error.code} {error.message}")
        return _error_response(error, app_settings)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, error: RequestValidationError) -> JSONResponse:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in error.errors()
        ]
        return _error_response(ArchiveError.validation("Invalid request", errors=errors), app_settings)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, error: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        wrapped = ArchiveError(ErrorKind.INTERNAL, "Internal server error")
        return _error_response(wrapped, app_settings)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    app_settings = get_settings()
    uvicorn.run(
        "letter_archive.api.app:app",
        host=app_settings.api_host,
        port=app_settings.api_port,
        reload=app_settings.api_reload,
    )
