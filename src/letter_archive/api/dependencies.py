"""Dependency injection configuration for FastAPI app.

Uses FastAPI's app.state pattern for storing service instances.

Pattern:
    - Components built explicitly during lifespan from ``app.state.settings``
    - Dependency functions retrieve them from request.app.state
    - Clean separation, no global mutable state
"""

from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Header, Request
from loguru import logger

from letter_archive.config import Settings
from letter_archive.entities import Actor, UserRole
from letter_archive.errors import ArchiveError
from letter_archive.handlers import CalendarHandler, LetterHandler, NotificationHandler, SystemHandler
from letter_archive.log_config import configure_logging
from letter_archive.repositories import LocalFileStorage, MemoryCacheStore, SqlDataStore
from letter_archive.services import (
    CalendarService,
    FileService,
    JobScheduler,
    LetterReadService,
    LetterService,
    MaintenanceService,
    NotificationService,
    RateLimiter,
    RateLimitStatus,
)

STATE_NAMES = (
    "cache",
    "store",
    "files",
    "rate_limiter",
    "scheduler",
    "letter_handler",
    "notification_handler",
    "calendar_handler",
    "system_handler",
)


def _from_state(request: Request, name: str) -> Any:
    component = getattr(request.app.state, name, None)
    if component is None:
        raise RuntimeError(f"{name} not initialized. Check lifespan setup.")
    return component


def get_app_settings(request: Request) -> Settings:
    return _from_state(request, "settings")


def get_letter_handler(request: Request) -> LetterHandler:
    """Dependency injection for LetterHandler from app.state.

    Raises:
        RuntimeError: If handler is not initialized
    """
    return _from_state(request, "letter_handler")


def get_notification_handler(request: Request) -> NotificationHandler:
    return _from_state(request, "notification_handler")


def get_calendar_handler(request: Request) -> CalendarHandler:
    return _from_state(request, "calendar_handler")


def get_system_handler(request: Request) -> SystemHandler:
    return _from_state(request, "system_handler")


def get_actor(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[str | None, Header()] = None,
) -> Actor:
    """Acting user as asserted by the upstream gateway.

    Raises:
        ArchiveError: AUTHENTICATION if the user id is missing or the role unknown
    """
    if not x_user_id or not x_user_id.strip():
        raise ArchiveError.unauthenticated("Access token required")
    try:
        role = UserRole((x_user_role or UserRole.STAFF.value).upper())
    except ValueError as e:
        raise ArchiveError.unauthenticated(f"Unknown user role: {x_user_role}") from e
    return Actor(user_id=x_user_id.strip(), role=role)


def enforce_rate_limit(request: Request) -> RateLimitStatus:
    """Count the request against its client's budget.

    Raises:
        ArchiveError: RATE_LIMITED when the budget is spent
    """
    limiter: RateLimiter = _from_state(request, "rate_limiter")
    client = request.client.host if request.client else "unknown"
    return limiter.check(client)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI app.

    Initializes all layers and stores them in app.state:
    1. Repositories (cache with its expiry sweep, data store, file storage)
    2. Services (business logic)
    3. Handlers (HTTP endpoints)
    4. Scheduler for maintenance jobs (when enabled)

    Args:
        app: The FastAPI application instance; ``app.state.settings`` must be set

    Yields:
        None

    Cleanup:
        Stops the scheduler, closes the cache and the database engine and
        removes everything from app.state
    """
    settings: Settings = app.state.settings
    configure_logging(settings)

    # Repositories
    cache = MemoryCacheStore(
        default_ttl=settings.cache_list_ttl,
        sweep_interval=settings.cache_sweep_interval,
    )
    cache.start()
    store = SqlDataStore.create(
        database_url=settings.database_url,
        timeout=settings.db_transaction_timeout,
        isolation_level=settings.db_isolation_level,
    )
    storage = LocalFileStorage(settings.storage_root)

    # Services
    files = FileService(
        storage=storage,
        max_bytes=settings.max_upload_bytes,
        staging_grace_seconds=settings.staging_grace_seconds,
    )
    letters = LetterService(
        store=store,
        files=files,
        cache=cache,
        max_attempts=settings.tx_max_attempts,
        backoff_base=settings.tx_backoff_base,
        backoff_max=settings.tx_backoff_max,
        timeout=settings.db_transaction_timeout,
        isolation_level=settings.db_isolation_level,
    )
    reads = LetterReadService(
        store=store,
        cache=cache,
        list_ttl=settings.cache_list_ttl,
        entity_ttl=settings.cache_entity_ttl,
    )
    notifications = NotificationService(store=store, cache=cache, ttl=settings.cache_notification_ttl)
    maintenance = MaintenanceService(
        store=store,
        files=files,
        cache=cache,
        retention_days=settings.notification_retention_days,
    )

    scheduler = JobScheduler()
    scheduler.add_job("storage-sweep", settings.file_sweep_interval, maintenance.reconcile_storage)
    scheduler.add_job("event-reminders", settings.reminder_interval, maintenance.send_event_reminders)
    scheduler.add_job("notification-cleanup", settings.reminder_interval, maintenance.cleanup_read_notifications)
    if settings.scheduler_enabled:
        await scheduler.start()

    # Store in app.state (FastAPI pattern)
    app.state.cache = cache
    app.state.store = store
    app.state.files = files
    app.state.rate_limiter = RateLimiter(
        cache=cache,
        limit=settings.rate_limit_requests,
        window=settings.rate_limit_window,
    )
    app.state.scheduler = scheduler
    app.state.letter_handler = LetterHandler(letters=letters, reads=reads, files=files)
    app.state.notification_handler = NotificationHandler(notifications=notifications)
    app.state.calendar_handler = CalendarHandler(calendar=CalendarService(store=store))
    app.state.system_handler = SystemHandler(
        cache=cache,
        store=store,
        maintenance=maintenance,
        scheduler=scheduler,
    )

    logger.info(f"Letter archive started (env={settings.environment}, storage={storage.root})")

    yield

    await scheduler.stop()
    cache.close()
    store.close()
    for name in STATE_NAMES:
        delattr(app.state, name)
    logger.info("Letter archive shut down")


# Type aliases for cleaner dependency injection
ActorDep = Annotated[Actor, Depends(get_actor)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
LetterHandlerDep = Annotated[LetterHandler, Depends(get_letter_handler)]
NotificationHandlerDep = Annotated[NotificationHandler, Depends(get_notification_handler)]
CalendarHandlerDep = Annotated[CalendarHandler, Depends(get_calendar_handler)]
SystemHandlerDep = Annotated[SystemHandler, Depends(get_system_handler)]
RateLimitDep = Annotated[RateLimitStatus, Depends(enforce_rate_limit)]
