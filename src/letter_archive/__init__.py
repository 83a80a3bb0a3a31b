"""Letter Archive - incoming/outgoing letters with attachments, notifications and caching.

This package provides a layered architecture:

Layers:
    - protocols: Interface contracts (CacheStore, DataStore, FileStorage)
    - repositories: Data access implementations
    - services: Business logic (write protocol, cache-aside reads, file lifecycle)
    - handlers: HTTP endpoint handlers
    - dto: Data transfer objects (API contracts)
    - entities: Domain models (internal)

Usage:
    ```python
    from letter_archive.repositories import LocalFileStorage, MemoryCacheStore, SqlDataStore
    from letter_archive.services import FileService, LetterService

    cache = MemoryCacheStore.create()
    store = SqlDataStore.create("sqlite:///./archive.db")
    files = FileService.create(storage=LocalFileStorage.create())
    letters = LetterService.create(store=store, files=files, cache=cache)
    ```

For HTTP API:
    ```python
    from letter_archive.api.app import app
    ```
"""

from letter_archive.config import Settings, get_settings, settings
from letter_archive.entities import Actor, Direction, LetterDraft, LetterEntity, NotificationEntity, UserRole
from letter_archive.errors import ArchiveError, ErrorKind
from letter_archive.protocols import CacheStore, DataStore, FileStorage
from letter_archive.repositories import LocalFileStorage, MemoryCacheStore, SqlDataStore
from letter_archive.services import (
    FileService,
    LetterReadService,
    LetterService,
    MaintenanceService,
    NotificationService,
)

__all__ = [
    # Configuration
    "Settings",
    "get_settings",
    "settings",
    # Errors
    "ArchiveError",
    "ErrorKind",
    # Protocols (interfaces)
    "CacheStore",
    "DataStore",
    "FileStorage",
    # Services (business logic)
    "FileService",
    "LetterReadService",
    "LetterService",
    "MaintenanceService",
    "NotificationService",
    # Repositories (data access)
    "LocalFileStorage",
    "MemoryCacheStore",
    "SqlDataStore",
    # Entities (domain models)
    "Actor",
    "Direction",
    "LetterDraft",
    "LetterEntity",
    "NotificationEntity",
    "UserRole",
]
