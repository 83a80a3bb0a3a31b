"""Repository layer for data access.

This layer implements the protocols in ``letter_archive.protocols``:
- MemoryCacheStore: in-process TTL cache (also the rate-limit counter store)
- SqlDataStore: SQLAlchemy-backed transactional store for letters and notifications
- LocalFileStorage: files under one storage root

The repositories are protocol-based (structural typing), not inheritance-based.
Any class implementing the required methods will satisfy the protocol.
"""

from letter_archive.protocols import CacheStore, DataStore, FileStorage, TransactionHandle

from .local_file_storage import LocalFileStorage
from .memory_cache_store import MemoryCacheStore
from .sql_data_store import SqlDataStore, SqlTransaction, is_transient_db_error

__all__ = [
    "CacheStore",
    "DataStore",
    "FileStorage",
    "LocalFileStorage",
    "MemoryCacheStore",
    "SqlDataStore",
    "SqlTransaction",
    "TransactionHandle",
    "is_transient_db_error",
]
