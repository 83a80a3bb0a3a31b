"""Protocol interfaces for swappable implementations.

This package contains protocol definitions using structural typing.
Protocols enable:
- Easy swapping of implementations (SQLite -> PostgreSQL, local disk -> object store)
- Unit testing with test doubles (failing commits, failing moves)
- Clear separation of concerns
"""

from .cache_store import CacheStore
from .data_store import DataStore, TransactionHandle
from .file_storage import FileStorage

__all__ = [
    "CacheStore",
    "DataStore",
    "FileStorage",
    "TransactionHandle",
]
