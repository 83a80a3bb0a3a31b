"""Durable file storage protocol.

Paths are relative to the storage root (for example
``letters/incoming/1700000000-ab12-report.pdf``). That relative path is what
letter rows store in ``file_path``.
"""

from typing import Protocol, runtime_checkable

from letter_archive.entities import FileStat


@runtime_checkable
class FileStorage(Protocol):
    """Protocol for the filesystem the archive keeps attachments on.

    Every method raises ``ArchiveError`` of kind STORAGE on I/O failure.
    """

    def write_file(self, path: str, content: bytes) -> None:
        """Write bytes to ``path``, creating parent directories."""
        ...

    def read_file(self, path: str, limit: int | None = None) -> bytes:
        """Read a file, or only its first ``limit`` bytes."""
        ...

    def move_file(self, source: str, destination: str) -> None:
        """Move a file, creating the destination's parent directories."""
        ...

    def delete_file(self, path: str) -> bool:
        """Delete a file.

        Returns:
            True if a file was deleted, False if it did not exist
        """
        ...

    def list_files(self, directory: str) -> list[str]:
        """List files below ``directory`` recursively (storage-relative paths)."""
        ...

    def stat_file(self, path: str) -> FileStat:
        """Get size and modification time of a file."""
        ...

    def exists(self, path: str) -> bool:
        ...

    def absolute_path(self, path: str) -> str:
        """Resolve a storage-relative path to an absolute filesystem path."""
        ...
