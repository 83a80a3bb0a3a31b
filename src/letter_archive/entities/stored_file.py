"""Uploaded and stored file entities."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class FileUpload:
    """An uploaded file as received from the client."""

    content: bytes
    filename: str
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class FileMetadata:
    size: int
    mime_type: str
    extension: str
    sha256: str


@dataclass(frozen=True)
class StagedFile:
    """A validated upload waiting in the staging area.

    Attributes:
        staged_path: Storage-relative path inside the staging area
        permanent_path: Storage-relative path it will be moved to on commit
        file_name: Sanitized original file name
        metadata: Size, type and checksum of the content
    """

    staged_path: str
    permanent_path: str
    file_name: str
    metadata: FileMetadata


@dataclass(frozen=True)
class FileStat:
    size: int
    modified_at: datetime


@dataclass(frozen=True)
class SweepReport:
    """Result of one reconciliation sweep."""

    scanned: int
    deleted: list[str]
    failed: list[str]
    skipped_recent: int = 0

    @property
    def deleted_count(self) -> int:
        return len(self.deleted)


@dataclass(frozen=True)
class StoredFileInfo:
    """What the API reports about a stored attachment."""

    size: int
    mime_type: str
    modified_at: datetime

    @property
    def is_viewable(self) -> bool:
        return self.mime_type.startswith("image/") or self.mime_type == "application/pdf"
