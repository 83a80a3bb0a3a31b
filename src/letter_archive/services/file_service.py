"""File lifecycle: validate, stage, commit, remove and reconcile uploads.

Uploads are written under ``.staging/`` first and only moved to
``letters/<direction>/`` once the database transaction referencing them has
committed. Anything left on disk that no letter references is removed by
the reconciliation sweep.
"""

import hashlib
import re
import secrets
import time
import uuid
from pathlib import PurePosixPath
from typing import Callable

import magic
from loguru import logger

from letter_archive.config import settings
from letter_archive.entities import (
    Attachment,
    Direction,
    FileMetadata,
    FileUpload,
    StagedFile,
    StoredFileInfo,
    SweepReport,
)
from letter_archive.errors import ArchiveError
from letter_archive.protocols import FileStorage

STAGING_DIR = ".staging"
LETTERS_DIR = "letters"

EXTENSION_MIME_TYPES = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}

# Alternative spellings clients and libmagic use for the allowed types
MIME_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-png": "image/png",
}

ALLOWED_MIME_TYPES = frozenset(EXTENSION_MIME_TYPES.values())

# Types libmagic may report for genuine content of each extension; legacy
# Word files are often only recognised as OLE2 compound documents
DETECTED_MIME_TYPES = {
    extension: frozenset({mime_type})
    for extension, mime_type in EXTENSION_MIME_TYPES.items()
}
DETECTED_MIME_TYPES[".doc"] = frozenset({"application/msword", "application/x-ole-storage", "application/cdfv2"})

BLOCKED_EXTENSIONS = frozenset(
    {".exe", ".bat", ".cmd", ".scr", ".pif", ".com", ".vbs", ".js", ".jar"}
)

SUSPICIOUS_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        rb"eval\s*\(",
        rb"document\.write",
        rb"<script",
        rb"javascript:",
        rb"vbscript:",
        rb"onload\s*=",
        rb"onerror\s*=",
    )
)

SCAN_LIMIT = 1024 * 1024
MAX_FILENAME_LENGTH = 255

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def sanitize_filename(filename: str) -> str:
    """Reduce a client-supplied name to a safe base name.

    Directory parts are dropped, every character outside ``[a-zA-Z0-9.-]``
    becomes ``_`` and leading dots are stripped.

    Raises:
        ArchiveError: FILE_UPLOAD if nothing usable is left
    """
    base = PurePosixPath(filename.replace("\\", "/")).name
    cleaned = _UNSAFE_CHARS.sub("_", base).lstrip(".")
    if not cleaned or not PurePosixPath(cleaned).stem.strip("_."):
        raise ArchiveError.file_upload("Invalid file name", filename=filename)
    if len(cleaned) > MAX_FILENAME_LENGTH:
        suffix = PurePosixPath(cleaned).suffix
        cleaned = cleaned[: MAX_FILENAME_LENGTH - len(suffix)] + suffix
    return cleaned


def file_extension(filename: str) -> str:
    return PurePosixPath(filename).suffix.lower()


def normalize_mime_type(content_type: str | None) -> str:
    """Lower-cased MIME type without parameters, aliases resolved."""
    mime_type = (content_type or "").split(";")[0].strip().lower()
    return MIME_ALIASES.get(mime_type, mime_type)


class FileService:
    """Validates uploads and manages their place on durable storage.

    Example:
        ```python
        files = FileService.create(storage=LocalFileStorage.create())
        staged = files.stage(upload, Direction.INCOMING)
        # ... database transaction commits ...
        attachment = files.commit(staged)
        ```
    """

    def __init__(
        self,
        storage: FileStorage,
        max_bytes: int,
        staging_grace_seconds: float = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the file service.

        Args:
            storage: Durable storage backend (required).
            max_bytes: Largest accepted upload.
            staging_grace_seconds: Minimum age of a staged file before the
                sweep may delete it. Protects uploads still in flight.
            clock: Wall clock in epoch seconds, injectable for tests.
        """
        self._storage = storage
        self._max_bytes = max_bytes
        self._staging_grace = staging_grace_seconds
        self._clock = clock

    @classmethod
    def create(
        cls,
        storage: FileStorage,
        max_bytes: int | None = None,
        staging_grace_seconds: float | None = None,
    ) -> "FileService":
        return cls(
            storage=storage,
            max_bytes=max_bytes or settings.max_upload_bytes,
            staging_grace_seconds=(
                settings.staging_grace_seconds
                if staging_grace_seconds is None
                else staging_grace_seconds
            ),
        )

    # Validation

    def validate(self, upload: FileUpload) -> FileMetadata:
        """Check an upload against the size, type and content rules.

        The declared content type and the type libmagic detects in the bytes
        must both agree with the file extension.

        Returns:
            Metadata of the accepted upload

        Raises:
            ArchiveError: FILE_UPLOAD describing the first failed rule
        """
        if upload.size == 0:
            raise ArchiveError.file_upload("File is empty", filename=upload.filename)
        if upload.size > self._max_bytes:
            raise ArchiveError.file_upload(
                f"File size exceeds the {self._max_bytes} byte limit",
                filename=upload.filename,
                size=upload.size,
            )

        # Every inner suffix counts too: "report.exe.pdf" is refused
        suffixes = [s.lower() for s in PurePosixPath(upload.filename).suffixes]
        if any(suffix in BLOCKED_EXTENSIONS for suffix in suffixes):
            raise ArchiveError.file_upload(
                "File type not allowed for security reasons", filename=upload.filename
            )

        extension = file_extension(upload.filename)
        if extension not in EXTENSION_MIME_TYPES:
            raise ArchiveError.file_upload(
                "Invalid file extension",
                filename=upload.filename,
                allowed=sorted(EXTENSION_MIME_TYPES),
            )
        expected = EXTENSION_MIME_TYPES[extension]

        declared = normalize_mime_type(upload.content_type)
        if declared and declared != "application/octet-stream":
            if declared not in ALLOWED_MIME_TYPES:
                raise ArchiveError.file_upload(
                    "Invalid file type. Only PDF, DOC, DOCX, JPG, JPEG, PNG files are allowed",
                    content_type=declared,
                )
            if declared != expected:
                raise ArchiveError.file_upload(
                    f"Content type '{declared}' doesn't match extension '{extension}'",
                    extension=extension,
                    content_type=declared,
                    expected=expected,
                )

        detected = self.detect_mime_type(upload.content)
        if detected not in DETECTED_MIME_TYPES[extension]:
            raise ArchiveError.file_upload(
                "File content does not match expected file type",
                filename=upload.filename,
                extension=extension,
                detected=detected,
                expected=expected,
            )

        return FileMetadata(
            size=upload.size,
            mime_type=expected,
            extension=extension,
            sha256=hashlib.sha256(upload.content).hexdigest(),
        )

    @staticmethod
    def detect_mime_type(content: bytes) -> str:
        """MIME type libmagic reports for the first MiB of ``content``.

        Raises:
            ArchiveError: FILE_UPLOAD if libmagic cannot read the content
        """
        try:
            detected = magic.from_buffer(content[:SCAN_LIMIT], mime=True)
        except magic.MagicException as e:
            raise ArchiveError.file_upload("Could not determine file type") from e
        return normalize_mime_type(detected)

    @staticmethod
    def find_threats(content: bytes) -> list[str]:
        """Suspicious script markers found in the first MiB of ``content``."""
        head = content[:SCAN_LIMIT]
        return [
            f"Suspicious pattern detected: {pattern.pattern.decode()}"
            for pattern in SUSPICIOUS_PATTERNS
            if pattern.search(head)
        ]

    def scan(self, path: str) -> None:
        """Scan a stored file for script injection markers.

        Raises:
            ArchiveError: FILE_UPLOAD listing the threats found
        """
        threats = self.find_threats(self._storage.read_file(path, limit=SCAN_LIMIT))
        if threats:
            raise ArchiveError.file_upload(
                f"File rejected: {', '.join(threats)}",
                threats=threats,
            )

    # Lifecycle

    def stage(self, upload: FileUpload, direction: Direction) -> StagedFile:
        """Validate ``upload`` and write it to the staging area.

        Raises:
            ArchiveError: FILE_UPLOAD if the upload is rejected (nothing is
                left on disk), STORAGE if it cannot be written
        """
        metadata = self.validate(upload)
        file_name = sanitize_filename(upload.filename)

        staged_path = f"{STAGING_DIR}/{uuid.uuid4().hex}-{file_name}"
        timestamp = int(self._clock() * 1000)
        permanent_path = (
            f"{LETTERS_DIR}/{direction.value}/{timestamp}-{secrets.token_hex(16)}-{file_name}"
        )

        self._storage.write_file(staged_path, upload.content)
        try:
            self.scan(staged_path)
        except ArchiveError:
            self.remove(staged_path)
            raise

        logger.debug(f"Staged upload {file_name} ({metadata.size} bytes) at {staged_path}")
        return StagedFile(
            staged_path=staged_path,
            permanent_path=permanent_path,
            file_name=file_name,
            metadata=metadata,
        )

    def commit(self, staged: StagedFile) -> Attachment:
        """Move a staged file to its permanent path.

        Raises:
            ArchiveError: STORAGE if the move fails
        """
        self._storage.move_file(staged.staged_path, staged.permanent_path)
        logger.debug(f"Committed {staged.staged_path} -> {staged.permanent_path}")
        return Attachment(file_name=staged.file_name, file_path=staged.permanent_path)

    def discard(self, staged: StagedFile) -> bool:
        return self.remove(staged.staged_path)

    def remove(self, path: str) -> bool:
        """Best-effort delete; failures are logged, never raised.

        Returns:
            True if a file was deleted
        """
        try:
            return self._storage.delete_file(path)
        except Exception as e:
            logger.warning(f"Failed to remove file {path}: {e}")
            return False

    def resolve_download(self, path: str) -> str:
        """Absolute path of a stored attachment.

        Raises:
            ArchiveError: NOT_FOUND if the file is not on disk
        """
        if not self._storage.exists(path):
            raise ArchiveError.not_found("File", path=path)
        return self._storage.absolute_path(path)

    def describe(self, path: str) -> StoredFileInfo | None:
        """Size, type and modification time of a stored file, None if it is missing."""
        if not self._storage.exists(path):
            return None
        stat = self._storage.stat_file(path)
        return StoredFileInfo(
            size=stat.size,
            mime_type=EXTENSION_MIME_TYPES.get(file_extension(path), "application/octet-stream"),
            modified_at=stat.modified_at,
        )

    # Reconciliation

    def reconcile(self, load_referenced: Callable[[], set[str]]) -> SweepReport:
        """Delete every stored file that no letter references.

        Files are listed before ``load_referenced`` is called, so a letter
        committed during the sweep can never lose its freshly moved file.
        Staged files younger than the staging grace period are skipped.

        Args:
            load_referenced: Returns the set of file paths referenced by letters

        Returns:
            What was scanned, deleted and skipped
        """
        permanent = self._storage.list_files(LETTERS_DIR)
        staged = self._storage.list_files(STAGING_DIR)
        referenced = load_referenced()

        candidates = [path for path in permanent if path not in referenced]
        skipped_recent = 0
        now = self._clock()
        for path in staged:
            if self._staging_grace > 0:
                try:
                    modified_at = self._storage.stat_file(path).modified_at
                except ArchiveError:
                    # Committed or discarded since it was listed
                    continue
                if now - modified_at.timestamp() < self._staging_grace:
                    skipped_recent += 1
                    continue
            candidates.append(path)

        deleted: list[str] = []
        failed: list[str] = []
        for path in candidates:
            try:
                if self._storage.delete_file(path):
                    deleted.append(path)
            except ArchiveError as e:
                logger.warning(f"Sweep could not delete {path}: {e.message}")
                failed.append(path)

        report = SweepReport(
            scanned=len(permanent) + len(staged),
            deleted=deleted,
            failed=failed,
            skipped_recent=skipped_recent,
        )
        logger.info(
            f"Storage sweep: scanned={report.scanned} deleted={report.deleted_count} "
            f"failed={len(failed)} skipped_recent={skipped_recent}"
        )
        return report
