"""Error type shared by every layer.

There is one exception class, ``ArchiveError``. What went wrong is carried
by its ``kind``; callers branch on ``error.kind`` rather than on subclasses.
"""

import traceback
from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Error categories with their stable code and HTTP status."""

    VALIDATION = ("VALIDATION_ERROR", 400)
    AUTHENTICATION = ("AUTHENTICATION_ERROR", 401)
    AUTHORIZATION = ("AUTHORIZATION_ERROR", 403)
    NOT_FOUND = ("NOT_FOUND_ERROR", 404)
    CONFLICT = ("CONFLICT_ERROR", 409)
    FILE_UPLOAD = ("FILE_UPLOAD_ERROR", 400)
    RATE_LIMITED = ("RATE_LIMIT_ERROR", 429)
    TRANSIENT_STORE = ("TRANSIENT_STORE_ERROR", 503)
    STORAGE = ("STORAGE_ERROR", 500)
    INTERNAL = ("INTERNAL_ERROR", 500)

    def __init__(self, code: str, status_code: int) -> None:
        self.code = code
        self.status_code = status_code

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500


class ArchiveError(Exception):
    """Application error with a machine-readable kind.

    Attributes:
        kind: The error category
        message: Human readable message
        details: Optional structured payload (field errors, ids, ...)
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        return f"ArchiveError(kind={self.kind.name}, message={self.message!r})"

    @property
    def code(self) -> str:
        return self.kind.code

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    def to_response(self, include_diagnostics: bool = False) -> dict[str, Any]:
        """Build the JSON error body.

        Args:
            include_diagnostics: Attach details and stack (non-production only)

        Returns:
            Error body with error, code and status_code keys
        """
        body: dict[str, Any] = {
            "error": self.message,
            "code": self.code,
            "status_code": self.status_code,
        }
        if include_diagnostics:
            if self.details:
                body["details"] = self.details
            if self.__traceback__ is not None:
                body["stack"] = "".join(traceback.format_exception(self))
        return body

    # Constructors for the common kinds

    @classmethod
    def validation(cls, message: str, **details: Any) -> "ArchiveError":
        return cls(ErrorKind.VALIDATION, message, details)

    @classmethod
    def unauthenticated(cls, message: str = "Authentication required") -> "ArchiveError":
        return cls(ErrorKind.AUTHENTICATION, message)

    @classmethod
    def forbidden(cls, message: str = "Insufficient permissions") -> "ArchiveError":
        return cls(ErrorKind.AUTHORIZATION, message)

    @classmethod
    def not_found(cls, resource: str = "Resource", **details: Any) -> "ArchiveError":
        return cls(ErrorKind.NOT_FOUND, f"{resource} not found", details)

    @classmethod
    def conflict(cls, message: str = "Resource already exists", **details: Any) -> "ArchiveError":
        return cls(ErrorKind.CONFLICT, message, details)

    @classmethod
    def file_upload(cls, message: str = "File upload failed", **details: Any) -> "ArchiveError":
        return cls(ErrorKind.FILE_UPLOAD, message, details)

    @classmethod
    def storage(cls, message: str, **details: Any) -> "ArchiveError":
        return cls(ErrorKind.STORAGE, message, details)

    @classmethod
    def transient(cls, message: str, **details: Any) -> "ArchiveError":
        return cls(ErrorKind.TRANSIENT_STORE, message, details)


def is_transient(error: BaseException) -> bool:
    """Check if an error should be retried by the write protocol."""
    return isinstance(error, ArchiveError) and error.kind is ErrorKind.TRANSIENT_STORE
