"""HTTP handlers for letter operations.

Handlers convert between DTOs (API contracts) and service calls. Errors are
raised as ``ArchiveError`` and turned into responses by the app's
exception handler.
"""

from typing import Any, Mapping

from pydantic import ValidationError

from letter_archive.dto import (
    FileInfo,
    FileInfoResponse,
    LetterCreateRequest,
    LetterDeleteResponse,
    LetterListResponse,
    LetterResponse,
    LetterUpdateRequest,
)
from letter_archive.entities import (
    Actor,
    Direction,
    FileUpload,
    Invitation,
    LetterChanges,
    LetterDraft,
    LetterFilters,
    letter_pagination,
    split_query,
)
from letter_archive.errors import ArchiveError
from letter_archive.services import FileService, LetterReadService, LetterService
from letter_archive.utils import as_utc

# Fields that may be omitted from an update but never set to null
NON_NULLABLE_FIELDS = {"letter_number", "subject", "category", "is_invitation"}


def validation_details(error: ValidationError) -> list[dict[str, str]]:
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in error.errors()
    ]


def _other_direction(direction: Direction) -> Direction:
    return Direction.OUTGOING if direction is Direction.INCOMING else Direction.INCOMING


def _reject_foreign_fields(direction: Direction, present: set[str]) -> None:
    other = _other_direction(direction)
    foreign = sorted(present & {other.counterpart_field, other.date_field})
    if foreign:
        raise ArchiveError.validation(
            f"Field(s) not valid for {direction.value} letters: {', '.join(foreign)}",
            fields=foreign,
        )


class LetterHandler:
    """HTTP handlers for letters of both registers.

    Example:
        ```python
        handler = LetterHandler(letters=letter_service, reads=read_service, files=file_service)

        @app.get("/letters/{direction}/{letter_id}", response_model=LetterResponse)
        def get_letter(direction: Direction, letter_id: str, actor: ActorDep):
            return handler.get(direction, letter_id, actor)
        ```
    """

    def __init__(
        self,
        letters: LetterService,
        reads: LetterReadService,
        files: FileService,
    ) -> None:
        self._letters = letters
        self._reads = reads
        self._files = files

    # Request parsing

    @staticmethod
    def parse_create(raw: str | bytes) -> LetterCreateRequest:
        try:
            return LetterCreateRequest.model_validate_json(raw)
        except ValidationError as e:
            raise ArchiveError.validation("Invalid letter payload", errors=validation_details(e)) from e

    @staticmethod
    def parse_update(raw: str | bytes) -> LetterUpdateRequest:
        try:
            return LetterUpdateRequest.model_validate_json(raw or "{}")
        except ValidationError as e:
            raise ArchiveError.validation("Invalid letter payload", errors=validation_details(e)) from e

    @staticmethod
    def to_draft(direction: Direction, request: LetterCreateRequest) -> LetterDraft:
        """Build a draft from a create request for ``direction``.

        Raises:
            ArchiveError: VALIDATION if the register's counterpart or date is missing
        """
        present = {name for name in request.model_fields_set if getattr(request, name) is not None}
        _reject_foreign_fields(direction, present)

        counterpart = getattr(request, direction.counterpart_field)
        primary_date = getattr(request, direction.date_field)
        missing = [
            name
            for name, value in (
                (direction.counterpart_field, counterpart),
                (direction.date_field, primary_date),
            )
            if value is None
        ]
        if missing:
            raise ArchiveError.validation(
                f"Missing required field(s) for {direction.value} letters: {', '.join(missing)}",
                fields=missing,
            )

        invitation = None
        if request.is_invitation:
            invitation = Invitation(
                event_date=as_utc(request.event_date),
                event_time=request.event_time,
                event_location=request.event_location,
                event_notes=request.event_notes,
            )
        return LetterDraft(
            letter_number=request.letter_number.strip(),
            subject=request.subject.strip(),
            counterpart=counterpart.strip(),
            primary_date=as_utc(primary_date),
            category=request.category,
            note=request.note,
            invitation=invitation,
        )

    @staticmethod
    def to_changes(direction: Direction, request: LetterUpdateRequest) -> LetterChanges:
        """Translate an update request into direction-neutral changes."""
        values = request.model_dump(exclude_unset=True, exclude={"remove_file"})
        _reject_foreign_fields(direction, set(values))

        required = NON_NULLABLE_FIELDS | {direction.counterpart_field, direction.date_field}
        nulled = sorted(name for name, value in values.items() if value is None and name in required)
        if nulled:
            raise ArchiveError.validation(
                f"Field(s) cannot be null: {', '.join(nulled)}",
                fields=nulled,
            )

        changes: dict[str, Any] = {}
        for name, value in values.items():
            if name == direction.counterpart_field:
                changes["counterpart"] = value.strip()
            elif name == direction.date_field:
                changes["primary_date"] = as_utc(value)
            elif name == "event_date":
                changes["event_date"] = as_utc(value)
            elif name in ("letter_number", "subject"):
                changes[name] = value.strip()
            else:
                changes[name] = value
        return LetterChanges(values=changes)

    # Endpoints

    def create(
        self,
        direction: Direction,
        payload: str | bytes,
        upload: FileUpload | None,
        actor: Actor,
    ) -> LetterResponse:
        """Handle POST /letters/{direction}."""
        draft = self.to_draft(direction, self.parse_create(payload))
        letter = self._letters.create_letter_with_file(draft, upload, actor, direction)
        return LetterResponse.model_validate(letter.to_payload())

    def update(
        self,
        direction: Direction,
        letter_id: str,
        payload: str | bytes,
        upload: FileUpload | None,
        actor: Actor,
    ) -> LetterResponse:
        """Handle PUT /letters/{direction}/{letter_id}."""
        request = self.parse_update(payload)
        letter = self._letters.update_letter_with_file(
            letter_id,
            self.to_changes(direction, request),
            upload,
            actor,
            direction,
            remove_file=request.remove_file,
        )
        return LetterResponse.model_validate(letter.to_payload())

    def delete(self, direction: Direction, letter_id: str, actor: Actor) -> LetterDeleteResponse:
        """Handle DELETE /letters/{direction}/{letter_id}."""
        deleted = self._letters.delete_letter_with_file(letter_id, actor, direction)
        return LetterDeleteResponse(
            id=deleted.id,
            message=f"{direction.label} letter deleted successfully",
        )

    def list_letters(self, direction: Direction, params: Mapping[str, str], actor: Actor) -> LetterListResponse:
        """Handle GET /letters/{direction}."""
        filter_params, paging = split_query(params)
        filters = LetterFilters.from_params(filter_params)
        pagination = letter_pagination(paging, direction)
        return LetterListResponse.model_validate(
            self._reads.get_list(direction, filters, pagination, actor)
        )

    def get(self, direction: Direction, letter_id: str, actor: Actor) -> LetterResponse:
        """Handle GET /letters/{direction}/{letter_id}."""
        return LetterResponse.model_validate(self._reads.get_entity(direction, letter_id, actor))

    def download(
        self, direction: Direction, letter_id: str, actor: Actor, preview: bool = False
    ) -> tuple[str, str, str, str]:
        """Locate the attachment of a letter the actor may read.

        A preview is served inline when browsers can display the file type,
        otherwise as a normal download.

        Returns:
            (absolute path, file name, media type, content disposition)
        """
        payload = self._attachment_of(direction, letter_id, actor)
        path = self._files.resolve_download(payload["file_path"])
        info = self._files.describe(payload["file_path"])
        media_type = info.mime_type if info else "application/octet-stream"
        disposition = "inline" if preview and info is not None and info.is_viewable else "attachment"
        return path, payload["file_name"], media_type, disposition

    def file_info(self, direction: Direction, letter_id: str, actor: Actor) -> FileInfoResponse:
        """Handle GET /letters/{direction}/{letter_id}/file."""
        payload = self._attachment_of(direction, letter_id, actor)
        info = self._files.describe(payload["file_path"])
        if info is None:
            return FileInfoResponse(exists=False)
        return FileInfoResponse(
            exists=True,
            file_info=FileInfo(
                file_name=payload["file_name"],
                file_size=info.size,
                mime_type=info.mime_type,
                is_viewable=info.is_viewable,
                last_modified=info.modified_at,
                letter_number=payload["letter_number"],
                uploaded_at=payload["created_at"],
            ),
        )

    def _attachment_of(self, direction: Direction, letter_id: str, actor: Actor) -> dict[str, Any]:
        payload = self._reads.get_entity(direction, letter_id, actor)
        if not payload.get("file_path"):
            raise ArchiveError.not_found("File", letter_id=letter_id)
        return payload
