"""Filter and pagination values for list reads.

Each entity type has a closed set of filter fields. Unknown fields are
rejected when the filters are built from request parameters instead of
being passed through to the data store.
"""

import math
from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Mapping

from letter_archive.entities.letter import Direction, LetterCategory
from letter_archive.errors import ArchiveError
from letter_archive.utils import parse_datetime

PAGINATION_PARAMS = frozenset({"page", "limit", "sort_by", "sort_order"})
MAX_PAGE_SIZE = 100


class FilterOp(str, Enum):
    """How a filter value is matched against its column(s).

    ``CONTAINS`` is a case-insensitive substring match over any of the
    field's columns. ``EQUALS_OR_UNSET`` also matches rows where the column
    is empty, which is how broadcast notifications reach every user.
    """

    EQUALS = "equals"
    EQUALS_OR_UNSET = "equals_or_unset"
    CONTAINS = "contains"
    RANGE_FROM = "gte"
    RANGE_TO = "lte"


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    raise ArchiveError.validation(f"Invalid boolean for '{name}'", field=name, value=raw)


def _parse_date(name: str, raw: str) -> datetime:
    try:
        return parse_datetime(raw)
    except ValueError as e:
        raise ArchiveError.validation(f"Invalid date for '{name}'", field=name, value=raw) from e


def _reject_unknown(params: Mapping[str, Any], allowed: set[str] | frozenset[str]) -> None:
    unknown = sorted(set(params) - set(allowed))
    if unknown:
        raise ArchiveError.validation(
            f"Unknown filter field(s): {', '.join(unknown)}",
            unknown_fields=unknown,
            allowed_fields=sorted(allowed),
        )


class _FilterSet:
    """Shared behaviour of the filter dataclasses."""

    OPERATORS: ClassVar[dict[str, FilterOp]] = {}

    def key_items(self) -> dict[str, Any]:
        """Set filter values, used to derive cache keys."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)  # type: ignore[arg-type]
            if getattr(self, f.name) is not None
        }

    def terms(self) -> list[tuple[str, FilterOp, Any]]:
        """(field, operator, value) for every set filter."""
        return [(name, self.OPERATORS[name], value) for name, value in self.key_items().items()]


@dataclass(frozen=True)
class LetterFilters(_FilterSet):
    """Filters accepted by letter list reads.

    Attributes:
        search: Case-insensitive substring over number, subject, counterpart and note
        category: Exact category
        date_from: Primary date lower bound (inclusive)
        date_to: Primary date upper bound (inclusive)
        user_id: Owning user
        is_invitation: Only invitations (True) or only non-invitations (False)
    """

    search: str | None = None
    category: LetterCategory | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    user_id: str | None = None
    is_invitation: bool | None = None

    OPERATORS: ClassVar[dict[str, FilterOp]] = {
        "search": FilterOp.CONTAINS,
        "category": FilterOp.EQUALS,
        "date_from": FilterOp.RANGE_FROM,
        "date_to": FilterOp.RANGE_TO,
        "user_id": FilterOp.EQUALS,
        "is_invitation": FilterOp.EQUALS,
    }

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "LetterFilters":
        """Build filters from query parameters.

        Raises:
            ArchiveError: VALIDATION for unknown fields or unparsable values
        """
        _reject_unknown(params, set(cls.OPERATORS))
        values: dict[str, Any] = {}

        search = params.get("search")
        if search is not None and search.strip():
            if len(search.strip()) > 100:
                raise ArchiveError.validation("Search text is too long", field="search")
            values["search"] = search.strip()

        if params.get("category"):
            try:
                values["category"] = LetterCategory(params["category"].upper())
            except ValueError as e:
                raise ArchiveError.validation(
                    "Invalid category", field="category", value=params["category"]
                ) from e

        if params.get("date_from"):
            values["date_from"] = _parse_date("date_from", params["date_from"])
        if params.get("date_to"):
            values["date_to"] = _parse_date("date_to", params["date_to"])
        if params.get("user_id"):
            values["user_id"] = params["user_id"]
        if params.get("is_invitation"):
            values["is_invitation"] = _parse_bool("is_invitation", params["is_invitation"])

        filters = cls(**values)
        if filters.date_from and filters.date_to and filters.date_from > filters.date_to:
            raise ArchiveError.validation("date_from must not be after date_to", field="date_from")
        return filters

    def scoped_to(self, user_id: str) -> "LetterFilters":
        return replace(self, user_id=user_id)


@dataclass(frozen=True)
class NotificationFilters(_FilterSet):
    """Filters accepted by notification list reads.

    ``user_id`` selects the user's own notifications plus broadcasts.
    """

    user_id: str | None = None
    is_read: bool | None = None

    OPERATORS: ClassVar[dict[str, FilterOp]] = {
        "user_id": FilterOp.EQUALS_OR_UNSET,
        "is_read": FilterOp.EQUALS,
    }

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "NotificationFilters":
        _reject_unknown(params, {"is_read"})
        if params.get("is_read"):
            return cls(is_read=_parse_bool("is_read", params["is_read"]))
        return cls()

    def scoped_to(self, user_id: str) -> "NotificationFilters":
        return replace(self, user_id=user_id)


@dataclass(frozen=True)
class Pagination:
    page: int = 1
    limit: int = 10
    sort_by: str = "created_at"
    sort_order: str = "desc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, str],
        sortable: set[str],
        aliases: Mapping[str, str] | None = None,
    ) -> "Pagination":
        """Parse pagination parameters.

        Args:
            params: Query parameters (only pagination keys are read)
            sortable: Accepted sort fields
            aliases: Public sort names mapped to internal ones

        Raises:
            ArchiveError: VALIDATION for out-of-range values
        """
        try:
            page = int(params.get("page", 1))
            limit = int(params.get("limit", 10))
        except ValueError as e:
            raise ArchiveError.validation("page and limit must be integers") from e
        if page < 1:
            raise ArchiveError.validation("page must be at least 1", field="page")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ArchiveError.validation(f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")

        sort_by = params.get("sort_by") or "created_at"
        sort_by = (aliases or {}).get(sort_by, sort_by)
        if sort_by not in sortable:
            raise ArchiveError.validation(
                f"Cannot sort by '{sort_by}'", field="sort_by", allowed=sorted(sortable)
            )
        sort_order = (params.get("sort_order") or "desc").lower()
        if sort_order not in ("asc", "desc"):
            raise ArchiveError.validation("sort_order must be 'asc' or 'desc'", field="sort_order")
        return cls(page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)

    def key_items(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "sort_by": self.sort_by,
            "sort_order": self.sort_order,
        }

    def meta(self, total: int) -> dict[str, Any]:
        """Pagination metadata for a page of ``total`` matching rows."""
        pages = math.ceil(total / self.limit) if total else 0
        has_next = self.page < pages
        has_prev = self.page > 1
        return {
            "current": self.page,
            "limit": self.limit,
            "total": total,
            "pages": pages,
            "has_next": has_next,
            "has_prev": has_prev,
            "next_page": self.page + 1 if has_next else None,
            "prev_page": self.page - 1 if has_prev else None,
        }


LETTER_SORT_FIELDS = {"created_at", "updated_at", "letter_number", "subject", "primary_date"}


def letter_pagination(params: Mapping[str, str], direction: Direction) -> Pagination:
    """Pagination for a letter list; the direction's date name sorts by primary date."""
    return Pagination.from_params(
        params,
        sortable=LETTER_SORT_FIELDS,
        aliases={direction.date_field: "primary_date"},
    )


def split_query(params: Mapping[str, str]) -> tuple[dict[str, str], dict[str, str]]:
    """Split raw query parameters into (filter params, pagination params)."""
    filters = {k: v for k, v in params.items() if k not in PAGINATION_PARAMS}
    paging = {k: v for k, v in params.items() if k in PAGINATION_PARAMS}
    return filters, paging
