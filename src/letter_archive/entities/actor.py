"""Acting user of a request."""

from dataclasses import dataclass
from enum import Enum


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"


@dataclass(frozen=True)
class Actor:
    """The authenticated user performing an operation."""

    user_id: str
    role: UserRole = UserRole.STAFF

    @property
    def is_elevated(self) -> bool:
        return self.role is UserRole.ADMIN

    def can_access(self, owner_id: str | None) -> bool:
        """Owners and elevated users may read or modify a record."""
        return self.is_elevated or owner_id == self.user_id
