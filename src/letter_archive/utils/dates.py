"""Timezone helpers.

Every datetime handled by the services is timezone-aware UTC. Some drivers
(SQLite) hand back naive values; ``as_utc`` normalises them.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(raw: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Raises:
        ValueError: If the string is not ISO-8601
    """
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))
