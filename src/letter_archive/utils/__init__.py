"""Utility modules for the letter archive."""

from .dates import as_utc, parse_datetime, utcnow

__all__ = [
    "as_utc",
    "parse_datetime",
    "utcnow",
]
