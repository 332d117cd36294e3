# This project was developed with assistance from AI tools.
"""UTC helpers.

SQLite hands back naive datetimes for ``DateTime(timezone=True)`` columns
while PostgreSQL returns aware ones; everything is compared as aware UTC.
"""

from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
