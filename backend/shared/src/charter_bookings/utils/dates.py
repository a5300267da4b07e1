"""Date-time helpers. All instants are compared in UTC."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: datetime | str) -> datetime:
    """Parse an ISO string or datetime into an aware UTC datetime.

    A trailing ``Z`` is accepted and naive values are taken to be UTC.

    Raises:
        ValueError: If the string is not an ISO 8601 date-time.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize a datetime for storage as an ISO string in UTC."""
    return parse_datetime(value).isoformat()
