"""
Timestamp helpers shared by the scheduling feature.

All instants are timezone-aware UTC datetimes internally and are exchanged
with collaborators as ISO 8601 strings with a trailing "Z".
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_iso(value: str | datetime) -> datetime:
    """Parse an ISO 8601 string (or pass a datetime through) as aware UTC."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def parse_iso_optional(value: str | datetime | None) -> datetime | None:
    if value is None or value == "":
        return None
    return parse_iso(value)


def to_iso(dt: datetime) -> str:
    """Format an instant as ISO 8601 UTC, dropping zero microseconds."""
    dt = parse_iso(dt)
    if dt.microsecond:
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval overlap; touching boundaries do not overlap."""
    return start_a < end_b and end_a > start_b
