"""UTC datetime utilities."""

from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as date_parser


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-aware datetime.

    This function should be used instead of datetime.now() or datetime.utcnow()
    to ensure all timestamps are timezone-aware and stored in UTC.

    Returns:
        Timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse an API timestamp into an aware UTC datetime.

    Naive values are assumed to be UTC. Anything unparseable yields None so
    callers can fall back instead of propagating an invalid date.

    Args:
        value: ISO-8601 string, datetime, or None

    Returns:
        Aware UTC datetime, or None if the value is missing or invalid
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = date_parser.isoparse(value)
        except (ValueError, OverflowError):
            try:
                parsed = date_parser.parse(value)
            except (ValueError, OverflowError):
                return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_api_timestamp(value: datetime) -> str:
    """
    Format a datetime the way the PMS API expects (UTC, millisecond precision, Z suffix).

    Example:
        >>> to_api_timestamp(datetime(2024, 5, 1, tzinfo=timezone.utc))
        '2024-05-01T00:00:00.000Z'
    """
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
