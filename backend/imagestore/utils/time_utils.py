# backend/imagestore/utils/time_utils.py
"""
Time utilities.

Stream event ids are Redis stream ids of the form ``<milliseconds>-<sequence>``;
the millisecond part is the server time the image was appended, which makes
the id a human-decodable creation timestamp.
"""

from datetime import datetime, timezone
from typing import Optional, Tuple

# Constant for UTC timezone to avoid hardcoded timezone.utc references
UTC_TIMEZONE = timezone.utc


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC_TIMEZONE)


def parse_event_id(event_id: str) -> Tuple[int, int]:
    """
    Split a stream event id into ``(milliseconds, sequence)``.

    Raises:
        ValueError: If the id is not of the form ``<int>-<int>``
    """
    millis, sep, sequence = str(event_id).partition("-")
    if not sep or not millis.isdigit() or not sequence.isdigit():
        raise ValueError(f"Malformed stream event id: {event_id!r}")
    return int(millis), int(sequence)


def event_id_to_datetime(event_id: str) -> datetime:
    """Decode the creation time of a stream event id as UTC."""
    millis, _ = parse_event_id(event_id)
    return datetime.fromtimestamp(millis / 1000, tz=UTC_TIMEZONE)


def safe_event_id_to_datetime(event_id: Optional[str]) -> Optional[datetime]:
    """Like ``event_id_to_datetime`` but returns None for missing or malformed ids."""
    if not event_id:
        return None
    try:
        return event_id_to_datetime(event_id)
    except (ValueError, OverflowError, OSError):
        return None
