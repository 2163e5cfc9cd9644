"""
Timestamp Utilities

Helpers for the two timestamp forms stored with every snapshot:
an instant (timezone-aware, ISO-8601) and a local display string.
"""

from datetime import datetime, timezone

# Local display format, e.g. "19.10.2026, 14:30:17"
DISPLAY_FORMAT = "%d.%m.%Y, %H:%M:%S"


def utc_now() -> datetime:
    """Current instant as a timezone-aware UTC datetime"""
    return datetime.now(timezone.utc)


def format_local(ts: datetime) -> str:
    """
    Format an instant as a local-time display string.

    Naive datetimes are assumed to be UTC.

    Examples:
        2026-10-19 11:30:17+00:00 in UTC+3 -> "19.10.2026, 14:30:17"
    """
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone().strftime(DISPLAY_FORMAT)


def to_iso(ts: datetime | None) -> str | None:
    """ISO string for an optional timestamp"""
    return ts.isoformat() if ts is not None else None
