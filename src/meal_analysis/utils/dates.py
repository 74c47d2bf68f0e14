"""Date and time utility functions."""

from datetime import date, datetime, timezone

UTC_TZ = timezone.utc


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC_TZ)


def date_key(day: date | datetime | str | None = None) -> str:
    """
    Normalize a calendar day to its YYYY-MM-DD key.

    Usage counters and cache entries are keyed on this string, so a new
    day naturally starts from an empty record.

    Args:
        day: Date, datetime or already formatted key (defaults to today, UTC)

    Returns:
        Date key string
    """
    if day is None:
        return utc_now().strftime("%Y-%m-%d")
    if isinstance(day, str):
        return date.fromisoformat(day).isoformat()
    if isinstance(day, datetime):
        return day.date().isoformat()
    return day.isoformat()
