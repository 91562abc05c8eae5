"""
Timezone utilities for timestamp intervals.

Timestamp bounds are stored in UTC so that entries created from different
zones compare correctly. Naive datetimes are interpreted in the configured
local timezone.
"""

from datetime import datetime, date
import pytz


# Default timezone - can be overridden by config
_local_timezone_name: str = "UTC"


def set_timezone(timezone_name: str):
    """
    Set the timezone used to interpret naive datetimes.

    Raises pytz.UnknownTimeZoneError for an unknown name, leaving the
    previous zone in place.
    """
    global _local_timezone_name
    pytz.timezone(timezone_name)  # raises UnknownTimeZoneError early
    _local_timezone_name = timezone_name


def get_local_timezone():
    """
    Get the local timezone as a pytz timezone object.

    Returns:
        pytz timezone object for the configured local timezone.
    """
    return pytz.timezone(_local_timezone_name)


def to_utc_datetime(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Args:
        dt: A datetime; naive values are taken to be in the local timezone.
            A plain date is taken as local midnight.

    Returns:
        A timezone-aware datetime in UTC.
    """
    if isinstance(dt, date) and not isinstance(dt, datetime):
        dt = datetime.combine(dt, datetime.min.time())
    if dt.tzinfo is None:
        local_dt = get_local_timezone().localize(dt)
        return local_dt.astimezone(pytz.UTC)
    return dt.astimezone(pytz.UTC)


def to_local_datetime(dt: datetime) -> datetime:
    """
    Convert an aware datetime to the local timezone.

    Naive values are returned unchanged.
    """
    if dt.tzinfo is not None:
        return dt.astimezone(get_local_timezone())
    return dt


def format_local(dt) -> str:
    """Human readable local time for reports; non-datetimes are str()'d."""
    if isinstance(dt, datetime):
        return to_local_datetime(dt).strftime("%Y-%m-%d %H:%M %Z")
    return str(dt)
