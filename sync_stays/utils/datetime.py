"""UTC and stay-date helpers."""

from datetime import date, datetime, time, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

logger = structlog.get_logger(__name__)

# Date-only calendar entries are pinned to midday in the property timezone, so
# stay_date() gives back the same calendar date for every UTC offset.
ALL_DAY_ANCHOR = time(12, 0)


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def property_zone(name: str | None) -> tzinfo:
    """
    Resolve an IANA timezone name, falling back to UTC when unknown.

    Args:
        name: Timezone name stored on the property (e.g. "Europe/Lisbon")

    Returns:
        tzinfo for the property
    """
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown_property_timezone", timezone=name)
        return timezone.utc


def to_utc(value: date | datetime, tz: tzinfo = timezone.utc) -> datetime:
    """
    Convert a calendar value into an aware UTC datetime.

    Date-only values become ALL_DAY_ANCHOR local time in ``tz`` on that date.
    Naive datetimes are interpreted in ``tz`` (the property's timezone).

    Args:
        value: date or datetime from a calendar entry
        tz: Property timezone, used for dates and naive datetimes

    Returns:
        Aware datetime in UTC
    """
    if not isinstance(value, datetime):
        return datetime.combine(value, ALL_DAY_ANCHOR, tzinfo=tz).astimezone(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value.astimezone(timezone.utc)


def stay_date(value: datetime, tz: tzinfo = timezone.utc) -> date:
    """
    Return the calendar date of a ledger timestamp as seen at the property.

    Args:
        value: Aware (or naive UTC) check-in/check-out timestamp
        tz: Property timezone

    Returns:
        Local calendar date
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz).date()
