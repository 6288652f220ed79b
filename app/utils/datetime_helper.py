"""日時・タイムゾーンのヘルパー関数"""
import logging
from datetime import date, datetime, time, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """
    Resolve an IANA time zone name.

    Unknown or malformed names fall back to UTC instead of failing the
    operation; the fallback is logged.

    Args:
        name: Zone name such as "Asia/Tokyo" (None means UTC)

    Returns:
        tzinfo for the zone, or timezone.utc
    """
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown time zone '{name}', falling back to UTC")
        return timezone.utc


def ensure_utc(dt: datetime) -> datetime:
    """
    Normalise a datetime to aware UTC.

    Naive datetimes (e.g. read back from SQLite) are taken to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_local(dt: datetime, tz: tzinfo) -> datetime:
    return ensure_utc(dt).astimezone(tz)


def to_local_date(dt: datetime, tz: tzinfo) -> date:
    """Calendar date of dt as seen in tz"""
    return to_local(dt, tz).date()


def local_today(tz: tzinfo, now: Optional[datetime] = None) -> date:
    if now is None:
        now = utcnow()
    return to_local_date(now, tz)


def combine_local(day: date, time_of_day: time, tz: tzinfo) -> datetime:
    """
    Combine a local calendar date and wall-clock time into aware UTC.

    Args:
        day: Local calendar date
        time_of_day: Naive local wall-clock time
        tz: Zone the date and time are expressed in

    Returns:
        The same instant as an aware UTC datetime
    """
    return datetime.combine(day, time_of_day, tzinfo=tz).astimezone(timezone.utc)


def start_of_local_day(day: date, tz: tzinfo) -> datetime:
    return combine_local(day, time(0, 0), tz)
