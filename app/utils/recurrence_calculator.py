"""Recurrence rule calculator for recurring tasks"""
import calendar
from datetime import date, datetime, timedelta, tzinfo
from typing import List, Optional, Tuple
import logging

from app.models.recurrence import InvalidRule, RecurrenceRule, RecurrenceType, validate_recurrence_rule
from app.utils.datetime_helper import combine_local, to_local

logger = logging.getLogger(__name__)

# 次回日付の一覧を返す際のデフォルト件数
DEFAULT_PREVIEW_COUNT = 6
MAX_PREVIEW_COUNT = 52


def _add_months(year: int, month: int, months: int) -> Tuple[int, int]:
    total = (month - 1) + months
    return year + total // 12, total % 12 + 1


def _last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _next_weekly(from_date: date, interval: int, weekday: Optional[int]) -> date:
    if weekday is None:
        return from_date + timedelta(weeks=interval)

    days_ahead = (weekday - from_date.weekday()) % 7
    if days_ahead == 0:
        # 同じ曜日の場合は次の周期へ（当日は含めない）
        return from_date + timedelta(weeks=interval)
    # 指定曜日へ合わせる（以降は interval 週ごと）
    return from_date + timedelta(days=days_ahead)


def _next_monthly(from_date: date, interval: int, month_day: Optional[int]) -> date:
    year, month = _add_months(from_date.year, from_date.month, interval)
    target_day = month_day or from_date.day
    # 日付が存在しない場合（例：1/31 -> 2/31）は月末に調整
    return date(year, month, min(target_day, _last_day_of_month(year, month)))


def _next_monthly_weekday(from_date: date, interval: int, weekday: int, week_of_month: int) -> date:
    year, month = _add_months(from_date.year, from_date.month, interval)
    first_of_month = date(year, month, 1)
    first_match = 1 + (weekday - first_of_month.weekday()) % 7
    day = first_match + (week_of_month - 1) * 7
    if day > _last_day_of_month(year, month):
        # 第N曜日が存在しない月は最終の該当曜日にする
        day -= 7
    return date(year, month, day)


def _next_monthly_last_day(from_date: date, interval: int) -> date:
    year, month = _add_months(from_date.year, from_date.month, interval)
    return date(year, month, _last_day_of_month(year, month))


def _next_yearly(from_date: date, interval: int) -> date:
    year = from_date.year + interval
    try:
        return from_date.replace(year=year)
    except ValueError:
        # 2/29 -> 閏年でない年は2/28
        return date(year, 2, 28)


def calculate_next_occurrence(rule: RecurrenceRule, from_date: date) -> Optional[date]:
    """
    Calculate the next occurrence date strictly after from_date.

    Args:
        rule: Recurrence rule
        from_date: Anchor calendar date (in the owner's time zone)

    Returns:
        Next occurrence date, or None if it would fall after rule.end_date

    Raises:
        InvalidRule: If the rule is off or has unsupported parameters
    """
    validate_recurrence_rule(rule)
    interval = rule.interval

    if rule.type == RecurrenceType.DAILY:
        next_date = from_date + timedelta(days=interval)
    elif rule.type == RecurrenceType.WEEKLY:
        next_date = _next_weekly(from_date, interval, rule.weekday)
    elif rule.type == RecurrenceType.MONTHLY:
        next_date = _next_monthly(from_date, interval, rule.month_day)
    elif rule.type == RecurrenceType.MONTHLY_WEEKDAY:
        next_date = _next_monthly_weekday(from_date, interval, rule.weekday, rule.week_of_month)
    elif rule.type == RecurrenceType.MONTHLY_LAST_DAY:
        next_date = _next_monthly_last_day(from_date, interval)
    elif rule.type == RecurrenceType.YEARLY:
        next_date = _next_yearly(from_date, interval)
    else:
        raise InvalidRule(f"Invalid recurrence type: {rule.type!r}")

    if rule.end_date is not None and next_date > rule.end_date:
        return None
    return next_date


def calculate_next_due_date(rule: RecurrenceRule, from_time: datetime, tz: tzinfo) -> Optional[datetime]:
    """
    Calculate the next due datetime after from_time.

    Day boundaries are taken in tz; the wall-clock time of from_time is
    kept and the result is returned in UTC.

    Args:
        rule: Recurrence rule
        from_time: Anchor instant (naive values are treated as UTC)
        tz: Owner's time zone

    Returns:
        Next due datetime (timezone-aware UTC), or None past the end date
    """
    local = to_local(from_time, tz)
    next_date = calculate_next_occurrence(rule, local.date())
    if next_date is None:
        return None
    return combine_local(next_date, local.time(), tz)


def preview_occurrences(
    rule: RecurrenceRule,
    start: date,
    count: int = DEFAULT_PREVIEW_COUNT,
) -> List[date]:
    """
    List the next occurrences of a rule after start without materialising them.

    Args:
        rule: Recurrence rule
        start: Date to count from (exclusive)
        count: Maximum number of dates to return

    Returns:
        Up to count dates, fewer if the rule ends first
    """
    occurrences: List[date] = []
    current = start
    for _ in range(min(count, MAX_PREVIEW_COUNT)):
        next_date = calculate_next_occurrence(rule, current)
        if next_date is None:
            break
        occurrences.append(next_date)
        current = next_date
    return occurrences
