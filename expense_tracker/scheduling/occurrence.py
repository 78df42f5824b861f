"""
Occurrence Calculator

Pure date arithmetic: given a pattern and an anchor day, compute the next
occurrence strictly after the anchor, or None when the pattern has nothing
more to produce.

DESIGN DECISION: None covers both "exhausted" (past end_date) and
"malformed" (a field the frequency needs is missing or out of range).
A malformed pattern is not an exception; it simply stops producing
occurrences until the user fixes it.

Weekdays use 0=Sunday .. 6=Saturday, the convention the app stores.
"""

import calendar
from datetime import date, datetime, timedelta
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from expense_tracker.config.settings import LeapDayPolicy
from expense_tracker.models.recurring import Frequency, RecurringPattern


DateLike = Union[date, datetime]


def to_day(value: DateLike) -> date:
    """Truncate a datetime to its calendar day; dates pass through."""
    if isinstance(value, datetime):
        return value.date()
    return value


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def sunday_based_weekday(day: date) -> int:
    """Weekday with 0=Sunday, matching RecurringPattern.day_of_week."""
    return (day.weekday() + 1) % 7


def _in_range(value: Optional[int], low: int, high: int) -> bool:
    return value is not None and low <= value <= high


def _next_weekly(anchor: date, day_of_week: int) -> date:
    days_until = (day_of_week - sunday_based_weekday(anchor) + 7) % 7
    # Never the anchor itself: same weekday means a full week ahead
    return anchor + timedelta(days=days_until or 7)


def _next_monthly(anchor: date, day_of_month: int) -> date:
    target = anchor + relativedelta(months=1)
    return target.replace(day=min(day_of_month, last_day_of_month(target.year, target.month)))


def _next_yearly(
    anchor: date,
    month_of_year: int,
    day_of_month: int,
    leap_day_policy: LeapDayPolicy,
) -> Optional[date]:
    year = anchor.year + 1
    if month_of_year == 2 and day_of_month == 29 and not calendar.isleap(year):
        if leap_day_policy == LeapDayPolicy.SKIP:
            return None
        return date(year, 2, 28)
    return date(year, month_of_year, min(day_of_month, last_day_of_month(year, month_of_year)))


def next_occurrence(
    pattern: RecurringPattern,
    anchor: DateLike,
    leap_day_policy: LeapDayPolicy = LeapDayPolicy.SKIP,
) -> Optional[date]:
    """
    Compute the next occurrence of `pattern` strictly after `anchor`.

    Args:
        pattern: The recurring pattern
        anchor: Last materialized day (or the start date); datetimes are truncated
        leap_day_policy: Handling of Feb-29 yearly patterns in non-leap years

    Returns:
        The candidate day, or None if the pattern is exhausted, malformed,
        or (under LeapDayPolicy.SKIP) the candidate year has no Feb 29
    """
    day = to_day(anchor)

    if pattern.frequency == Frequency.DAILY:
        candidate = day + timedelta(days=1)

    elif pattern.frequency == Frequency.WEEKLY:
        if not _in_range(pattern.day_of_week, 0, 6):
            return None
        candidate = _next_weekly(day, pattern.day_of_week)

    elif pattern.frequency == Frequency.MONTHLY:
        if not _in_range(pattern.day_of_month, 1, 31):
            return None
        candidate = _next_monthly(day, pattern.day_of_month)

    elif pattern.frequency == Frequency.YEARLY:
        if not (_in_range(pattern.day_of_month, 1, 31) and _in_range(pattern.month_of_year, 1, 12)):
            return None
        candidate = _next_yearly(day, pattern.month_of_year, pattern.day_of_month, leap_day_policy)
        if candidate is None:
            return None

    else:
        return None

    # end_date is inclusive
    if pattern.end_date and candidate > pattern.end_date:
        return None

    return candidate


def preview_next(
    pattern: RecurringPattern,
    today: Optional[DateLike] = None,
    leap_day_policy: LeapDayPolicy = LeapDayPolicy.SKIP,
) -> Optional[date]:
    """
    Next occurrence for display in list and detail views.

    A pattern that has not started yet shows its start date. Read-only.
    """
    reference = to_day(today) if today is not None else date.today()

    if pattern.start_date > reference:
        return pattern.start_date

    return next_occurrence(pattern, pattern.anchor_date, leap_day_policy)
