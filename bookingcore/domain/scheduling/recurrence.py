"""Recurrence expander - turns a pattern and a date range into concrete occurrences"""

from datetime import date, datetime, timedelta
from typing import Iterator

from dateutil.relativedelta import relativedelta

from ...config import MAX_SERIES_OCCURRENCES
from ...errors import ValidationError
from .schedule import Interval
from .schemas import RecurrencePattern


def sunday_based_weekday(day: date) -> int:
    """0 = Sunday … 6 = Saturday"""
    return (day.weekday() + 1) % 7


def _daily(start_date: date, end_date: date) -> Iterator[date]:
    day = start_date
    while day <= end_date:
        yield day
        day += timedelta(days=1)


def _weekly(start_date: date, end_date: date, days_of_week: list[int]) -> Iterator[date]:
    wanted = set(days_of_week)
    for day in _daily(start_date, end_date):
        if sunday_based_weekday(day) in wanted:
            yield day


def _monthly(start_date: date, end_date: date) -> Iterator[date]:
    # Always offset from the anchor so a clamped Feb 28 does not drag March back
    n = 0
    while True:
        day = start_date + relativedelta(months=n)
        if day > end_date:
            return
        yield day
        n += 1


def expand_recurrence(
    start_date: date,
    end_date: date,
    pattern,
    max_occurrences: int = MAX_SERIES_OCCURRENCES,
) -> list[date]:
    """
    Expand a recurrence pattern into the ordered list of dates in [start_date, end_date].

    Args:
        start_date: Date of the first occurrence (anchor)
        end_date: Last date that may hold an occurrence, inclusive
        pattern: RecurrencePattern or a raw {"type": ..., "daysOfWeek": [...]} mapping
        max_occurrences: Upper bound on the series length

    Returns:
        Dates in ascending order, possibly empty (weekly with no days selected)

    Raises:
        ValidationError: Malformed pattern, inverted range or too many occurrences
    """
    if not isinstance(pattern, RecurrencePattern):
        try:
            pattern = RecurrencePattern.model_validate(pattern)
        except ValueError as e:
            raise ValidationError(f"Invalid recurrence pattern: {e}") from e

    if end_date < start_date:
        raise ValidationError("Recurrence end date must not be before the start date")

    if pattern.type == "daily":
        candidates = _daily(start_date, end_date)
    elif pattern.type == "weekly":
        candidates = _weekly(start_date, end_date, pattern.days_of_week or [])
    else:
        candidates = _monthly(start_date, end_date)

    dates = []
    for day in candidates:
        dates.append(day)
        if len(dates) > max_occurrences:
            raise ValidationError(f"Recurring series exceeds the limit of {max_occurrences} appointments")
    return dates


def build_series(first_start: datetime, first_end: datetime, dates: list[date]) -> list[Interval]:
    """Place the first occurrence's time of day and duration onto each date"""
    first = Interval(first_start, first_end)
    return [
        Interval(datetime.combine(day, first_start.time()), datetime.combine(day, first_start.time()) + first.duration)
        for day in dates
    ]
