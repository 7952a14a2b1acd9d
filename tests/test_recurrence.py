from datetime import date, datetime

import pytest

from bookingcore.domain.scheduling.recurrence import build_series, expand_recurrence, sunday_based_weekday
from bookingcore.domain.scheduling.schedule import Interval
from bookingcore.errors import ValidationError


def test_sunday_is_zero():
    assert sunday_based_weekday(date(2026, 3, 1)) == 0
    assert sunday_based_weekday(date(2026, 3, 2)) == 1
    assert sunday_based_weekday(date(2026, 3, 7)) == 6


def test_daily_is_inclusive():
    dates = expand_recurrence(date(2026, 3, 2), date(2026, 3, 6), {"type": "daily"})

    assert dates == [date(2026, 3, d) for d in range(2, 7)]


def test_weekly_uses_selected_days():
    dates = expand_recurrence(date(2026, 3, 1), date(2026, 3, 14), {"type": "weekly", "daysOfWeek": [1, 3]})

    assert dates == [date(2026, 3, 2), date(2026, 3, 4), date(2026, 3, 9), date(2026, 3, 11)]


def test_weekly_accepts_days_alias():
    dates = expand_recurrence(date(2026, 3, 1), date(2026, 3, 7), {"type": "weekly", "days": [0]})

    assert dates == [date(2026, 3, 1)]


@pytest.mark.parametrize("pattern", [{"type": "weekly"}, {"type": "weekly", "daysOfWeek": []}])
def test_weekly_without_days_is_empty(pattern):
    assert expand_recurrence(date(2026, 3, 1), date(2026, 6, 1), pattern) == []


def test_monthly_clamps_to_month_end_without_drift():
    dates = expand_recurrence(date(2026, 1, 31), date(2026, 5, 31), {"type": "monthly"})

    assert dates == [
        date(2026, 1, 31),
        date(2026, 2, 28),
        date(2026, 3, 31),
        date(2026, 4, 30),
        date(2026, 5, 31),
    ]


def test_monthly_leap_year():
    dates = expand_recurrence(date(2024, 1, 31), date(2024, 3, 1), {"type": "monthly"})

    assert dates == [date(2024, 1, 31), date(2024, 2, 29)]


def test_too_many_occurrences():
    with pytest.raises(ValidationError):
        expand_recurrence(date(2026, 1, 1), date(2026, 12, 31), {"type": "daily"}, max_occurrences=30)


def test_inverted_range():
    with pytest.raises(ValidationError):
        expand_recurrence(date(2026, 3, 2), date(2026, 3, 1), {"type": "daily"})


@pytest.mark.parametrize(
    "pattern",
    [{"type": "yearly"}, {"type": "weekly", "daysOfWeek": [7]}, {}],
)
def test_invalid_patterns(pattern):
    with pytest.raises(ValidationError):
        expand_recurrence(date(2026, 3, 2), date(2026, 3, 9), pattern)


def test_build_series_keeps_time_and_duration():
    series = build_series(
        datetime(2026, 3, 2, 14, 30),
        datetime(2026, 3, 2, 15, 45),
        [date(2026, 3, 2), date(2026, 3, 9)],
    )

    assert series == [
        Interval(datetime(2026, 3, 2, 14, 30), datetime(2026, 3, 2, 15, 45)),
        Interval(datetime(2026, 3, 9, 14, 30), datetime(2026, 3, 9, 15, 45)),
    ]
