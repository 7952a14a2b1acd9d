"""
Interval & schedule model.

Pure value objects and predicates over a provider's weekly template and
blocked periods. Nothing here touches the database.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Optional

from pydantic import TypeAdapter

from ...config import DEFAULT_WORKING_DAY_END, DEFAULT_WORKING_DAY_START
from ...errors import ValidationError
from ...shared.timeutils import to_local_naive
from ...shared.validators import parse_hhmm

# Indexed by date.weekday() (Monday = 0)
DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Used for template entries that omit start/end
ENTRY_DEFAULT_START = "09:00"
ENTRY_DEFAULT_END = "18:00"

# Accepts ISO 8601 with a trailing "Z" as written by JS toISOString()
_DATETIME = TypeAdapter(datetime)


@dataclass(frozen=True)
class Interval:
    """Half-open [start, end) interval"""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise ValidationError(
                f"Interval end ({self.end.isoformat()}) must be after start ({self.start.isoformat()})"
            )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, start: datetime, end: datetime) -> bool:
        # Touching endpoints do not overlap
        return self.start < end and self.end > start

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    def shifted_end(self, minutes: int) -> "Interval":
        return Interval(self.start, self.end + timedelta(minutes=minutes))


@dataclass(frozen=True)
class DayHours:
    enabled: bool
    start: time
    end: time


@dataclass(frozen=True)
class ProviderSchedule:
    """Weekly template plus absolute exclusions for one provider.

    working_hours is None when the provider has no template configured at all,
    which grants the default working day.
    """

    working_hours: Optional[dict[str, DayHours]] = None
    blocked_periods: tuple[Interval, ...] = field(default_factory=tuple)
    is_active: bool = True

    @classmethod
    def from_provider(cls, provider, time_zone: Optional[str] = None) -> "ProviderSchedule":
        return cls(
            working_hours=parse_working_hours(provider.working_hours),
            blocked_periods=parse_blocked_periods(provider.blocked_periods, time_zone),
            is_active=bool(provider.is_active),
        )


def _load_json(raw: Any, field_name: str) -> Any:
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Malformed {field_name}: {e.msg}") from e
    return raw


def parse_working_hours(raw: Any) -> Optional[dict[str, DayHours]]:
    """
    Parse the stored weekly template.

    Returns None when no template is configured. Day names are matched
    case-insensitively; days missing from a configured template are non-working.

    Raises:
        ValidationError: If the payload is not a mapping or an entry is malformed
    """
    data = _load_json(raw, "workingHours")
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValidationError("Malformed workingHours: expected an object keyed by weekday")

    by_lower = {str(key).lower(): value for key, value in data.items()}
    result: dict[str, DayHours] = {}
    for day_name in DAY_NAMES:
        entry = by_lower.get(day_name)
        if entry is None:
            continue
        if not isinstance(entry, dict) or "enabled" not in entry:
            raise ValidationError(f"Malformed workingHours entry for {day_name}")
        try:
            start = parse_hhmm(entry.get("start") or ENTRY_DEFAULT_START)
            end = parse_hhmm(entry.get("end") or ENTRY_DEFAULT_END)
        except ValueError as e:
            raise ValidationError(f"Malformed workingHours entry for {day_name}: {e}") from e
        result[day_name] = DayHours(enabled=entry.get("enabled") is True, start=start, end=end)

    return result or None


def parse_blocked_periods(raw: Any, time_zone: Optional[str] = None) -> tuple[Interval, ...]:
    """Parse stored blocked periods into intervals ordered by start"""
    data = _load_json(raw, "blockedPeriods")
    if not data:
        return ()
    if not isinstance(data, list):
        raise ValidationError("Malformed blockedPeriods: expected a list")

    periods = []
    for item in data:
        if not isinstance(item, dict):
            raise ValidationError("Malformed blockedPeriods entry")
        try:
            start = to_local_naive(_DATETIME.validate_python(str(item["start"])), time_zone)
            end = to_local_naive(_DATETIME.validate_python(str(item["end"])), time_zone)
        except (KeyError, ValueError) as e:
            raise ValidationError(f"Malformed blockedPeriods entry: {item!r}") from e
        periods.append(Interval(start, end))

    return tuple(sorted(periods, key=lambda p: p.start))


def _day_hours(schedule: ProviderSchedule, day: date) -> Optional[DayHours]:
    if schedule.working_hours is None:
        return DayHours(
            enabled=True,
            start=parse_hhmm(DEFAULT_WORKING_DAY_START),
            end=parse_hhmm(DEFAULT_WORKING_DAY_END),
        )
    hours = schedule.working_hours.get(DAY_NAMES[day.weekday()])
    if hours is None or not hours.enabled or hours.start >= hours.end:
        return None
    return hours


def is_working_day(schedule: ProviderSchedule, day: date) -> bool:
    return _day_hours(schedule, day) is not None


def working_window(schedule: ProviderSchedule, day: date) -> Optional[Interval]:
    """Working interval of the given date, or None on a day off"""
    hours = _day_hours(schedule, day)
    if hours is None:
        return None
    if hours.end == time.max:
        # "24:00" closes the day at the next midnight
        end = datetime.combine(day + timedelta(days=1), time.min)
    else:
        end = datetime.combine(day, hours.end)
    return Interval(datetime.combine(day, hours.start), end)


def is_blocked(schedule: ProviderSchedule, instant: datetime) -> bool:
    return any(period.contains(instant) for period in schedule.blocked_periods)


def overlaps_blocked(schedule: ProviderSchedule, start: datetime, end: datetime) -> bool:
    return any(period.overlaps(start, end) for period in schedule.blocked_periods)
