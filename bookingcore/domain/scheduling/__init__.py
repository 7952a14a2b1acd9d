"""
Scheduling domain - Working hours, conflict detection, slots and recurrence

Everything the booking and change-request services need to reason about time:

- schedule.py    Interval value object, weekly template and blocked periods
- conflicts.py   Live overlap query against non-cancelled appointments
- slots.py       Bookable start times with buffer, lead time and horizon
- recurrence.py  Daily/weekly/monthly series expansion
- settings.py    Tenant settings and clock resolution

Times are naive wall-clock datetimes in the tenant's time zone. Intervals are
half-open, so back-to-back appointments never conflict.
"""

from .conflicts import find_conflicts, has_conflict
from .recurrence import build_series, expand_recurrence
from .schedule import Interval, ProviderSchedule, is_blocked, is_working_day, working_window
from .slots import SlotService

__all__ = [
    "Interval",
    "ProviderSchedule",
    "SlotService",
    "build_series",
    "expand_recurrence",
    "find_conflicts",
    "has_conflict",
    "is_blocked",
    "is_working_day",
    "working_window",
]
