"""Wall-clock helpers: the store keeps naive datetimes in the tenant's time zone"""

from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import DEFAULT_TIME_ZONE

Clock = Callable[[], datetime]


def resolve_time_zone(name: Optional[str]) -> ZoneInfo:
    """Return the named zone, falling back to the configured default for unknown names"""
    try:
        return ZoneInfo(name or DEFAULT_TIME_ZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIME_ZONE)


def to_local_naive(value: datetime, time_zone: Optional[str] = None) -> datetime:
    """Convert an aware datetime into naive wall-clock time of the zone; naive values pass through"""
    if value.tzinfo is None:
        return value
    return value.astimezone(resolve_time_zone(time_zone)).replace(tzinfo=None)


def local_now(time_zone: Optional[str] = None) -> datetime:
    return datetime.now(resolve_time_zone(time_zone)).replace(tzinfo=None)


def tenant_clock(time_zone: Optional[str] = None) -> Clock:
    """Clock returning the current wall-clock time of the tenant"""
    return lambda: local_now(time_zone)


def get_request_clock() -> Optional[Clock]:
    """FastAPI dependency; None lets services use the tenant's own clock"""
    return None
