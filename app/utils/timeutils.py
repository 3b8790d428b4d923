import calendar
import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

HHMM_PATTERN = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"
_HHMM = re.compile(HHMM_PATTERN)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_timezone(name: str) -> bool:
    if not name:
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def get_zone(name: str | None) -> ZoneInfo:
    """Resolve a user's timezone, falling back to UTC for unknown names."""
    if name and is_valid_timezone(name):
        return ZoneInfo(name)
    return ZoneInfo("UTC")


def local_today(tz_name: str | None, now: datetime | None = None) -> date:
    now = now or utcnow()
    return now.astimezone(get_zone(tz_name)).date()


def local_day_bounds(tz_name: str | None, day: date) -> tuple[datetime, datetime]:
    """UTC [start, end) of a calendar day in the given timezone."""
    zone = get_zone(tz_name)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def parse_hhmm(value: str) -> time:
    if not _HHMM.match(value or ""):
        raise ValueError(f"Time must be in HH:MM format, got {value!r}")
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def normalize_hhmm(value: str) -> str:
    """'9:05' -> '09:05' so stored times sort lexicographically."""
    return parse_hhmm(value).strftime("%H:%M")


def add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))
