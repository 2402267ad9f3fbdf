"""
Timezone-aware datetime helpers.
- Store and compute in UTC in DB.
- Attendance work dates are calendar days in settings.ATTENDANCE_TZ (Asia/Kolkata by default).
- API responses expose datetimes in that zone with an explicit offset; never Z.
"""
from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Optional, Union
from zoneinfo import ZoneInfo

UTC = timezone.utc


@lru_cache(maxsize=32)
def get_zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def attendance_zone() -> ZoneInfo:
    """Zone used for work dates and response serialization."""
    from app.core.config import settings
    return get_zone(settings.ATTENDANCE_TZ)


def now_utc() -> datetime:
    """Current time in UTC (timezone-aware)."""
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """If dt is naive, treat as UTC and return timezone-aware UTC. If already aware, convert to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    else:
        dt = dt.astimezone(UTC)
    return dt


def localize(dt: datetime, zone: Union[str, ZoneInfo, None] = None) -> datetime:
    """
    Interpret a device-reported wall-clock time.

    Naive values are local time in ``zone`` (a machine's configured timezone);
    aware values are kept. The result is always UTC.
    """
    if dt.tzinfo is None:
        tz = get_zone(zone) if isinstance(zone, str) else (zone or attendance_zone())
        dt = dt.replace(tzinfo=tz)
    return dt.astimezone(UTC)


def to_local(dt: Optional[datetime], zone: Union[str, ZoneInfo, None] = None) -> Optional[datetime]:
    """Convert to the attendance zone (or ``zone``). Naive datetimes are treated as UTC before converting."""
    if dt is None:
        return None
    tz = get_zone(zone) if isinstance(zone, str) else (zone or attendance_zone())
    return ensure_utc(dt).astimezone(tz)


def local_date(dt: datetime, zone: Union[str, ZoneInfo, None] = None) -> date:
    """Calendar day of a UTC instant in the attendance zone."""
    return to_local(dt, zone).date()


def today_local(zone: Union[str, ZoneInfo, None] = None) -> date:
    return local_date(now_utc(), zone)


def iso_local(dt: Optional[datetime]) -> Optional[str]:
    """Serialize as ISO-8601 in the attendance zone with offset. Use for API response datetime fields."""
    if dt is None:
        return None
    return to_local(dt).isoformat()


def parse_device_timestamp(value) -> Optional[datetime]:
    """
    Parse a device timestamp: ISO-8601 string (with or without offset, 'Z' allowed)
    or epoch seconds. Returns None when the value cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None
